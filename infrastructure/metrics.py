"""Simple metrics tracking for Prometheus-compatible /metrics endpoint."""

import threading
from typing import Dict

_HELP: Dict[str, str] = {
    "accounts_created_total": "Total number of accounts created",
    "invoices_created_total": "Total number of invoices created",
    "invoices_approved_total": "Total number of invoices approved on creation",
    "invoices_rejected_total": "Total number of invoices rejected on creation",
    "invoices_pending_total": "Total number of invoices left pending on creation",
    "invoice_status_updates_total": "Total number of administrative invoice status updates",
}


class MetricsCollector:
    """In-memory counters; unknown names are ignored."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {name: 0 for name in _HELP}

    def increment(self, metric_name: str, value: int = 1) -> None:
        with self._lock:
            if metric_name in self._counters:
                self._counters[metric_name] += value

    def get(self, metric_name: str) -> int:
        return self._counters.get(metric_name, 0)

    def reset(self) -> None:
        with self._lock:
            for name in self._counters:
                self._counters[name] = 0

    def get_prometheus_text(self) -> str:
        lines = []
        with self._lock:
            for name, value in self._counters.items():
                lines.append(f"# HELP {name} {_HELP[name]}")
                lines.append(f"# TYPE {name} counter")
                lines.append(f"{name} {value}")
                lines.append("")
        return "\n".join(lines)


# Global metrics instance
metrics = MetricsCollector()
