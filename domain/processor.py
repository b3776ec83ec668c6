from __future__ import annotations

import random
import threading
from typing import TYPE_CHECKING, Protocol

from domain.errors import NotPending
from domain.status import InvoiceStatus

if TYPE_CHECKING:
    from domain.invoice import Invoice


HIGH_VALUE_THRESHOLD = 10000.0
APPROVAL_RATE = 0.7


class InvoiceProcessor(Protocol):
    def decide(self, invoice: "Invoice") -> None:
        """
        Update the invoice's status or raise; never partially applies.

        Called with the invoice's write lock held: read `status` and `amount`
        directly and change state only through `apply_decision`.
        """
        ...


def is_high_value(invoice: "Invoice") -> bool:
    return invoice.amount > HIGH_VALUE_THRESHOLD


class DefaultInvoiceProcessor:
    """
    Random approve/reject policy.

    Invoices above HIGH_VALUE_THRESHOLD are left pending on every attempt.
    Everything else is approved with probability APPROVAL_RATE. Draws go
    through a lock, so one instance may be shared between invoices that are
    processed on different threads.
    """

    def __init__(self, seed: int | None = None):
        # Unseeded instances draw from OS entropy; seed stays None for them.
        self.seed = seed
        self._random = random.Random(seed)
        self._random_lock = threading.Lock()

    def draw(self) -> float:
        with self._random_lock:
            return self._random.random()

    def decide(self, invoice: "Invoice") -> None:
        if is_high_value(invoice):
            return
        if invoice.status is not InvoiceStatus.PENDING:
            raise NotPending()

        if self.draw() <= APPROVAL_RATE:
            invoice.apply_decision(InvoiceStatus.APPROVED)
        else:
            invoice.apply_decision(InvoiceStatus.REJECTED)


class TestInvoiceProcessor:
    """Deterministic processor with a preset outcome and optional injected error."""

    __test__ = False  # keep pytest from collecting it

    def __init__(
        self,
        next_status: InvoiceStatus = InvoiceStatus.APPROVED,
        error: Exception | None = None,
    ):
        self.next_status = InvoiceStatus.parse(next_status)
        self.error = error

    def set_next_status(self, status: InvoiceStatus | str) -> None:
        self.next_status = InvoiceStatus.parse(status)

    def set_error(self, error: Exception | None) -> None:
        self.error = error

    def decide(self, invoice: "Invoice") -> None:
        if self.error is not None:
            raise self.error
        if invoice.status is not InvoiceStatus.PENDING:
            raise NotPending()
        if is_high_value(invoice):
            return
        invoice.apply_decision(self.next_status)
