from __future__ import annotations

from enum import Enum

from domain.errors import InvalidStatus


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @classmethod
    def parse(cls, value: "InvoiceStatus | str") -> "InvoiceStatus":
        """Accept an enum member or one of the three literals."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidStatus(f"invoice: invalid status {value!r}") from None
