from __future__ import annotations

import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from domain.errors import (
    InvalidAmount,
    InvalidDescription,
    InvalidPaymentType,
    MissingAccount,
)
from domain.locking import ReadWriteLock
from domain.processor import DefaultInvoiceProcessor, InvoiceProcessor
from domain.status import InvoiceStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class InvoiceSnapshot:
    invoice_id: str
    account_id: str
    amount: float
    status: InvoiceStatus
    description: str
    payment_type: str
    card_last_digits: str
    created_at: datetime
    updated_at: datetime


class Invoice:
    """
    A payment request owned by an account.

    Mutations (process, update_status, bind_processor) take the invoice's
    exclusive lock; the is_* predicates take the shared one.
    """

    def __init__(
        self,
        invoice_id: str,
        account_id: str,
        amount: float,
        description: str,
        payment_type: str,
        card_last_digits: str = "",
        status: InvoiceStatus = InvoiceStatus.PENDING,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
        processor: InvoiceProcessor | None = None,
    ):
        now = _utcnow()
        self.invoice_id = invoice_id
        self.account_id = account_id
        self.amount = amount
        self.description = description
        self.payment_type = payment_type
        self.card_last_digits = card_last_digits
        self.status = InvoiceStatus.parse(status)
        self.created_at = created_at or now
        self.updated_at = updated_at or self.created_at
        self._processor = processor
        self._lock = ReadWriteLock()

    @classmethod
    def create(
        cls,
        account_id: str,
        description: str,
        payment_type: str,
        amount: float,
        card_last_digits: str = "",
        processor: InvoiceProcessor | None = None,
    ) -> "Invoice":
        if not account_id:
            raise MissingAccount()
        if len(description or "") < 3:
            raise InvalidDescription()
        if not payment_type:
            raise InvalidPaymentType()
        if not (math.isfinite(amount) and amount > 0):
            raise InvalidAmount()

        now = _utcnow()
        return cls(
            invoice_id=str(uuid.uuid4()),
            account_id=account_id,
            amount=amount,
            description=description,
            payment_type=payment_type,
            card_last_digits=card_last_digits or "",
            status=InvoiceStatus.PENDING,
            created_at=now,
            updated_at=now,
            processor=processor or DefaultInvoiceProcessor(),
        )

    @classmethod
    def hydrate(
        cls,
        invoice_id: str,
        account_id: str,
        amount: float,
        description: str,
        payment_type: str,
        card_last_digits: str,
        status: str,
        created_at: datetime,
        updated_at: datetime,
    ) -> "Invoice":
        # No processor: one is bound lazily if the stored invoice is processed again.
        return cls(
            invoice_id=invoice_id,
            account_id=account_id,
            amount=amount,
            description=description,
            payment_type=payment_type,
            card_last_digits=card_last_digits or "",
            status=status,
            created_at=created_at,
            updated_at=updated_at,
        )

    @property
    def processor(self) -> InvoiceProcessor | None:
        return self._processor

    def bind_processor(self, processor: InvoiceProcessor) -> None:
        with self._lock.write():
            self._processor = processor

    def process(self) -> None:
        """
        Let the bound processor decide this invoice's outcome.

        Raises NotPending (or whatever error the processor injects) and
        leaves the invoice untouched on failure.
        """
        with self._lock.write():
            if self._processor is None:
                self._processor = DefaultInvoiceProcessor()
            self._processor.decide(self)

    def update_status(self, status: InvoiceStatus | str) -> None:
        new_status = InvoiceStatus.parse(status)
        with self._lock.write():
            self.apply_decision(new_status)

    def apply_decision(self, status: InvoiceStatus) -> None:
        """Set status and bump updated_at. Caller must hold the write lock."""
        self.status = status
        self._touch()

    def _touch(self) -> None:
        now = _utcnow()
        # updated_at must move forward even if the clock has not.
        if now <= self.updated_at:
            now = self.updated_at + timedelta(microseconds=1)
        self.updated_at = now

    def is_pending(self) -> bool:
        with self._lock.read():
            return self.status is InvoiceStatus.PENDING

    def is_approved(self) -> bool:
        with self._lock.read():
            return self.status is InvoiceStatus.APPROVED

    def is_rejected(self) -> bool:
        with self._lock.read():
            return self.status is InvoiceStatus.REJECTED

    def snapshot(self) -> InvoiceSnapshot:
        with self._lock.read():
            return InvoiceSnapshot(
                invoice_id=self.invoice_id,
                account_id=self.account_id,
                amount=self.amount,
                status=self.status,
                description=self.description,
                payment_type=self.payment_type,
                card_last_digits=self.card_last_digits,
                created_at=self.created_at,
                updated_at=self.updated_at,
            )
