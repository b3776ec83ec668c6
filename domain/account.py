from __future__ import annotations

import math
import threading
import uuid
from datetime import datetime, timezone

from domain.errors import InvalidBalanceAmount, InvalidEmail, InvalidName


class Account:
    """Client account that owns invoices; its balance grows as invoices are approved."""

    def __init__(
        self,
        account_id: str,
        name: str,
        email: str,
        api_key: str,
        balance: float = 0.0,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        now = datetime.now(timezone.utc)
        self.account_id = account_id
        self.name = name
        self.email = email
        self.api_key = api_key
        self.balance = balance
        self.created_at = created_at or now
        self.updated_at = updated_at or self.created_at
        self._lock = threading.Lock()

    @classmethod
    def create(cls, name: str, email: str) -> "Account":
        if len(name or "") < 2:
            raise InvalidName()
        # Minimal check, anything with an "@" and 5+ chars passes.
        if len(email or "") < 5 or "@" not in email:
            raise InvalidEmail()

        return cls(
            account_id=str(uuid.uuid4()),
            name=name,
            email=email,
            api_key=str(uuid.uuid4()),
        )

    @classmethod
    def hydrate(
        cls,
        account_id: str,
        name: str,
        email: str,
        api_key: str,
        balance: float,
        created_at: datetime,
        updated_at: datetime,
    ) -> "Account":
        return cls(
            account_id=account_id,
            name=name,
            email=email,
            api_key=api_key,
            balance=balance,
            created_at=created_at,
            updated_at=updated_at,
        )

    def add_balance(self, amount: float) -> None:
        if not (math.isfinite(amount) and amount > 0):
            raise InvalidBalanceAmount()
        with self._lock:
            self.balance += amount
            self.updated_at = datetime.now(timezone.utc)
