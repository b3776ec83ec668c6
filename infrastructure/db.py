from __future__ import annotations

import os
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Column, DateTime, Float, Index, MetaData, String, Table, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from domain.account import Account
from domain.errors import AccountNotFound
from domain.invoice import Invoice

metadata = MetaData()

accounts = Table(
    "accounts",
    metadata,
    Column("account_id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("email", String, nullable=False),
    Column("api_key", String, nullable=False, unique=True),
    Column("balance", Float, nullable=False, default=0.0),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

invoices = Table(
    "invoices",
    metadata,
    Column("invoice_id", String, primary_key=True),
    Column("account_id", String, nullable=False),
    Column("amount", Float, nullable=False),
    Column("status", String, nullable=False),
    Column("description", String, nullable=False),
    Column("payment_type", String, nullable=False),
    Column("card_last_digits", String, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Index("ix_invoices_account_id", "account_id"),
)


def get_engine(dsn: Optional[str] = None) -> AsyncEngine:
    url = dsn or os.getenv("APP__DB_DSN")
    if not url:
        raise RuntimeError("APP__DB_DSN not set")
    return create_async_engine(url, future=True)


def _account_from_row(data) -> Account:
    return Account.hydrate(
        account_id=data["account_id"],
        name=data["name"],
        email=data["email"],
        api_key=data["api_key"],
        balance=data["balance"],
        created_at=data["created_at"],
        updated_at=data["updated_at"],
    )


def _invoice_from_row(data) -> Invoice:
    return Invoice.hydrate(
        invoice_id=data["invoice_id"],
        account_id=data["account_id"],
        amount=data["amount"],
        description=data["description"],
        payment_type=data["payment_type"],
        card_last_digits=data["card_last_digits"],
        status=data["status"],
        created_at=data["created_at"],
        updated_at=data["updated_at"],
    )


class AccountRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, account_id: str) -> Account | None:
        result = await self.session.execute(select(accounts).where(accounts.c.account_id == account_id))
        row = result.first()
        return _account_from_row(row._mapping) if row else None

    async def get_by_api_key(self, api_key: str) -> Account | None:
        result = await self.session.execute(select(accounts).where(accounts.c.api_key == api_key))
        row = result.first()
        return _account_from_row(row._mapping) if row else None

    async def add(self, account: Account) -> None:
        stmt = pg_insert(accounts).values(
            account_id=account.account_id,
            name=account.name,
            email=account.email,
            api_key=account.api_key,
            balance=account.balance,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )
        # Creation only; balance changes go through add_balance
        stmt = stmt.on_conflict_do_nothing(index_elements=[accounts.c.account_id])
        await self.session.execute(stmt)

    async def add_balance(self, account_id: str, amount: float, updated_at: datetime) -> float:
        stmt = (
            update(accounts)
            .where(accounts.c.account_id == account_id)
            .values(balance=accounts.c.balance + amount, updated_at=updated_at)
            .returning(accounts.c.balance)
        )
        result = await self.session.execute(stmt)
        balance = result.scalar_one_or_none()
        if balance is None:
            raise AccountNotFound()
        return balance


class InvoiceRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, invoice_id: str) -> Invoice | None:
        result = await self.session.execute(select(invoices).where(invoices.c.invoice_id == invoice_id))
        row = result.first()
        return _invoice_from_row(row._mapping) if row else None

    async def list_by_account(self, account_id: str) -> List[Invoice]:
        result = await self.session.execute(
            select(invoices)
            .where(invoices.c.account_id == account_id)
            .order_by(invoices.c.created_at.desc())
        )
        return [_invoice_from_row(row._mapping) for row in result.fetchall()]

    async def add(self, invoice: Invoice) -> None:
        snap = invoice.snapshot()
        stmt = pg_insert(invoices).values(
            invoice_id=snap.invoice_id,
            account_id=snap.account_id,
            amount=snap.amount,
            status=snap.status.value,
            description=snap.description,
            payment_type=snap.payment_type,
            card_last_digits=snap.card_last_digits,
            created_at=snap.created_at,
            updated_at=snap.updated_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[invoices.c.invoice_id],
            set_={"status": snap.status.value, "updated_at": snap.updated_at},
        )
        await self.session.execute(stmt)


class SqlAlchemyUnitOfWork:
    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_factory = async_sessionmaker(bind=self.engine, expire_on_commit=False)
        self.session: AsyncSession | None = None
        self._accounts: AccountRepository | None = None
        self._invoices: InvoiceRepository | None = None

    async def __aenter__(self):
        self.session = self.session_factory()
        await self.session.__aenter__()
        self._accounts = None
        self._invoices = None
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self.session:
            await self.session.__aexit__(exc_type, exc, tb)
        self.session = None

    async def commit(self) -> None:
        if self.session:
            await self.session.commit()

    @property
    def accounts(self) -> AccountRepository:
        if not self._accounts:
            if not self.session:
                raise RuntimeError("Session not initialized")
            self._accounts = AccountRepository(self.session)
        return self._accounts

    @property
    def invoices(self) -> InvoiceRepository:
        if not self._invoices:
            if not self.session:
                raise RuntimeError("Session not initialized")
            self._invoices = InvoiceRepository(self.session)
        return self._invoices
