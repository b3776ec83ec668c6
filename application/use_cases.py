from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Protocol

from domain.account import Account
from domain.errors import AccountNotFound, InvoiceNotFound
from domain.invoice import Invoice
from domain.processor import InvoiceProcessor
from domain.status import InvoiceStatus
from infrastructure.logging import get_logger
from infrastructure.metrics import metrics

logger = get_logger("payment-gateway")


class AccountRepository(Protocol):
    async def get(self, account_id: str) -> Account | None: ...
    async def get_by_api_key(self, api_key: str) -> Account | None: ...
    async def add(self, account: Account) -> None: ...
    async def add_balance(self, account_id: str, amount: float, updated_at: datetime) -> float: ...


class InvoiceRepository(Protocol):
    async def get(self, invoice_id: str) -> Invoice | None: ...
    async def list_by_account(self, account_id: str) -> List[Invoice]: ...
    async def add(self, invoice: Invoice) -> None: ...


class UnitOfWork(Protocol):
    async def __aenter__(self) -> "UnitOfWork": ...
    async def __aexit__(self, exc_type, exc, tb) -> None: ...
    async def commit(self) -> None: ...
    @property
    def accounts(self) -> AccountRepository: ...
    @property
    def invoices(self) -> InvoiceRepository: ...


async def _account_by_api_key(uow: UnitOfWork, api_key: str) -> Account:
    account = await uow.accounts.get_by_api_key(api_key) if api_key else None
    if not account:
        raise AccountNotFound()
    return account


@dataclass
class CreateAccountCommand:
    name: str
    email: str


class CreateAccountUseCase:
    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    async def execute(self, cmd: CreateAccountCommand) -> Account:
        account = Account.create(name=cmd.name, email=cmd.email)
        async with self.uow:
            await self.uow.accounts.add(account)
            await self.uow.commit()
        metrics.increment("accounts_created_total")
        logger.info("Account created", account_id=account.account_id)
        return account


class GetAccountUseCase:
    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    async def by_api_key(self, api_key: str) -> Account:
        async with self.uow:
            return await _account_by_api_key(self.uow, api_key)

    async def by_id(self, account_id: str) -> Account:
        async with self.uow:
            account = await self.uow.accounts.get(account_id)
        if not account:
            raise AccountNotFound()
        return account


@dataclass
class AddBalanceCommand:
    api_key: str
    amount: float


class AddBalanceUseCase:
    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    async def execute(self, cmd: AddBalanceCommand) -> Account:
        async with self.uow:
            account = await _account_by_api_key(self.uow, cmd.api_key)
            account.add_balance(cmd.amount)
            account.balance = await self.uow.accounts.add_balance(
                account.account_id, cmd.amount, account.updated_at
            )
            await self.uow.commit()
        return account


@dataclass
class CreateInvoiceCommand:
    api_key: str
    amount: float
    description: str
    payment_type: str
    card_last_digits: str = ""


class CreateInvoiceUseCase:
    """
    Create an invoice for the account behind an API key and process it
    right away. Approved invoices credit the account balance.
    """

    def __init__(self, uow: UnitOfWork, processor: InvoiceProcessor | None = None):
        self.uow = uow
        self.processor = processor

    def set_processor(self, processor: InvoiceProcessor | None) -> None:
        self.processor = processor

    async def execute(self, cmd: CreateInvoiceCommand) -> Invoice:
        async with self.uow:
            account = await _account_by_api_key(self.uow, cmd.api_key)

            invoice = Invoice.create(
                account_id=account.account_id,
                description=cmd.description,
                payment_type=cmd.payment_type,
                amount=cmd.amount,
                card_last_digits=cmd.card_last_digits,
                processor=self.processor,
            )
            # Processing errors propagate; nothing has been stored yet.
            invoice.process()

            if invoice.is_approved():
                account.add_balance(invoice.amount)
                # Credit in SQL so concurrent credits to one account all land.
                account.balance = await self.uow.accounts.add_balance(
                    account.account_id, invoice.amount, account.updated_at
                )

            await self.uow.invoices.add(invoice)
            await self.uow.commit()

        metrics.increment("invoices_created_total")
        metrics.increment(f"invoices_{invoice.status.value}_total")
        logger.info(
            "Invoice processed",
            invoice_id=invoice.invoice_id,
            account_id=account.account_id,
            status=invoice.status.value,
        )
        return invoice


class GetInvoiceUseCase:
    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    async def execute(self, invoice_id: str, account_id: str) -> Invoice:
        async with self.uow:
            invoice = await self.uow.invoices.get(invoice_id)
        # Other accounts' invoices are reported as missing.
        if not invoice or invoice.account_id != account_id:
            raise InvoiceNotFound()
        return invoice


class ListInvoicesUseCase:
    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    async def execute(self, account_id: str) -> List[Invoice]:
        async with self.uow:
            return await self.uow.invoices.list_by_account(account_id)


@dataclass
class UpdateInvoiceStatusCommand:
    invoice_id: str
    account_id: str
    status: str


class UpdateInvoiceStatusUseCase:
    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    async def execute(self, cmd: UpdateInvoiceStatusCommand) -> Invoice:
        new_status = InvoiceStatus.parse(cmd.status)
        async with self.uow:
            invoice = await self.uow.invoices.get(cmd.invoice_id)
            if not invoice or invoice.account_id != cmd.account_id:
                raise InvoiceNotFound()

            invoice.update_status(new_status)
            await self.uow.invoices.add(invoice)
            await self.uow.commit()

        metrics.increment("invoice_status_updates_total")
        logger.info(
            "Invoice status updated",
            invoice_id=invoice.invoice_id,
            status=invoice.status.value,
        )
        return invoice
