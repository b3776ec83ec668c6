import asyncio
from datetime import datetime
from typing import Dict, List

import pytest

from application.use_cases import (
    AddBalanceCommand,
    AddBalanceUseCase,
    CreateAccountCommand,
    CreateAccountUseCase,
    CreateInvoiceCommand,
    CreateInvoiceUseCase,
    GetAccountUseCase,
    GetInvoiceUseCase,
    ListInvoicesUseCase,
    UpdateInvoiceStatusCommand,
    UpdateInvoiceStatusUseCase,
)
from domain.account import Account
from domain.errors import AccountNotFound, InvalidAmount, InvalidStatus, InvoiceNotFound
from domain.invoice import Invoice
from domain.processor import TestInvoiceProcessor
from domain.status import InvoiceStatus
from infrastructure.metrics import metrics


class InMemoryAccountRepo:
    """Hands out copies, like the database does, so credits must go through add_balance."""

    def __init__(self):
        self.storage: Dict[str, Account] = {}

    @staticmethod
    def _copy(account: Account | None) -> Account | None:
        if account is None:
            return None
        return Account.hydrate(
            account_id=account.account_id,
            name=account.name,
            email=account.email,
            api_key=account.api_key,
            balance=account.balance,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )

    async def get(self, account_id: str) -> Account | None:
        return self._copy(self.storage.get(account_id))

    async def get_by_api_key(self, api_key: str) -> Account | None:
        return self._copy(next((a for a in self.storage.values() if a.api_key == api_key), None))

    async def add(self, account: Account) -> None:
        self.storage.setdefault(account.account_id, account)

    async def add_balance(self, account_id: str, amount: float, updated_at: datetime) -> float:
        stored = self.storage[account_id]
        stored.balance += amount
        stored.updated_at = updated_at
        return stored.balance


class InterleavingAccountRepo(InMemoryAccountRepo):
    """Holds every lookup until `readers` of them have read the account."""

    def __init__(self, readers: int):
        super().__init__()
        self.readers = readers
        self.all_read = asyncio.Event()

    async def get_by_api_key(self, api_key: str) -> Account | None:
        account = await super().get_by_api_key(api_key)
        self.readers -= 1
        if self.readers <= 0:
            self.all_read.set()
        await self.all_read.wait()
        return account


class InMemoryInvoiceRepo:
    def __init__(self):
        self.storage: Dict[str, Invoice] = {}

    async def get(self, invoice_id: str) -> Invoice | None:
        return self.storage.get(invoice_id)

    async def list_by_account(self, account_id: str) -> List[Invoice]:
        return [i for i in self.storage.values() if i.account_id == account_id]

    async def add(self, invoice: Invoice) -> None:
        self.storage[invoice.invoice_id] = invoice


class InMemoryUoW:
    def __init__(self):
        self.accounts = InMemoryAccountRepo()
        self.invoices = InMemoryInvoiceRepo()
        self.committed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc:
            self.committed = False
        return False

    async def commit(self) -> None:
        self.committed = True


async def seed_account(uow: InMemoryUoW) -> Account:
    account = Account.create(name="Test Account", email="test@example.com")
    await uow.accounts.add(account)
    return account


def invoice_command(api_key: str, amount: float = 100.50) -> CreateInvoiceCommand:
    return CreateInvoiceCommand(
        api_key=api_key,
        amount=amount,
        description="Test invoice",
        payment_type="credit_card",
        card_last_digits="1234",
    )


@pytest.mark.asyncio
async def test_create_account_saves_and_commits():
    uow = InMemoryUoW()

    account = await CreateAccountUseCase(uow).execute(
        CreateAccountCommand(name="John Doe", email="john@example.com")
    )

    assert uow.accounts.storage[account.account_id] is account
    assert uow.committed is True


@pytest.mark.asyncio
async def test_get_account_by_api_key_and_id():
    uow = InMemoryUoW()
    account = await seed_account(uow)
    use_case = GetAccountUseCase(uow)

    assert (await use_case.by_api_key(account.api_key)).account_id == account.account_id
    assert (await use_case.by_id(account.account_id)).api_key == account.api_key
    with pytest.raises(AccountNotFound):
        await use_case.by_api_key("missing")
    with pytest.raises(AccountNotFound):
        await use_case.by_api_key("")
    with pytest.raises(AccountNotFound):
        await use_case.by_id("missing")


@pytest.mark.asyncio
async def test_add_balance_updates_account():
    uow = InMemoryUoW()
    account = await seed_account(uow)

    updated = await AddBalanceUseCase(uow).execute(AddBalanceCommand(api_key=account.api_key, amount=25.0))

    assert updated.balance == 25.0
    assert uow.committed is True


@pytest.mark.asyncio
async def test_concurrent_credits_to_one_account_all_land():
    uow = InMemoryUoW()
    uow.accounts = InterleavingAccountRepo(readers=2)
    account = await seed_account(uow)
    invoices = CreateInvoiceUseCase(uow, processor=TestInvoiceProcessor(next_status="approved"))

    # Both requests read a zero balance before either credit is written.
    await asyncio.gather(
        AddBalanceUseCase(uow).execute(AddBalanceCommand(api_key=account.api_key, amount=100.0)),
        invoices.execute(invoice_command(account.api_key, amount=50.0)),
    )

    assert uow.accounts.storage[account.account_id].balance == 150.0


@pytest.mark.asyncio
async def test_create_invoice_approved_credits_balance():
    uow = InMemoryUoW()
    account = await seed_account(uow)
    use_case = CreateInvoiceUseCase(uow, processor=TestInvoiceProcessor(next_status="approved"))

    invoice = await use_case.execute(invoice_command(account.api_key))

    assert invoice.status is InvoiceStatus.APPROVED
    assert invoice.account_id == account.account_id
    assert uow.invoices.storage[invoice.invoice_id] is invoice
    assert account.balance == 100.50
    assert uow.committed is True


@pytest.mark.asyncio
async def test_create_invoice_rejected_keeps_balance():
    uow = InMemoryUoW()
    account = await seed_account(uow)
    use_case = CreateInvoiceUseCase(uow, processor=TestInvoiceProcessor(next_status="rejected"))

    invoice = await use_case.execute(invoice_command(account.api_key, amount=200.0))

    assert invoice.is_rejected()
    assert account.balance == 0.0


@pytest.mark.asyncio
async def test_create_high_value_invoice_stays_pending():
    uow = InMemoryUoW()
    account = await seed_account(uow)
    use_case = CreateInvoiceUseCase(uow, processor=TestInvoiceProcessor(next_status="approved"))

    invoice = await use_case.execute(invoice_command(account.api_key, amount=15000.0))

    assert invoice.is_pending()
    assert invoice.invoice_id in uow.invoices.storage
    assert account.balance == 0.0


@pytest.mark.asyncio
async def test_create_invoice_with_default_processor():
    uow = InMemoryUoW()
    account = await seed_account(uow)

    invoice = await CreateInvoiceUseCase(uow).execute(invoice_command(account.api_key))

    assert invoice.status in (InvoiceStatus.APPROVED, InvoiceStatus.REJECTED)


@pytest.mark.asyncio
async def test_create_invoice_set_processor_applies_to_later_calls():
    uow = InMemoryUoW()
    account = await seed_account(uow)
    use_case = CreateInvoiceUseCase(uow, processor=TestInvoiceProcessor(next_status="approved"))

    first = await use_case.execute(invoice_command(account.api_key))
    use_case.set_processor(TestInvoiceProcessor(next_status="rejected"))
    second = await use_case.execute(invoice_command(account.api_key))

    assert first.is_approved()
    assert second.is_rejected()


@pytest.mark.asyncio
async def test_create_invoice_counts_metrics():
    metrics.reset()
    uow = InMemoryUoW()
    account = await seed_account(uow)
    use_case = CreateInvoiceUseCase(uow, processor=TestInvoiceProcessor(next_status="rejected"))

    await use_case.execute(invoice_command(account.api_key))

    assert metrics.get("invoices_created_total") == 1
    assert metrics.get("invoices_rejected_total") == 1
    assert metrics.get("invoices_approved_total") == 0


@pytest.mark.asyncio
async def test_create_invoice_unknown_api_key():
    uow = InMemoryUoW()

    with pytest.raises(AccountNotFound):
        await CreateInvoiceUseCase(uow).execute(invoice_command("nope"))

    assert uow.invoices.storage == {}


@pytest.mark.asyncio
async def test_create_invoice_invalid_input_stores_nothing():
    uow = InMemoryUoW()
    account = await seed_account(uow)

    with pytest.raises(InvalidAmount):
        await CreateInvoiceUseCase(uow).execute(invoice_command(account.api_key, amount=-5))

    assert uow.invoices.storage == {}
    assert uow.committed is False


@pytest.mark.asyncio
async def test_create_invoice_processor_error_stores_nothing():
    uow = InMemoryUoW()
    account = await seed_account(uow)
    processor = TestInvoiceProcessor(error=RuntimeError("processor offline"))

    with pytest.raises(RuntimeError, match="processor offline"):
        await CreateInvoiceUseCase(uow, processor=processor).execute(invoice_command(account.api_key))

    assert uow.invoices.storage == {}
    assert uow.committed is False
    assert account.balance == 0.0


@pytest.mark.asyncio
async def test_get_invoice_hides_other_accounts_invoices():
    uow = InMemoryUoW()
    owner = await seed_account(uow)
    other = await seed_account(uow)
    invoice = await CreateInvoiceUseCase(uow, processor=TestInvoiceProcessor()).execute(
        invoice_command(owner.api_key)
    )
    use_case = GetInvoiceUseCase(uow)

    assert await use_case.execute(invoice.invoice_id, owner.account_id) is invoice
    with pytest.raises(InvoiceNotFound):
        await use_case.execute(invoice.invoice_id, other.account_id)
    with pytest.raises(InvoiceNotFound):
        await use_case.execute("missing", owner.account_id)


@pytest.mark.asyncio
async def test_list_invoices_by_account():
    uow = InMemoryUoW()
    owner = await seed_account(uow)
    other = await seed_account(uow)
    create = CreateInvoiceUseCase(uow, processor=TestInvoiceProcessor())
    for _ in range(3):
        await create.execute(invoice_command(owner.api_key))
    await create.execute(invoice_command(other.api_key))

    invoices = await ListInvoicesUseCase(uow).execute(owner.account_id)

    assert len(invoices) == 3
    assert all(i.account_id == owner.account_id for i in invoices)
    assert await ListInvoicesUseCase(uow).execute("nobody") == []


@pytest.mark.asyncio
async def test_update_invoice_status_overwrites():
    uow = InMemoryUoW()
    account = await seed_account(uow)
    invoice = await CreateInvoiceUseCase(uow, processor=TestInvoiceProcessor(next_status="rejected")).execute(
        invoice_command(account.api_key)
    )
    uow.committed = False

    updated = await UpdateInvoiceStatusUseCase(uow).execute(
        UpdateInvoiceStatusCommand(invoice_id=invoice.invoice_id, account_id=account.account_id, status="pending")
    )

    assert updated.is_pending()
    assert uow.committed is True


@pytest.mark.asyncio
async def test_update_invoice_status_rejects_bad_status_and_unknown_invoice():
    uow = InMemoryUoW()
    account = await seed_account(uow)
    invoice = await CreateInvoiceUseCase(uow, processor=TestInvoiceProcessor()).execute(
        invoice_command(account.api_key)
    )
    use_case = UpdateInvoiceStatusUseCase(uow)

    with pytest.raises(InvalidStatus):
        await use_case.execute(
            UpdateInvoiceStatusCommand(invoice_id=invoice.invoice_id, account_id=account.account_id, status="bogus")
        )
    assert invoice.is_approved()

    with pytest.raises(InvoiceNotFound):
        await use_case.execute(
            UpdateInvoiceStatusCommand(invoice_id="missing", account_id=account.account_id, status="approved")
        )
