import os
from contextlib import asynccontextmanager
from typing import List

from fastapi import Depends, FastAPI, Header, HTTPException, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncEngine

from app.errors import (
    Unauthorized,
    domain_error_handler,
    generic_error_handler,
    request_validation_error_handler,
    unauthorized_handler,
)
from app.schemas import (
    AccountResponse,
    AddBalanceRequest,
    CreateAccountRequest,
    CreateInvoiceRequest,
    InvoiceResponse,
    UpdateInvoiceStatusRequest,
)
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
    UnitOfWork,
    UpdateInvoiceStatusCommand,
    UpdateInvoiceStatusUseCase,
)
from domain.account import Account
from domain.errors import AccountNotFound, DomainError
from domain.invoice import Invoice
from domain.processor import DefaultInvoiceProcessor, InvoiceProcessor
from infrastructure import db
from infrastructure.logging import get_logger
from infrastructure.metrics import metrics


def get_service_name() -> str:
    return os.getenv("APP__SERVICE_NAME", "payment-gateway")


logger = get_logger("payment-gateway")


def get_processor_seed() -> int | None:
    seed = os.getenv("APP__PROCESSOR_SEED")
    if not seed:
        return None
    try:
        return int(seed)
    except ValueError:
        logger.error("Invalid APP__PROCESSOR_SEED", value=seed)
        raise RuntimeError(f"APP__PROCESSOR_SEED must be an integer, got {seed!r}") from None


# Global engine (initialized at startup)
engine: AsyncEngine | None = None
# Shared seeded processor, only when APP__PROCESSOR_SEED is set
processor: InvoiceProcessor | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database and processor, dispose the engine on shutdown."""
    global engine, processor

    engine = db.get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(db.metadata.create_all)

    seed = get_processor_seed()
    if seed is not None:
        processor = DefaultInvoiceProcessor(seed=seed)

    logger.info("Payment gateway started", service_name=get_service_name(), seeded=seed is not None)

    yield

    if engine:
        await engine.dispose()


app = FastAPI(title="Payment Gateway", version="0.1.0", lifespan=lifespan)

app.add_exception_handler(DomainError, domain_error_handler)
app.add_exception_handler(Unauthorized, unauthorized_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)
app.add_exception_handler(Exception, generic_error_handler)


def get_uow() -> UnitOfWork:
    if not engine:
        raise HTTPException(status_code=500, detail="Database not initialized")
    return db.SqlAlchemyUnitOfWork(engine)


def get_invoice_processor() -> InvoiceProcessor | None:
    return processor


async def current_account(
    x_api_key: str | None = Header(default=None),
    uow: UnitOfWork = Depends(get_uow),
) -> Account:
    """Resolve the calling account from the X-API-KEY header."""
    if not x_api_key:
        raise Unauthorized("X-API-KEY header is required")
    try:
        return await GetAccountUseCase(uow).by_api_key(x_api_key)
    except AccountNotFound:
        raise Unauthorized("Invalid API key") from None


def to_account_response(account: Account) -> AccountResponse:
    return AccountResponse(
        id=account.account_id,
        name=account.name,
        email=account.email,
        api_key=account.api_key,
        balance=account.balance,
        created_at=account.created_at,
        updated_at=account.updated_at,
    )


def to_invoice_response(invoice: Invoice) -> InvoiceResponse:
    snap = invoice.snapshot()
    return InvoiceResponse(
        id=snap.invoice_id,
        account_id=snap.account_id,
        amount=snap.amount,
        status=snap.status.value,
        description=snap.description,
        payment_type=snap.payment_type,
        card_last_digits=snap.card_last_digits,
        created_at=snap.created_at,
        updated_at=snap.updated_at,
    )


@app.get("/health")
async def health() -> dict:
    return {"service": get_service_name(), "status": "ok"}


@app.get("/metrics", response_class=PlainTextResponse)
async def get_metrics() -> str:
    return metrics.get_prometheus_text()


@app.post("/accounts", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def create_account(request: CreateAccountRequest, uow: UnitOfWork = Depends(get_uow)) -> AccountResponse:
    account = await CreateAccountUseCase(uow).execute(
        CreateAccountCommand(name=request.name, email=request.email)
    )
    return to_account_response(account)


@app.get("/accounts", response_model=AccountResponse)
async def get_account(account: Account = Depends(current_account)) -> AccountResponse:
    return to_account_response(account)


@app.post("/accounts/balance", response_model=AccountResponse)
async def add_balance(
    request: AddBalanceRequest,
    account: Account = Depends(current_account),
    uow: UnitOfWork = Depends(get_uow),
) -> AccountResponse:
    updated = await AddBalanceUseCase(uow).execute(
        AddBalanceCommand(api_key=account.api_key, amount=request.amount)
    )
    return to_account_response(updated)


@app.post("/invoices", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    request: CreateInvoiceRequest,
    account: Account = Depends(current_account),
    uow: UnitOfWork = Depends(get_uow),
    invoice_processor: InvoiceProcessor | None = Depends(get_invoice_processor),
) -> InvoiceResponse:
    """Create and immediately process an invoice for the calling account."""
    command = CreateInvoiceCommand(
        api_key=account.api_key,
        amount=request.amount,
        description=request.description,
        payment_type=request.payment_type,
        card_last_digits=request.card_last_digits,
    )
    invoice = await CreateInvoiceUseCase(uow, processor=invoice_processor).execute(command)
    return to_invoice_response(invoice)


@app.get("/invoices", response_model=List[InvoiceResponse])
async def list_invoices(
    account: Account = Depends(current_account),
    uow: UnitOfWork = Depends(get_uow),
) -> List[InvoiceResponse]:
    invoices = await ListInvoicesUseCase(uow).execute(account.account_id)
    return [to_invoice_response(invoice) for invoice in invoices]


@app.get("/invoices/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: str,
    account: Account = Depends(current_account),
    uow: UnitOfWork = Depends(get_uow),
) -> InvoiceResponse:
    invoice = await GetInvoiceUseCase(uow).execute(invoice_id, account.account_id)
    return to_invoice_response(invoice)


@app.patch("/invoices/{invoice_id}/status", response_model=InvoiceResponse)
async def update_invoice_status(
    invoice_id: str,
    request: UpdateInvoiceStatusRequest,
    account: Account = Depends(current_account),
    uow: UnitOfWork = Depends(get_uow),
) -> InvoiceResponse:
    """Administrative overwrite of an invoice's status."""
    invoice = await UpdateInvoiceStatusUseCase(uow).execute(
        UpdateInvoiceStatusCommand(invoice_id=invoice_id, account_id=account.account_id, status=request.status)
    )
    return to_invoice_response(invoice)
