"""Pydantic schemas for HTTP API requests and responses."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class CreateAccountRequest(BaseModel):
    """Request body for registering an account."""
    name: str
    email: str


class AddBalanceRequest(BaseModel):
    amount: float


class AccountResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    api_key: str
    balance: float
    created_at: datetime
    updated_at: datetime


class CreateInvoiceRequest(BaseModel):
    """Request body for submitting an invoice; domain rules validate the values."""
    amount: float
    description: str
    payment_type: str
    card_last_digits: str = ""


class UpdateInvoiceStatusRequest(BaseModel):
    status: str


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    account_id: str
    amount: float
    status: str
    description: str
    payment_type: str
    card_last_digits: str
    created_at: datetime
    updated_at: datetime
