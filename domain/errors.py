"""Domain error taxonomy shared by invoices and accounts."""
from __future__ import annotations


class DomainError(Exception):
    """Base class for every error raised by the domain layer."""

    code = "domain_error"
    default_message = "domain error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)


class ValidationError(DomainError, ValueError):
    """Raised when entity data is invalid."""

    code = "validation_error"
    default_message = "invalid data"


class InvalidAmount(ValidationError):
    code = "invalid_amount"
    default_message = "invoice: amount must be positive"


class InvalidDescription(ValidationError):
    code = "invalid_description"
    default_message = "invoice: description must have at least 3 characters"


class InvalidPaymentType(ValidationError):
    code = "invalid_payment_type"
    default_message = "invoice: payment type is required"


class MissingAccount(ValidationError):
    code = "missing_account"
    default_message = "invoice: account ID is required"


class InvalidStatus(ValidationError):
    code = "invalid_status"
    default_message = "invoice: invalid status"


class InvalidName(ValidationError):
    code = "invalid_name"
    default_message = "account: name must have at least 2 characters"


class InvalidEmail(ValidationError):
    code = "invalid_email"
    default_message = "account: invalid email"


class InvalidBalanceAmount(ValidationError):
    code = "invalid_balance_amount"
    default_message = "account: amount must be positive"


class NotPending(DomainError):
    """Raised when a processing step runs against a non-pending invoice."""

    code = "not_pending"
    default_message = "invoice: can only process pending invoices"


class NotFoundError(DomainError, LookupError):
    code = "not_found"
    default_message = "not found"


class AccountNotFound(NotFoundError):
    code = "account_not_found"
    default_message = "account: not found"


class InvoiceNotFound(NotFoundError):
    code = "invoice_not_found"
    default_message = "invoice: not found"
