"""Exception handlers mapping domain errors to HTTP responses."""
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from domain.errors import DomainError, NotFoundError, NotPending, ValidationError
from infrastructure.logging import get_logger


logger = get_logger("payment-gateway")


class Unauthorized(Exception):
    """Raised by the API key dependency; not a domain concern."""

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


def _error(status_code: int, detail, error_type: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, "error_type": error_type})


def status_for(exc: DomainError) -> int:
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, NotPending):
        return status.HTTP_409_CONFLICT
    return status.HTTP_400_BAD_REQUEST


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Map domain errors to 400/404/409 with the error's stable code."""
    status_code = status_for(exc)
    logger.warning(
        f"Domain error: {exc}",
        path=request.url.path,
        error_type=exc.code,
        status_code=status_code,
    )
    return _error(status_code, str(exc), exc.code)


async def unauthorized_handler(request: Request, exc: Unauthorized) -> JSONResponse:
    logger.warning("Unauthorized request", path=request.url.path, error=exc.detail)
    return _error(status.HTTP_401_UNAUTHORIZED, exc.detail, "Unauthorized")


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle FastAPI request validation errors with detailed messages."""
    logger.warning(
        "Request validation failed",
        path=request.url.path,
        errors=exc.errors(),
    )
    return _error(status.HTTP_400_BAD_REQUEST, jsonable_errors(exc), "RequestValidationError")


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold exception instances that json can't encode
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle generic exceptions with 500 status without exposing internals."""
    logger.error(
        f"Internal server error: {type(exc).__name__}",
        path=request.url.path,
        exc_info=True,
    )
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", "InternalServerError")
