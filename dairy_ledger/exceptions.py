"""
Application exceptions and their HTTP rendering.

Services raise these; they never build HTTP responses themselves.
Every exception carries a stable error_code so API clients can
branch on it without parsing the message.
"""

import logging
from typing import Any, Dict

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppException):
    """Malformed input that no retry will fix."""

    def __init__(
        self,
        message: str,
        details: Dict[str, Any] | None = None,
        error_code: str = "ERR_VALIDATION",
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
        )


class UnbalancedEntriesError(ValidationError):
    """Raised when total debits and total credits differ beyond tolerance."""

    def __init__(self, total_debit, total_credit):
        super().__init__(
            message=(
                f"Total debit must equal total credit: "
                f"debit={total_debit}, credit={total_credit}"
            ),
            details={
                "total_debit": str(total_debit),
                "total_credit": str(total_credit),
            },
            error_code="ERR_UNBALANCED_ENTRIES",
        )


class NoApprovedTransfersError(ValidationError):
    def __init__(self):
        super().__init__(
            message="No approved transfers to process",
            error_code="ERR_NO_APPROVED_TRANSFERS",
        )


class DuplicateError(AppException):
    """Raised when a unique business key is already taken."""

    def __init__(self, message: str, details: Dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code="ERR_DUPLICATE",
            status_code=status.HTTP_409_CONFLICT,
            details=details,
        )


class NotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(
        self,
        resource: str,
        resource_id: Any = None,
        error_code: str = "ERR_NOT_FOUND",
    ):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} {resource_id} not found"
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id},
        )


class LedgerNotFoundError(NotFoundError):
    """An entry references one or more ledgers that do not exist."""

    def __init__(self, ledger_ids):
        missing = sorted(ledger_ids)
        super().__init__(
            resource="Ledger",
            resource_id=missing if len(missing) > 1 else missing[0],
            error_code="ERR_LEDGER_NOT_FOUND",
        )


class InvalidStateError(AppException):
    """Raised for an illegal state transition."""

    def __init__(self, message: str, details: Dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code="ERR_INVALID_STATE",
            status_code=status.HTTP_409_CONFLICT,
            details=details,
        )


class ConcurrencyError(AppException):
    """
    A conflicting concurrent write was detected.

    The transaction has been rolled back; the whole operation
    is safe to retry.
    """

    def __init__(self, message: str = "Concurrent update conflict"):
        super().__init__(
            message=message,
            error_code="ERR_CONCURRENCY",
            status_code=status.HTTP_409_CONFLICT,
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details,
        },
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handler for pydantic request validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_REQUEST_VALIDATION",
            "message": "Request validation error",
            "details": {"errors": _jsonable_errors(exc.errors())},
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unexpected failures are logged and reported without internals."""
    logger.exception(
        "Unhandled exception",
        extra={"method": request.method, "path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {},
        },
    )


def _jsonable_errors(errors) -> list[dict]:
    # pydantic puts the raised exception object into "ctx"
    cleaned = []
    for error in errors:
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        error.pop("input", None)
        cleaned.append(error)
    return cleaned


def register_exception_handlers(app) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
