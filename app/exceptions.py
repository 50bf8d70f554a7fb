"""Domain errors raised by the ledger and its workflows, plus their HTTP rendering."""

import logging
from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Base error with a stable code, an HTTP status and optional details."""

    code = "ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(LedgerError):
    """Malformed or out-of-range input."""

    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST


class AccountResolutionError(ValidationError):
    """Some students in a batch have no account, or more than one candidate account."""

    def __init__(self, missing: list[int], ambiguous: list[int]):
        parts = []
        if missing:
            parts.append(f"No account found for students: {', '.join(map(str, missing))}")
        if ambiguous:
            parts.append(
                "Select a class when students are in multiple classes: "
                + ", ".join(map(str, ambiguous))
            )
        super().__init__(
            "; ".join(parts),
            details={"missing": missing, "ambiguous": ambiguous},
        )
        self.missing = missing
        self.ambiguous = ambiguous


class NotFoundError(LedgerError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenError(LedgerError):
    code = "FORBIDDEN"
    status_code = status.HTTP_403_FORBIDDEN


class InvalidStateError(LedgerError):
    """Attempted transition out of a terminal or otherwise illegal state."""

    code = "INVALID_STATE"
    status_code = status.HTTP_409_CONFLICT


class InsufficientFundsError(LedgerError):
    code = "INSUFFICIENT_FUNDS"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, required: int, balance: int):
        super().__init__(
            f"Insufficient balance (need {required}, have {balance})",
            details={"required": required, "balance": balance},
        )


class PersistenceError(LedgerError):
    """The store could not complete an atomic write; nothing was changed."""

    code = "PERSISTENCE_ERROR"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class BulkAwardIncompleteError(PersistenceError):
    """A bulk award stopped part way; earlier awards were kept."""

    def __init__(self, completed: int, total: int, failed_student_id: int):
        super().__init__(
            f"Bulk award stopped after {completed} of {total} transactions",
            details={
                "completed": completed,
                "total": total,
                "failed_student_id": failed_student_id,
            },
        )
        self.completed = completed
        self.total = total
        self.failed_student_id = failed_student_id


def error_response(exc: LedgerError) -> JSONResponse:
    body = {
        "error": {
            "message": exc.message,
            "code": exc.code,
            "details": exc.details,
        }
    }
    return JSONResponse(status_code=exc.status_code, content=body)


async def ledger_exception_handler(request: Request, exc: LedgerError) -> JSONResponse:
    if isinstance(exc, PersistenceError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return error_response(exc)
