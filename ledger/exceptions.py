"""
Custom exception classes and FastAPI exception handlers.

The service layer raises domain-specific errors (like InsufficientFundsError)
without importing HTTP concepts. The handler layer translates them into a
discriminated JSON result that the UI can branch on:

    {"success": false, "error": "<message>", "error_type": "<kind>", ...}

Exception hierarchy:
    LedgerError (base)
    ├── LedgerValidationError        — caller-correctable input problems
    │   ├── InvalidAmountError       — amount <= 0
    │   ├── SameAccountError         — transfer source == destination
    │   ├── MissingFieldError        — a required field is empty
    │   ├── NoLinkedAccountError     — goal funding without a linked account
    │   ├── CurrencyMismatchError    — money would move between currencies
    │   └── GoalStatusError          — illegal goal status change
    ├── NotFoundError                — entity missing or owned by someone else
    │   ├── AccountNotFoundError
    │   ├── TransactionNotFoundError
    │   ├── GoalNotFoundError
    │   ├── RecurringTransactionNotFoundError
    │   └── MovementNotFoundError
    ├── InsufficientFundsError       — balance check failed before any write
    ├── PartialFailureError          — a later step of a compound operation failed
    ├── StoreUnavailableError        — the database could not be reached
    └── ConcurrentModificationError  — the row changed since it was read

Validation, not-found and insufficient-funds errors are always raised before
any write, so they are all-or-nothing by contract.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import structlog


logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class LedgerError(Exception):
    """Base exception for all ledger domain errors."""

    error_type = "ledger_error"
    status_code = 400

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)

    def to_payload(self) -> dict:
        return {"success": False, "error": self.detail, "error_type": self.error_type}


# ---------------------------------------------------------------------------
# Validation errors
# ---------------------------------------------------------------------------

class LedgerValidationError(LedgerError):
    """Raised for invalid caller input. No write has happened."""

    error_type = "validation_error"
    status_code = 400


class InvalidAmountError(LedgerValidationError):
    """Raised when an amount is zero, negative or not a whole number of cents."""

    error_type = "invalid_amount"

    def __init__(self, amount_cents):
        self.amount_cents = amount_cents
        super().__init__(f"Amount must be a positive number of cents, got {amount_cents!r}")


class SameAccountError(LedgerValidationError):
    """Raised when a transfer names the same account on both sides."""

    error_type = "same_account"

    def __init__(self, account_id):
        self.account_id = account_id
        super().__init__("Cannot transfer to the same account")


class MissingFieldError(LedgerValidationError):
    """Raised when a required field is missing or blank."""

    error_type = "missing_field"

    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f"Field '{field_name}' is required")


class NoLinkedAccountError(LedgerValidationError):
    """Raised when funding a goal that has no linked account."""

    error_type = "no_linked_account"

    def __init__(self, goal_id):
        self.goal_id = goal_id
        super().__init__(f"Goal {goal_id} has no linked account")


class CurrencyMismatchError(LedgerValidationError):
    """Raised when two sides of a money movement hold different currencies."""

    error_type = "currency_mismatch"

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Currency mismatch: expected {expected}, got {actual}")

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["expected_currency"] = self.expected
        payload["actual_currency"] = self.actual
        return payload


class GoalStatusError(LedgerValidationError):
    """Raised for a status change the goal lifecycle does not allow."""

    error_type = "goal_status"


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------

class NotFoundError(LedgerError):
    """
    Raised when an entity does not exist for the calling owner.

    Entities owned by someone else are reported the same way, so callers
    cannot probe for other owners' ids.
    """

    error_type = "not_found"
    status_code = 404
    entity_kind = "Entity"

    def __init__(self, entity_id):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_kind} {entity_id} not found")


class AccountNotFoundError(NotFoundError):
    error_type = "account_not_found"
    entity_kind = "Account"


class TransactionNotFoundError(NotFoundError):
    error_type = "transaction_not_found"
    entity_kind = "Transaction"


class GoalNotFoundError(NotFoundError):
    error_type = "goal_not_found"
    entity_kind = "Goal"


class RecurringTransactionNotFoundError(NotFoundError):
    error_type = "recurring_transaction_not_found"
    entity_kind = "Recurring transaction"


class MovementNotFoundError(NotFoundError):
    error_type = "movement_not_found"
    entity_kind = "Movement"


# ---------------------------------------------------------------------------
# Money and consistency errors
# ---------------------------------------------------------------------------

class InsufficientFundsError(LedgerError):
    """
    Raised when a transfer or goal funding exceeds the source balance.

    Attributes:
        account_id: The account that lacks sufficient funds.
        requested_cents: The amount the caller tried to move.
        available_cents: The current balance of the account.
    """

    error_type = "insufficient_funds"
    status_code = 422

    def __init__(self, account_id, requested_cents: int, available_cents: int):
        self.account_id = account_id
        self.requested_cents = requested_cents
        self.available_cents = available_cents
        super().__init__(
            f"Insufficient funds: requested {requested_cents} cents, "
            f"available {available_cents} cents"
        )

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["requested_cents"] = self.requested_cents
        payload["available_cents"] = self.available_cents
        return payload


class PartialFailureError(LedgerError):
    """
    Raised when a step of a multi-step operation fails after earlier steps ran.

    Attributes:
        operation: Name of the compound operation (e.g. "transfer").
        failed_step: The step that raised.
        completed_steps: Steps that had been written before the failure.
        rolled_back: Whether the session rollback of those steps succeeded.
            When False the stored balances must be checked by hand.
    """

    error_type = "partial_failure"
    status_code = 500

    def __init__(
        self,
        operation: str,
        failed_step: str,
        completed_steps: list[str],
        rolled_back: bool,
    ):
        self.operation = operation
        self.failed_step = failed_step
        self.completed_steps = list(completed_steps)
        self.rolled_back = rolled_back
        if rolled_back:
            outcome = "earlier steps were rolled back"
        else:
            outcome = "earlier steps may have been saved, please verify your balances"
        super().__init__(
            f"{operation} failed at step '{failed_step}'; {outcome}"
        )

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["operation"] = self.operation
        payload["failed_step"] = self.failed_step
        payload["completed_steps"] = self.completed_steps
        payload["rolled_back"] = self.rolled_back
        return payload


class StoreUnavailableError(LedgerError):
    """Raised when the database cannot be reached. State may be partial."""

    error_type = "store_unavailable"
    status_code = 503

    def __init__(self, detail: str = "The data store is unavailable, please verify your balances"):
        super().__init__(detail)


class ConcurrentModificationError(LedgerError):
    """Raised when a row was changed by another writer after it was read."""

    error_type = "concurrent_modification"
    status_code = 409

    def __init__(self, detail: str = "The record was modified by another operation, please retry"):
        super().__init__(detail)


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register exception handlers with the FastAPI application.

    Every LedgerError subclass carries its own status code and payload, so a
    single handler covers the whole hierarchy. Anything else is an
    unexpected failure: it is logged and rendered as a generic result.

    This is called once during app startup in main.py.
    """

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
        if isinstance(exc, (PartialFailureError, StoreUnavailableError)):
            logger.error(
                "ledger_operation_failed",
                path=request.url.path,
                error_type=exc.error_type,
                detail=exc.detail,
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unexpected_error", path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "An unexpected error occurred",
                "error_type": "internal_error",
            },
        )
