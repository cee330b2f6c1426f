"""
Step tracking for compound ledger operations.

A transfer or a goal funding writes several rows (two balances, one or two
transaction legs, a goal counter). All of them go through the caller's
session, so nothing is durable until the request commits. What can still go
wrong is a flush failing half way, after earlier steps were already sent to
the database. OperationSteps wraps each write step and, on failure:

  1. rolls the session back, so the earlier steps are discarded together
  2. raises a domain error that says which step failed and what had run

    steps = OperationSteps(db, "transfer")
    async with steps.step("debit_source"):
        ...
        await db.flush()
    async with steps.step("credit_destination"):
        ...
        await db.flush()

Failure mapping:
  - StaleDataError (version check failed)   -> ConcurrentModificationError
  - OperationalError / InterfaceError       -> StoreUnavailableError
  - anything else after a completed step    -> PartialFailureError
  - anything else on the first step         -> re-raised unchanged

LedgerError subclasses raised inside a step pass through untouched.
"""

from contextlib import asynccontextmanager

import structlog
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ledger.exceptions import (
    ConcurrentModificationError,
    LedgerError,
    PartialFailureError,
    StoreUnavailableError,
)


logger = structlog.get_logger(__name__)


class OperationSteps:
    """Tracks the write steps of one compound operation."""

    def __init__(self, db: AsyncSession, operation: str):
        self.db = db
        self.operation = operation
        self.completed: list[str] = []

    async def _rollback(self) -> bool:
        try:
            await self.db.rollback()
        except Exception:
            logger.exception("operation_rollback_failed", operation=self.operation)
            return False
        return True

    @asynccontextmanager
    async def step(self, name: str):
        try:
            yield
        except LedgerError:
            raise
        except StaleDataError as exc:
            await self._rollback()
            raise ConcurrentModificationError() from exc
        except (OperationalError, InterfaceError) as exc:
            await self._rollback()
            raise StoreUnavailableError() from exc
        except Exception as exc:
            rolled_back = await self._rollback()
            if not self.completed:
                raise
            logger.error(
                "operation_partial_failure",
                operation=self.operation,
                failed_step=name,
                completed_steps=self.completed,
                rolled_back=rolled_back,
            )
            raise PartialFailureError(
                operation=self.operation,
                failed_step=name,
                completed_steps=self.completed,
                rolled_back=rolled_back,
            ) from exc
        self.completed.append(name)
