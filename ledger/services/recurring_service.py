"""
Recurring transaction service — standing incomes and expenses.

This module handles:
  - Creating a recurring transaction against one of the owner's accounts
  - Listing (newest first) and retrieval
  - Editing, which recomputes the next due date when the schedule changes
  - Deletion

A recurring transaction is a schedule, not a money movement: none of these
functions touch an account balance, so they need no OperationSteps. Each
write still records a movement on the audit trail.

Next due date:
  calculate_next_process_date() returns the first date of the series that
  falls strictly after today. A start date in the future is its own next
  date. Monthly, quarterly and yearly series keep the start date's day of
  month and fall back to the last day of shorter months (Jan 31 -> Feb 28,
  or Feb 29 in leap years). A series whose next date lies past its end date
  has none.
"""

import calendar
import uuid
from datetime import date, datetime, timedelta, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.exceptions import (
    LedgerValidationError,
    MissingFieldError,
    RecurringTransactionNotFoundError,
)
from ledger.models.movement import MovementEntityType, MovementType
from ledger.models.recurring_transaction import RecurrenceFrequency, RecurringTransaction
from ledger.models.transaction import TransactionCategory, TransactionType
from ledger.schemas.recurring import RecurringTransactionPatch
from ledger.services.account_service import get_account, require_positive_amount
from ledger.services.movement_service import format_amount, record_movement
from ledger.services.transaction_service import require_income_or_expense


logger = structlog.get_logger(__name__)


_DAY_STEPS = {
    RecurrenceFrequency.DAILY: 1,
    RecurrenceFrequency.WEEKLY: 7,
    RecurrenceFrequency.BIWEEKLY: 14,
}

_MONTH_STEPS = {
    RecurrenceFrequency.MONTHLY: 1,
    RecurrenceFrequency.QUARTERLY: 3,
    RecurrenceFrequency.YEARLY: 12,
}

# Fields whose change moves the next due date
_SCHEDULE_FIELDS = ("frequency", "start_date", "end_date")


def add_months(start: date, months: int) -> date:
    """Shift a date by whole months, clamping the day to the target month's length."""
    month_index = start.month - 1 + months
    year, month = start.year + month_index // 12, month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def calculate_next_process_date(
    start_date: date,
    frequency: RecurrenceFrequency,
    today: date | None = None,
    end_date: date | None = None,
) -> date | None:
    """
    First occurrence of the series strictly after `today`.

    Args:
        start_date: The first occurrence of the series.
        frequency: How often it repeats.
        today: Reference date, defaults to the current date.
        end_date: Last date the series may fall on.

    Returns:
        The next due date, or None if it would fall after end_date.
    """
    today = today or date.today()
    frequency = RecurrenceFrequency(frequency)

    if start_date > today:
        upcoming = start_date
    elif frequency in _DAY_STEPS:
        step = _DAY_STEPS[frequency]
        periods = (today - start_date).days // step + 1
        upcoming = start_date + timedelta(days=periods * step)
    else:
        step = _MONTH_STEPS[frequency]
        elapsed = (today.year - start_date.year) * 12 + today.month - start_date.month
        periods = elapsed // step
        upcoming = add_months(start_date, periods * step)
        while upcoming <= today:
            periods += 1
            upcoming = add_months(start_date, periods * step)

    if end_date is not None and upcoming > end_date:
        return None
    return upcoming


def _check_dates(start_date: date, end_date: date | None) -> None:
    if end_date is not None and end_date < start_date:
        raise LedgerValidationError("end_date must not be before start_date")


def _movement_accounts(txn_type: TransactionType, account_id: uuid.UUID) -> dict:
    # Income lands on the account, an expense leaves it
    if txn_type == TransactionType.INCOME:
        return {"to_account_id": account_id}
    return {"from_account_id": account_id}


async def add_recurring_transaction(
    db: AsyncSession,
    owner_id: str,
    account_id: uuid.UUID | None,
    amount_cents: int,
    txn_type: TransactionType,
    description: str,
    frequency: RecurrenceFrequency,
    start_date: date,
    end_date: date | None = None,
    category: TransactionCategory = TransactionCategory.OTHER,
    is_active: bool = True,
) -> RecurringTransaction:
    """
    Create a recurring transaction on one of the owner's accounts.

    Raises:
        MissingFieldError: If the account or description is missing.
        InvalidAmountError: If amount_cents <= 0.
        LedgerValidationError: If the type is not income or expense, or the
            end date is before the start date.
        AccountNotFoundError: If the account doesn't exist for this owner.
    """
    if account_id is None:
        raise MissingFieldError("account_id")
    if description is None or not description.strip():
        raise MissingFieldError("description")
    require_positive_amount(amount_cents)
    txn_type = require_income_or_expense(txn_type)
    frequency = RecurrenceFrequency(frequency)
    _check_dates(start_date, end_date)

    account = await get_account(db, owner_id, account_id)

    recurring = RecurringTransaction(
        owner_id=owner_id,
        account_id=account.id,
        amount_cents=amount_cents,
        currency=account.currency,
        type=txn_type,
        category=TransactionCategory(category),
        description=description.strip(),
        frequency=frequency,
        start_date=start_date,
        end_date=end_date,
        is_active=is_active,
        next_process_date=calculate_next_process_date(start_date, frequency, end_date=end_date),
    )
    db.add(recurring)
    await db.flush()

    await record_movement(
        db,
        owner_id,
        MovementType.RECURRING_TRANSACTION_CREATED,
        f'Recurring {txn_type.value} "{recurring.description}" of '
        f'{format_amount(amount_cents, account.currency)} ({frequency.value}) on "{account.name}"',
        entity_id=recurring.id,
        entity_type=MovementEntityType.RECURRING_TRANSACTION,
        amount_cents=amount_cents,
        currency=account.currency,
        metadata={
            "account_name": account.name,
            "frequency": frequency.value,
            "transaction_type": txn_type.value,
            "next_process_date": (
                recurring.next_process_date.isoformat() if recurring.next_process_date else None
            ),
        },
        **_movement_accounts(txn_type, account.id),
    )

    logger.info(
        "recurring_transaction_created",
        owner_id=owner_id,
        recurring_transaction_id=str(recurring.id),
        frequency=frequency.value,
    )
    return recurring


async def get_recurring_transactions(db: AsyncSession, owner_id: str) -> list[RecurringTransaction]:
    """List an owner's recurring transactions, newest first."""
    result = await db.execute(
        select(RecurringTransaction)
        .where(RecurringTransaction.owner_id == owner_id)
        .order_by(RecurringTransaction.created_at.desc(), RecurringTransaction.id.desc())
    )
    return list(result.scalars().all())


async def get_recurring_transaction(
    db: AsyncSession,
    owner_id: str,
    recurring_id: uuid.UUID,
) -> RecurringTransaction:
    """
    Raises:
        RecurringTransactionNotFoundError: If it doesn't exist for this owner.
    """
    result = await db.execute(
        select(RecurringTransaction)
        .where(RecurringTransaction.id == recurring_id)
        .where(RecurringTransaction.owner_id == owner_id)
    )
    recurring = result.scalar_one_or_none()
    if recurring is None:
        raise RecurringTransactionNotFoundError(recurring_id)
    return recurring


async def update_recurring_transaction(
    db: AsyncSession,
    owner_id: str,
    recurring_id: uuid.UUID,
    patch: RecurringTransactionPatch,
) -> RecurringTransaction:
    """
    Merge a patch into a recurring transaction.

    A new account must belong to the owner and brings its currency along.
    Changing the frequency, start date or end date recomputes the next due
    date. `end_date: null` removes the end date; other nulls are ignored.

    Raises:
        RecurringTransactionNotFoundError: If it doesn't exist for this owner.
        AccountNotFoundError: If the new account doesn't exist for this owner.
        LedgerValidationError: If the merged end date is before the start date.
    """
    recurring = await get_recurring_transaction(db, owner_id, recurring_id)
    changes = patch.model_dump(exclude_unset=True)
    changes = {
        field: value
        for field, value in changes.items()
        if value is not None or field == "end_date"
    }

    if "description" in changes and not changes["description"].strip():
        raise MissingFieldError("description")
    new_type = require_income_or_expense(changes.get("type", recurring.type))
    new_start = changes.get("start_date", recurring.start_date)
    new_end = changes.get("end_date", recurring.end_date)
    _check_dates(new_start, new_end)

    account = None
    if changes.get("account_id", recurring.account_id) != recurring.account_id:
        account = await get_account(db, owner_id, changes["account_id"])

    if account is not None:
        recurring.account_id = account.id
        recurring.currency = account.currency
    recurring.type = new_type
    if "amount_cents" in changes:
        recurring.amount_cents = changes["amount_cents"]
    if "description" in changes:
        recurring.description = changes["description"].strip()
    if "category" in changes:
        recurring.category = TransactionCategory(changes["category"])
    if "frequency" in changes:
        recurring.frequency = RecurrenceFrequency(changes["frequency"])
    if "is_active" in changes:
        recurring.is_active = changes["is_active"]
    recurring.start_date = new_start
    recurring.end_date = new_end
    if any(field in changes for field in _SCHEDULE_FIELDS):
        recurring.next_process_date = calculate_next_process_date(
            recurring.start_date, recurring.frequency, end_date=recurring.end_date
        )
    recurring.updated_at = datetime.now(timezone.utc)
    await db.flush()

    await record_movement(
        db,
        owner_id,
        MovementType.RECURRING_TRANSACTION_UPDATED,
        f'Recurring transaction "{recurring.description}" updated',
        entity_id=recurring.id,
        entity_type=MovementEntityType.RECURRING_TRANSACTION,
        amount_cents=recurring.amount_cents,
        currency=recurring.currency,
        metadata={
            "changed_fields": sorted(changes),
            "frequency": recurring.frequency.value,
            "is_active": recurring.is_active,
            "next_process_date": (
                recurring.next_process_date.isoformat() if recurring.next_process_date else None
            ),
        },
        **_movement_accounts(recurring.type, recurring.account_id),
    )
    return recurring


async def delete_recurring_transaction(
    db: AsyncSession,
    owner_id: str,
    recurring_id: uuid.UUID,
) -> None:
    """
    Raises:
        RecurringTransactionNotFoundError: If it doesn't exist for this owner.
    """
    recurring = await get_recurring_transaction(db, owner_id, recurring_id)
    description, amount, currency = recurring.description, recurring.amount_cents, recurring.currency
    txn_type, account_id, frequency = recurring.type, recurring.account_id, recurring.frequency

    await db.delete(recurring)
    await db.flush()

    await record_movement(
        db,
        owner_id,
        MovementType.RECURRING_TRANSACTION_DELETED,
        f'Recurring transaction "{description}" deleted',
        entity_id=recurring_id,
        entity_type=MovementEntityType.RECURRING_TRANSACTION,
        amount_cents=amount,
        currency=currency,
        metadata={
            "frequency": frequency.value,
            "transaction_type": txn_type.value,
        },
        **_movement_accounts(txn_type, account_id),
    )
