"""
Movement service — the append-only audit trail.

This module handles:
  - Appending a movement (validated, never partially written)
  - Listing movements newest first, with keyset cursor paging
  - Filtering by type and by date range
  - Administrative deletion (not used by any ledger operation)
  - record_movement(): the helper every other service calls after its
    primary write

Audit failures never undo money movements:
  record_movement() writes inside a SAVEPOINT. If the insert fails, only the
  savepoint is rolled back, the failure is logged, and the caller's balance
  changes stay in the session. Callers must flush their primary writes
  BEFORE calling it, so that a failing primary write surfaces as an error
  instead of being taken for an audit failure.

There is no update function on purpose.
"""

import uuid
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.exceptions import MissingFieldError, MovementNotFoundError
from ledger.models.movement import Movement, MovementEntityType, MovementType
from ledger.services.pagination import as_utc, older_than, split_page


logger = structlog.get_logger(__name__)


MOVEMENT_TYPE_LABELS: dict[MovementType, str] = {
    MovementType.ACCOUNT_CREATED: "Account created",
    MovementType.ACCOUNT_UPDATED: "Account updated",
    MovementType.ACCOUNT_DELETED: "Account deleted",
    MovementType.TRANSACTION_CREATED: "Transaction recorded",
    MovementType.TRANSACTION_UPDATED: "Transaction updated",
    MovementType.TRANSACTION_DELETED: "Transaction deleted",
    MovementType.TRANSFER_CREATED: "Transfer completed",
    MovementType.GOAL_CREATED: "Goal created",
    MovementType.GOAL_UPDATED: "Goal updated",
    MovementType.GOAL_DELETED: "Goal deleted",
    MovementType.GOAL_FUNDS_ADDED: "Funds added to goal",
    MovementType.RECURRING_TRANSACTION_CREATED: "Recurring transaction created",
    MovementType.RECURRING_TRANSACTION_UPDATED: "Recurring transaction updated",
    MovementType.RECURRING_TRANSACTION_DELETED: "Recurring transaction deleted",
}


def movement_type_label(movement_type: MovementType | str) -> str:
    """Human-readable label for a movement type; unknown types echo back."""
    try:
        return MOVEMENT_TYPE_LABELS[MovementType(movement_type)]
    except ValueError:
        return str(movement_type)


def format_amount(amount_cents: int, currency: str) -> str:
    """Render cents for movement descriptions: 1050, "USD" -> "USD 10.50"."""
    sign = "-" if amount_cents < 0 else ""
    whole, cents = divmod(abs(amount_cents), 100)
    return f"{currency} {sign}{whole}.{cents:02d}"


async def append_movement(
    db: AsyncSession,
    owner_id: str,
    movement_type: MovementType | None,
    description: str | None,
    entity_id=None,
    entity_type: MovementEntityType | None = None,
    amount_cents: int | None = None,
    currency: str | None = None,
    from_account_id=None,
    to_account_id=None,
    metadata: dict | None = None,
) -> Movement:
    """
    Validate and insert one movement.

    Raises:
        MissingFieldError: If owner, type or description is missing.
    """
    if not owner_id:
        raise MissingFieldError("owner_id")
    if movement_type is None:
        raise MissingFieldError("type")
    if description is None or not description.strip():
        raise MissingFieldError("description")

    movement = Movement(
        owner_id=owner_id,
        type=MovementType(movement_type),
        description=description.strip(),
        entity_id=str(entity_id) if entity_id is not None else None,
        entity_type=entity_type,
        amount_cents=amount_cents,
        currency=currency,
        from_account_id=str(from_account_id) if from_account_id is not None else None,
        to_account_id=str(to_account_id) if to_account_id is not None else None,
        details=dict(metadata or {}),
    )
    db.add(movement)
    await db.flush()
    return movement


async def record_movement(
    db: AsyncSession,
    owner_id: str,
    movement_type: MovementType,
    description: str,
    **fields,
) -> Movement | None:
    """
    Append a movement on behalf of a ledger operation.

    Returns the movement, or None when it could not be written. A failure
    here is logged and swallowed: the record of money moving matters more
    than the record of having recorded it.
    """
    try:
        async with db.begin_nested():
            return await append_movement(db, owner_id, movement_type, description, **fields)
    except Exception:
        logger.exception(
            "movement_append_failed",
            owner_id=owner_id,
            movement_type=str(getattr(movement_type, "value", movement_type)),
            entity_id=str(fields.get("entity_id")),
        )
        return None


async def list_movements(
    db: AsyncSession,
    owner_id: str,
    limit: int = 50,
    cursor: str | None = None,
) -> tuple[list[Movement], str | None]:
    """
    One page of an owner's movements, newest first.

    Returns:
        (movements, next_cursor). next_cursor is None on the last page.
    """
    query = (
        select(Movement)
        .where(Movement.owner_id == owner_id)
        .order_by(Movement.timestamp.desc(), Movement.id.desc())
        .limit(limit + 1)
    )
    if cursor:
        query = query.where(older_than(Movement.timestamp, Movement.id, cursor))

    result = await db.execute(query)
    return split_page(list(result.scalars().all()), limit, "timestamp")


async def list_movements_by_type(
    db: AsyncSession,
    owner_id: str,
    movement_type: MovementType,
    limit: int = 20,
) -> list[Movement]:
    """An owner's movements of one type, newest first."""
    result = await db.execute(
        select(Movement)
        .where(Movement.owner_id == owner_id)
        .where(Movement.type == MovementType(movement_type))
        .order_by(Movement.timestamp.desc(), Movement.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def list_movements_by_date_range(
    db: AsyncSession,
    owner_id: str,
    start: datetime,
    end: datetime,
    limit: int = 100,
    movement_type: MovementType | None = None,
) -> list[Movement]:
    """An owner's movements with start <= timestamp <= end, newest first, optionally of one type."""
    start, end = as_utc(start), as_utc(end)
    query = (
        select(Movement)
        .where(Movement.owner_id == owner_id)
        .where(Movement.timestamp >= start)
        .where(Movement.timestamp <= end)
        .order_by(Movement.timestamp.desc(), Movement.id.desc())
        .limit(limit)
    )
    if movement_type is not None:
        query = query.where(Movement.type == MovementType(movement_type))
    result = await db.execute(query)
    return list(result.scalars().all())


async def delete_movement(
    db: AsyncSession,
    owner_id: str,
    movement_id: uuid.UUID,
) -> None:
    """
    [ADMIN ONLY] Remove one movement.

    Exists for administrative cleanup; no ledger operation calls it.

    Raises:
        MovementNotFoundError: If the movement doesn't exist for this owner.
    """
    result = await db.execute(
        select(Movement)
        .where(Movement.id == movement_id)
        .where(Movement.owner_id == owner_id)
    )
    movement = result.scalar_one_or_none()
    if movement is None:
        raise MovementNotFoundError(movement_id)

    await db.delete(movement)
    await db.flush()
    logger.warning("movement_deleted", owner_id=owner_id, movement_id=str(movement_id))
