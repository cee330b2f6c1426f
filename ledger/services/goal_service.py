"""
Goal service — savings goals and the Goal Funding Service.

This module handles:
  - Goal creation, linked to an existing account or to a new savings account
  - Listing, retrieval, update and deletion
  - Funding a goal from its linked account (add_funds_to_goal)
  - Explicit progress adjustments that move no money (update_goal_progress)

Account back-reference:
  The linked account carries is_goal_account/goal_id pointing at the goal.
  It is set on create, moved when the link changes, and cleared on delete.
  Several goals may share one account; the back-reference names the one
  linked most recently.

Completion:
  A goal becomes completed the moment current >= target, through funding,
  a progress adjustment or a lowered target. It never goes back to active.
"""

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.exceptions import (
    CurrencyMismatchError,
    GoalNotFoundError,
    GoalStatusError,
    InsufficientFundsError,
    LedgerValidationError,
    MissingFieldError,
    NoLinkedAccountError,
)
from ledger.models.account import Account, AccountType
from ledger.models.account_transaction import (
    AccountTransaction,
    AccountTransactionType,
    GOAL_CONTRIBUTION_CATEGORY,
)
from ledger.models.goal import Goal, GoalStatus
from ledger.models.movement import MovementEntityType, MovementType
from ledger.schemas.goal import GoalPatch
from ledger.services import account_service
from ledger.services.account_service import require_positive_amount
from ledger.services.movement_service import format_amount, record_movement
from ledger.services.operation import OperationSteps
from ledger.services.pagination import as_utc


logger = structlog.get_logger(__name__)


def _mark_completed_if_reached(goal: Goal) -> bool:
    """Complete an active goal that reached its target. Returns True if it flipped."""
    if goal.status == GoalStatus.ACTIVE and goal.current_amount_cents >= goal.target_amount_cents:
        goal.status = GoalStatus.COMPLETED
        return True
    return False


def _link_account(account: Account, goal: Goal) -> None:
    account.is_goal_account = True
    account.goal_id = goal.id
    account.updated_at = datetime.now(timezone.utc)


async def _unlink_account(db: AsyncSession, owner_id: str, account_id: uuid.UUID, goal_id: uuid.UUID) -> None:
    # The account may already be gone; nothing to clear then
    result = await db.execute(
        select(Account)
        .where(Account.id == account_id)
        .where(Account.owner_id == owner_id)
    )
    account = result.scalar_one_or_none()
    if account is not None and account.goal_id == goal_id:
        account.is_goal_account = False
        account.goal_id = None
        account.updated_at = datetime.now(timezone.utc)


async def create_goal(
    db: AsyncSession,
    owner_id: str,
    name: str,
    target_amount_cents: int,
    currency: str | None = None,
    description: str | None = None,
    deadline: datetime | None = None,
    account_id: uuid.UUID | None = None,
    create_account: bool = False,
    account_name: str | None = None,
    account_type: AccountType = AccountType.SAVINGS,
) -> Goal:
    """
    Create a goal and link its funding account.

    Exactly one of `account_id` or `create_account=True` must be given. A
    created account opens at zero and is named after the goal unless
    `account_name` is passed.

    Raises:
        MissingFieldError: If the name is blank or no account is given.
        InvalidAmountError: If the target is not positive.
        AccountNotFoundError: If account_id doesn't exist for this owner.
        CurrencyMismatchError: If currency differs from the linked account's.
    """
    if not name or not name.strip():
        raise MissingFieldError("name")
    require_positive_amount(target_amount_cents)
    if account_id is not None and create_account:
        raise LedgerValidationError("Pass either account_id or create_account, not both")
    if account_id is None and not create_account:
        raise MissingFieldError("account_id")

    if create_account:
        account = await account_service.create_account(
            db,
            owner_id,
            name=account_name or f"{name.strip()} Savings",
            account_type=account_type,
            initial_balance_cents=0,
            currency=currency,
        )
    else:
        account = await account_service.get_account(db, owner_id, account_id, for_update=True)
        if currency and currency.upper() != account.currency:
            raise CurrencyMismatchError(expected=account.currency, actual=currency.upper())

    goal = Goal(
        owner_id=owner_id,
        name=name.strip(),
        description=description,
        target_amount_cents=target_amount_cents,
        current_amount_cents=0,
        currency=(currency or account.currency).upper(),
        status=GoalStatus.ACTIVE,
        account_id=account.id,
        deadline=as_utc(deadline) if deadline else None,
    )
    db.add(goal)
    await db.flush()

    _link_account(account, goal)
    await db.flush()

    await record_movement(
        db,
        owner_id,
        MovementType.GOAL_CREATED,
        f'Goal "{goal.name}" created with target {format_amount(target_amount_cents, goal.currency)}',
        entity_id=goal.id,
        entity_type=MovementEntityType.GOAL,
        amount_cents=target_amount_cents,
        currency=goal.currency,
        to_account_id=account.id,
        metadata={
            "goal_name": goal.name,
            "account_id": str(account.id),
            "account_name": account.name,
            "account_created": create_account,
        },
    )
    return goal


async def get_goals(db: AsyncSession, owner_id: str) -> list[Goal]:
    """List all goals of an owner, newest first."""
    result = await db.execute(
        select(Goal)
        .where(Goal.owner_id == owner_id)
        .order_by(Goal.created_at.desc())
    )
    return list(result.scalars().all())


async def get_goal(
    db: AsyncSession,
    owner_id: str,
    goal_id: uuid.UUID,
    for_update: bool = False,
) -> Goal:
    """
    Raises:
        GoalNotFoundError: If the goal doesn't exist for this owner.
    """
    query = (
        select(Goal)
        .where(Goal.id == goal_id)
        .where(Goal.owner_id == owner_id)
    )
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    goal = result.scalar_one_or_none()
    if goal is None:
        raise GoalNotFoundError(goal_id)
    return goal


async def update_goal(
    db: AsyncSession,
    owner_id: str,
    goal_id: uuid.UUID,
    patch: GoalPatch,
) -> Goal:
    """
    Merge a GoalPatch into a goal.

    Changing `account_id` moves the account back-reference; passing it as
    null detaches the goal. A new target re-evaluates completion. A
    completed goal keeps its status.

    Raises:
        GoalNotFoundError: If the goal doesn't exist for this owner.
        AccountNotFoundError: If the new account doesn't exist for this owner.
        CurrencyMismatchError: If the new account holds another currency.
        GoalStatusError: If the status of a completed goal is changed.
    """
    goal = await get_goal(db, owner_id, goal_id, for_update=True)
    changes = patch.model_dump(exclude_unset=True)

    if changes.get("status") is not None:
        if goal.is_completed and changes["status"] != GoalStatus.COMPLETED.value:
            raise GoalStatusError("A completed goal cannot change status")

    new_account = None
    relink = "account_id" in changes and changes["account_id"] != goal.account_id
    if relink and changes["account_id"] is not None:
        new_account = await account_service.get_account(
            db, owner_id, changes["account_id"], for_update=True
        )
        if new_account.currency != goal.currency:
            raise CurrencyMismatchError(expected=goal.currency, actual=new_account.currency)

    old_account_id = goal.account_id
    for field in ("name", "description", "target_amount_cents", "deadline"):
        if field not in changes:
            continue
        value = changes[field]
        if field in ("name", "target_amount_cents") and value is None:
            continue
        if field == "deadline" and value is not None:
            value = as_utc(value)
        setattr(goal, field, value)
    if changes.get("status") is not None:
        goal.status = GoalStatus(changes["status"])
    if relink:
        goal.account_id = changes["account_id"]
    just_completed = _mark_completed_if_reached(goal)
    goal.updated_at = datetime.now(timezone.utc)
    await db.flush()

    if relink:
        if old_account_id is not None:
            await _unlink_account(db, owner_id, old_account_id, goal.id)
        if new_account is not None:
            _link_account(new_account, goal)
        await db.flush()

    await record_movement(
        db,
        owner_id,
        MovementType.GOAL_UPDATED,
        f'Goal "{goal.name}" updated',
        entity_id=goal.id,
        entity_type=MovementEntityType.GOAL,
        metadata={
            "goal_name": goal.name,
            "changed_fields": sorted(changes),
            "status": goal.status.value,
            "completed": just_completed,
        },
    )
    return goal


async def update_goal_progress(
    db: AsyncSession,
    owner_id: str,
    goal_id: uuid.UUID,
    delta_cents: int,
) -> Goal:
    """
    Adjust a goal's progress counter without moving any money.

    A negative delta is the explicit reduction path; the counter stops at
    zero. Reaching the target completes the goal; dropping below it later
    does not reactivate it.

    Raises:
        GoalNotFoundError: If the goal doesn't exist for this owner.
        LedgerValidationError: If delta_cents is zero or not a whole number.
    """
    if isinstance(delta_cents, bool) or not isinstance(delta_cents, int) or delta_cents == 0:
        raise LedgerValidationError("Progress delta must be a non-zero number of cents")

    goal = await get_goal(db, owner_id, goal_id, for_update=True)
    previous = goal.current_amount_cents

    goal.current_amount_cents = max(0, previous + delta_cents)
    just_completed = _mark_completed_if_reached(goal)
    goal.updated_at = datetime.now(timezone.utc)
    await db.flush()

    await record_movement(
        db,
        owner_id,
        MovementType.GOAL_UPDATED,
        f'Progress of goal "{goal.name}" adjusted by {format_amount(delta_cents, goal.currency)}',
        entity_id=goal.id,
        entity_type=MovementEntityType.GOAL,
        amount_cents=goal.current_amount_cents - previous,
        currency=goal.currency,
        metadata={
            "goal_name": goal.name,
            "previous_amount_cents": previous,
            "new_amount_cents": goal.current_amount_cents,
            "completed": just_completed,
        },
    )
    return goal


async def delete_goal(
    db: AsyncSession,
    owner_id: str,
    goal_id: uuid.UUID,
) -> None:
    """
    Delete a goal and clear its account back-reference.

    The linked account and its balance are left as they are.

    Raises:
        GoalNotFoundError: If the goal doesn't exist for this owner.
    """
    goal = await get_goal(db, owner_id, goal_id, for_update=True)
    name, account_id = goal.name, goal.account_id
    current, currency = goal.current_amount_cents, goal.currency

    if account_id is not None:
        await _unlink_account(db, owner_id, account_id, goal.id)
    await db.delete(goal)
    await db.flush()

    await record_movement(
        db,
        owner_id,
        MovementType.GOAL_DELETED,
        f'Goal "{name}" deleted',
        entity_id=goal_id,
        entity_type=MovementEntityType.GOAL,
        amount_cents=current,
        currency=currency,
        metadata={
            "goal_name": name,
            "account_id": str(account_id) if account_id else None,
        },
    )


async def add_funds_to_goal(
    db: AsyncSession,
    owner_id: str,
    goal_id: uuid.UUID,
    amount_cents: int,
) -> dict:
    """
    Move money from a goal's linked account into its progress counter.

    Steps, in order: load goal, load linked account, currency check, funds
    check, debit the account, increment the goal (completing it on reaching
    the target), write a goal-contribution debit on the account, record
    goal_funds_added. The checks all run before the first write.

    A completed goal still accepts funds; a canceled goal does not.

    Returns:
        Dict with completed, new_balance_cents, new_goal_amount_cents, goal.

    Raises:
        InvalidAmountError: If amount_cents <= 0.
        GoalNotFoundError: If the goal doesn't exist for this owner.
        NoLinkedAccountError: If the goal has no linked account.
        AccountNotFoundError: If the linked account no longer exists.
        CurrencyMismatchError: If the account and goal currencies differ.
        GoalStatusError: If the goal is canceled.
        InsufficientFundsError: If the account balance is below amount_cents.
        PartialFailureError: If a later step fails after the account debit.
    """
    require_positive_amount(amount_cents)

    goal = await get_goal(db, owner_id, goal_id, for_update=True)
    if goal.account_id is None:
        raise NoLinkedAccountError(goal_id)
    if goal.status == GoalStatus.CANCELED:
        raise GoalStatusError("Cannot add funds to a canceled goal")

    account = await account_service.get_account(db, owner_id, goal.account_id, for_update=True)
    if account.currency != goal.currency:
        raise CurrencyMismatchError(expected=goal.currency, actual=account.currency)

    if account.balance_cents < amount_cents:
        raise InsufficientFundsError(
            account_id=account.id,
            requested_cents=amount_cents,
            available_cents=account.balance_cents,
        )

    steps = OperationSteps(db, "add_funds_to_goal")

    async with steps.step("debit_account"):
        account.balance_cents -= amount_cents
        account.updated_at = datetime.now(timezone.utc)
        await db.flush()

    async with steps.step("increment_goal"):
        goal.current_amount_cents += amount_cents
        _mark_completed_if_reached(goal)
        goal.updated_at = datetime.now(timezone.utc)
        await db.flush()

    async with steps.step("write_contribution"):
        contribution = AccountTransaction(
            owner_id=owner_id,
            account_id=account.id,
            type=AccountTransactionType.DEBIT,
            amount_cents=amount_cents,
            category=GOAL_CONTRIBUTION_CATEGORY,
            description=f"Funds for goal: {goal.name}",
            goal_id=goal.id,
        )
        db.add(contribution)
        await db.flush()

    await record_movement(
        db,
        owner_id,
        MovementType.GOAL_FUNDS_ADDED,
        f'{format_amount(amount_cents, account.currency)} added to goal "{goal.name}" '
        f'from "{account.name}"',
        entity_id=goal.id,
        entity_type=MovementEntityType.GOAL,
        amount_cents=amount_cents,
        currency=account.currency,
        from_account_id=account.id,
        metadata={
            "goal_name": goal.name,
            "account_name": account.name,
            "new_goal_amount_cents": goal.current_amount_cents,
            "completed": goal.is_completed,
            "contribution_transaction_id": str(contribution.id),
        },
    )

    logger.info(
        "goal_funded",
        owner_id=owner_id,
        goal_id=str(goal.id),
        amount_cents=amount_cents,
        completed=goal.is_completed,
    )
    return {
        "completed": goal.is_completed,
        "new_balance_cents": account.balance_cents,
        "new_goal_amount_cents": goal.current_amount_cents,
        "goal": goal,
    }
