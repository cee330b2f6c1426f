"""
Account service — the Account Store.

This module handles:
  - Account creation, listing, retrieval, update and deletion
  - The default-account flag (exactly one default per owner once any exist)
  - The account-scoped sub-ledger: direct debits and credits
  - Balance verification (cached vs. re-derived from history)

Ownership enforcement:
  Every function takes the caller's `owner_id` and filters on it. An account
  that belongs to another owner is reported as not found.

Balance mutation:
  Balances change only in add_account_transaction here, and in the
  transaction, transfer and goal services. update_account takes an
  AccountPatch, which has no balance field.
"""

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.config import settings
from ledger.exceptions import (
    AccountNotFoundError,
    InvalidAmountError,
    LedgerValidationError,
    MissingFieldError,
)
from ledger.models.account import Account, AccountType
from ledger.models.account_transaction import AccountTransaction, AccountTransactionType
from ledger.models.goal import Goal
from ledger.models.movement import MovementEntityType, MovementType
from ledger.models.transaction import Transaction, TransactionType
from ledger.schemas.account import AccountPatch
from ledger.services.movement_service import format_amount, record_movement
from ledger.services.operation import OperationSteps


logger = structlog.get_logger(__name__)


def require_positive_amount(amount_cents) -> int:
    """
    Reject anything that is not a positive whole number of cents.

    bool is excluded explicitly because True is an int in Python.
    """
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise InvalidAmountError(amount_cents)
    return amount_cents


def signed_delta(txn_type: AccountTransactionType | TransactionType, amount_cents: int) -> int:
    """Balance effect of a transaction: + for credit/income, - for debit/expense."""
    if txn_type in (AccountTransactionType.CREDIT, TransactionType.INCOME):
        return amount_cents
    if txn_type in (AccountTransactionType.DEBIT, TransactionType.EXPENSE):
        return -amount_cents
    raise ValueError(f"Transaction type {txn_type!r} has no single-account balance effect")


async def _clear_other_defaults(db: AsyncSession, owner_id: str, keep_id: uuid.UUID) -> None:
    result = await db.execute(
        select(Account)
        .where(Account.owner_id == owner_id)
        .where(Account.is_default.is_(True))
        .where(Account.id != keep_id)
    )
    for other in result.scalars().all():
        other.is_default = False


async def create_account(
    db: AsyncSession,
    owner_id: str,
    name: str,
    account_type: AccountType = AccountType.CHECKING,
    initial_balance_cents: int = 0,
    currency: str | None = None,
    description: str | None = None,
    is_default: bool = False,
) -> Account:
    """
    Create a new account with the given opening balance.

    Any opening balance is accepted, including zero and negative values
    (credit accounts). The owner's first account always becomes the default.

    Returns:
        The newly created Account instance.

    Raises:
        MissingFieldError: If the name is blank.
    """
    if not name or not name.strip():
        raise MissingFieldError("name")

    existing = await db.execute(
        select(func.count()).select_from(Account).where(Account.owner_id == owner_id)
    )
    if existing.scalar_one() == 0:
        is_default = True

    account = Account(
        owner_id=owner_id,
        name=name.strip(),
        account_type=AccountType(account_type),
        balance_cents=initial_balance_cents,
        initial_balance_cents=initial_balance_cents,
        currency=(currency or settings.DEFAULT_CURRENCY).upper(),
        description=description,
        is_default=is_default,
    )
    db.add(account)
    await db.flush()

    if is_default:
        await _clear_other_defaults(db, owner_id, account.id)
        await db.flush()

    await record_movement(
        db,
        owner_id,
        MovementType.ACCOUNT_CREATED,
        f'Account "{account.name}" created',
        entity_id=account.id,
        entity_type=MovementEntityType.ACCOUNT,
        amount_cents=initial_balance_cents,
        currency=account.currency,
        metadata={
            "account_name": account.name,
            "account_type": account.account_type.value,
            "initial_balance_cents": initial_balance_cents,
        },
    )
    return account


async def get_accounts(db: AsyncSession, owner_id: str) -> list[Account]:
    """List all accounts of an owner, newest first."""
    result = await db.execute(
        select(Account)
        .where(Account.owner_id == owner_id)
        .order_by(Account.created_at.desc())
    )
    return list(result.scalars().all())


async def get_account(
    db: AsyncSession,
    owner_id: str,
    account_id: uuid.UUID,
    for_update: bool = False,
) -> Account:
    """
    Get a single account, verifying ownership.

    for_update=True adds SELECT ... FOR UPDATE (a no-op on SQLite, a row lock
    on PostgreSQL). The version column catches conflicts either way.

    Raises:
        AccountNotFoundError: If the account doesn't exist for this owner.
    """
    query = (
        select(Account)
        .where(Account.id == account_id)
        .where(Account.owner_id == owner_id)
    )
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    account = result.scalar_one_or_none()

    if account is None:
        raise AccountNotFoundError(account_id)

    return account


async def get_default_account(db: AsyncSession, owner_id: str) -> Account | None:
    result = await db.execute(
        select(Account)
        .where(Account.owner_id == owner_id)
        .where(Account.is_default.is_(True))
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _newest_account(
    db: AsyncSession,
    owner_id: str,
    exclude_id: uuid.UUID | None = None,
) -> Account | None:
    query = select(Account).where(Account.owner_id == owner_id)
    if exclude_id is not None:
        query = query.where(Account.id != exclude_id)
    result = await db.execute(query.order_by(Account.created_at.desc()).limit(1))
    return result.scalar_one_or_none()


async def update_account(
    db: AsyncSession,
    owner_id: str,
    account_id: uuid.UUID,
    patch: AccountPatch,
) -> Account:
    """
    Merge the non-monetary fields of `patch` into an account.

    Clearing is_default on the default account hands the flag to the most
    recently created other account, so the owner keeps exactly one default.

    Raises:
        AccountNotFoundError: If the account doesn't exist for this owner.
        LedgerValidationError: If is_default is cleared on the owner's only
            account.
    """
    account = await get_account(db, owner_id, account_id, for_update=True)
    changes = patch.model_dump(exclude_unset=True)

    successor = None
    if changes.get("is_default") is False and account.is_default:
        successor = await _newest_account(db, owner_id, exclude_id=account.id)
        if successor is None:
            raise LedgerValidationError("The only account must stay the default")

    for field, value in changes.items():
        if field == "name":
            if value is None or not value.strip():
                raise MissingFieldError("name")
            value = value.strip()
        if field in ("account_type", "is_default") and value is None:
            continue
        setattr(account, field, value)
    account.updated_at = datetime.now(timezone.utc)
    await db.flush()

    if changes.get("is_default"):
        await _clear_other_defaults(db, owner_id, account.id)
        await db.flush()
    elif successor is not None:
        successor.is_default = True
        successor.updated_at = datetime.now(timezone.utc)
        await db.flush()

    await record_movement(
        db,
        owner_id,
        MovementType.ACCOUNT_UPDATED,
        f'Account "{account.name}" updated',
        entity_id=account.id,
        entity_type=MovementEntityType.ACCOUNT,
        metadata={
            "account_name": account.name,
            "changed_fields": sorted(changes),
        },
    )
    return account


async def delete_account(
    db: AsyncSession,
    owner_id: str,
    account_id: uuid.UUID,
) -> None:
    """
    Delete an account.

    Historical transactions and movements are left in place as audit
    history. Goals funded from the account are detached (their link is
    cleared, the goals themselves survive). If the account was the default,
    the most recently created remaining account becomes the default.

    Raises:
        AccountNotFoundError: If the account doesn't exist for this owner.
    """
    account = await get_account(db, owner_id, account_id, for_update=True)
    name, balance, currency = account.name, account.balance_cents, account.currency
    was_default = account.is_default

    goals = await db.execute(
        select(Goal)
        .where(Goal.owner_id == owner_id)
        .where(Goal.account_id == account_id)
    )
    detached = []
    for goal in goals.scalars().all():
        goal.account_id = None
        detached.append(str(goal.id))

    await db.delete(account)
    await db.flush()

    if was_default:
        new_default = await _newest_account(db, owner_id)
        if new_default is not None:
            new_default.is_default = True
            await db.flush()

    await record_movement(
        db,
        owner_id,
        MovementType.ACCOUNT_DELETED,
        f'Account "{name}" deleted',
        entity_id=account_id,
        entity_type=MovementEntityType.ACCOUNT,
        amount_cents=balance,
        currency=currency,
        metadata={"account_name": name, "detached_goal_ids": detached},
    )


async def add_account_transaction(
    db: AsyncSession,
    owner_id: str,
    account_id: uuid.UUID,
    amount_cents: int,
    txn_type: AccountTransactionType,
    category: str | None = None,
    description: str | None = None,
) -> tuple[AccountTransaction, Account]:
    """
    Record a direct debit or credit on an account and move its balance.

    No funds check is made: debits may take an account below zero (credit
    accounts live there). Transfers and goal funding do check funds.

    Returns:
        (the transaction leg, the updated account).

    Raises:
        InvalidAmountError: If amount_cents <= 0.
        AccountNotFoundError: If the account doesn't exist for this owner.
    """
    require_positive_amount(amount_cents)
    txn_type = AccountTransactionType(txn_type)
    account = await get_account(db, owner_id, account_id, for_update=True)

    steps = OperationSteps(db, "account_transaction")
    async with steps.step("write_transaction"):
        account.balance_cents += signed_delta(txn_type, amount_cents)
        account.updated_at = datetime.now(timezone.utc)
        txn = AccountTransaction(
            owner_id=owner_id,
            account_id=account.id,
            type=txn_type,
            amount_cents=amount_cents,
            category=category,
            description=description,
        )
        db.add(txn)
        await db.flush()

    verb = "Credit" if txn_type == AccountTransactionType.CREDIT else "Debit"
    await record_movement(
        db,
        owner_id,
        MovementType.TRANSACTION_CREATED,
        f'{verb} of {format_amount(amount_cents, account.currency)} on "{account.name}"',
        entity_id=txn.id,
        entity_type=MovementEntityType.TRANSACTION,
        amount_cents=amount_cents,
        currency=account.currency,
        metadata={
            "transaction_type": txn_type.value,
            "category": category,
            "account_id": str(account.id),
            "account_name": account.name,
        },
    )
    return txn, account


async def get_account_transactions(
    db: AsyncSession,
    owner_id: str,
    account_id: uuid.UUID,
    limit: int | None = None,
) -> list[AccountTransaction]:
    """
    List the sub-ledger of one account, newest first.

    Raises:
        AccountNotFoundError: If the account doesn't exist for this owner.
    """
    await get_account(db, owner_id, account_id)

    query = (
        select(AccountTransaction)
        .where(AccountTransaction.owner_id == owner_id)
        .where(AccountTransaction.account_id == account_id)
        .order_by(AccountTransaction.created_at.desc(), AccountTransaction.id.desc())
    )
    if limit:
        query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


async def get_balance(
    db: AsyncSession,
    owner_id: str,
    account_id: uuid.UUID,
) -> dict:
    """
    Get the account balance — both cached and computed from history.

    Returns:
        Dict with cached_balance_cents, computed_balance_cents, match, currency.
    """
    account = await get_account(db, owner_id, account_id)
    computed_balance_cents = await _compute_balance_from_history(db, account)

    return {
        "account_id": account.id,
        "cached_balance_cents": account.balance_cents,
        "computed_balance_cents": computed_balance_cents,
        "match": account.balance_cents == computed_balance_cents,
        "currency": account.currency,
    }


async def _sum_amounts(db: AsyncSession, model, account_id: uuid.UUID, owner_id: str, txn_type) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(model.amount_cents), 0))
        .where(model.owner_id == owner_id)
        .where(model.account_id == account_id)
        .where(model.type == txn_type)
    )
    return result.scalar()


async def _compute_balance_from_history(db: AsyncSession, account: Account) -> int:
    """
    Re-derive a balance from the opening balance and every leg that touched it.

    Account-scoped credits and user-level income add; account-scoped debits
    and user-level expenses subtract.
    """
    args = (account.id, account.owner_id)
    credits = await _sum_amounts(db, AccountTransaction, *args, AccountTransactionType.CREDIT)
    debits = await _sum_amounts(db, AccountTransaction, *args, AccountTransactionType.DEBIT)
    income = await _sum_amounts(db, Transaction, *args, TransactionType.INCOME)
    expenses = await _sum_amounts(db, Transaction, *args, TransactionType.EXPENSE)

    return account.initial_balance_cents + credits - debits + income - expenses
