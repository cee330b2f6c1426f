"""
Transaction service — the user-level income/expense ledger.

This module handles:
  - Recording income and expense against one account
  - Listing transactions newest first (plain limit or keyset cursor)
  - Editing a transaction (reverse the old effect, apply the new one)
  - Deleting a transaction (reverse its effect, then remove the row)

Balance consistency:
  Every function that adds, edits or removes a row moves the named
  account's balance in the same session, so the two are committed or
  rolled back together. An edit or delete is a two-row change (Transaction
  + Account); it runs through OperationSteps so a failure half way is
  reported with the step that failed.

Transfers:
  The `transfer` type is not accepted here. Money moves between accounts
  only through transfer_service.transfer(), which writes its own legs on
  the account-scoped sub-ledger.
"""

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.config import settings
from ledger.exceptions import LedgerValidationError, TransactionNotFoundError
from ledger.models.account import Account
from ledger.models.movement import MovementEntityType, MovementType
from ledger.models.transaction import Transaction, TransactionCategory, TransactionType
from ledger.schemas.transaction import TransactionPatch
from ledger.services.account_service import get_account, require_positive_amount, signed_delta
from ledger.services.movement_service import format_amount, record_movement
from ledger.services.operation import OperationSteps
from ledger.services.pagination import as_utc, older_than, split_page


logger = structlog.get_logger(__name__)


def require_income_or_expense(txn_type) -> TransactionType:
    try:
        txn_type = TransactionType(txn_type)
    except ValueError:
        raise LedgerValidationError(f"Unknown transaction type {txn_type!r}")
    if txn_type == TransactionType.TRANSFER:
        raise LedgerValidationError("Use the transfer endpoint to move money between accounts")
    return txn_type


async def add_transaction(
    db: AsyncSession,
    owner_id: str,
    account_id: uuid.UUID,
    amount_cents: int,
    txn_type: TransactionType,
    category: TransactionCategory = TransactionCategory.OTHER,
    source: str = "",
    occurred_at: datetime | None = None,
) -> tuple[Transaction, Account]:
    """
    Record income or an expense and move the account balance with it.

    Returns:
        (the new transaction, the updated account).

    Raises:
        InvalidAmountError: If amount_cents <= 0.
        LedgerValidationError: If the type is not income or expense.
        AccountNotFoundError: If the account doesn't exist for this owner.
    """
    require_positive_amount(amount_cents)
    txn_type = require_income_or_expense(txn_type)
    account = await get_account(db, owner_id, account_id, for_update=True)

    steps = OperationSteps(db, "add_transaction")
    async with steps.step("write_transaction"):
        account.balance_cents += signed_delta(txn_type, amount_cents)
        account.updated_at = datetime.now(timezone.utc)
        txn = Transaction(
            owner_id=owner_id,
            account_id=account.id,
            amount_cents=amount_cents,
            currency=account.currency,
            type=txn_type,
            category=TransactionCategory(category),
            source=source or "",
            occurred_at=as_utc(occurred_at) if occurred_at else datetime.now(timezone.utc),
        )
        db.add(txn)
        await db.flush()

    label = "Income" if txn_type == TransactionType.INCOME else "Expense"
    await record_movement(
        db,
        owner_id,
        MovementType.TRANSACTION_CREATED,
        f'{label} of {format_amount(amount_cents, account.currency)} on "{account.name}"',
        entity_id=txn.id,
        entity_type=MovementEntityType.TRANSACTION,
        amount_cents=amount_cents,
        currency=account.currency,
        metadata={
            "transaction_type": txn_type.value,
            "category": txn.category.value,
            "source": txn.source,
            "account_id": str(account.id),
            "account_name": account.name,
        },
    )
    return txn, account


async def get_transactions(
    db: AsyncSession,
    owner_id: str,
    limit: int | None = None,
) -> list[Transaction]:
    """List an owner's transactions, newest first."""
    result = await db.execute(
        select(Transaction)
        .where(Transaction.owner_id == owner_id)
        .order_by(Transaction.occurred_at.desc(), Transaction.id.desc())
        .limit(limit or settings.TRANSACTIONS_DEFAULT_LIMIT)
    )
    return list(result.scalars().all())


async def get_transactions_page(
    db: AsyncSession,
    owner_id: str,
    limit: int,
    cursor: str | None = None,
) -> tuple[list[Transaction], str | None]:
    """One page of an owner's transactions, newest first, plus the next cursor."""
    query = (
        select(Transaction)
        .where(Transaction.owner_id == owner_id)
        .order_by(Transaction.occurred_at.desc(), Transaction.id.desc())
        .limit(limit + 1)
    )
    if cursor:
        query = query.where(older_than(Transaction.occurred_at, Transaction.id, cursor))

    result = await db.execute(query)
    return split_page(list(result.scalars().all()), limit, "occurred_at")


async def get_transaction(
    db: AsyncSession,
    owner_id: str,
    transaction_id: uuid.UUID,
) -> Transaction:
    result = await db.execute(
        select(Transaction)
        .where(Transaction.id == transaction_id)
        .where(Transaction.owner_id == owner_id)
    )
    txn = result.scalar_one_or_none()
    if txn is None:
        raise TransactionNotFoundError(transaction_id)
    return txn


async def _owning_account(db: AsyncSession, txn: Transaction) -> Account | None:
    # The account may have been deleted since; the row is then history only
    result = await db.execute(
        select(Account)
        .where(Account.id == txn.account_id)
        .where(Account.owner_id == txn.owner_id)
        .with_for_update()
    )
    return result.scalar_one_or_none()


async def update_transaction(
    db: AsyncSession,
    owner_id: str,
    transaction_id: uuid.UUID,
    patch: TransactionPatch,
) -> Transaction:
    """
    Edit a transaction.

    If the amount, type or account changes, the old effect is reversed on
    the old account and the new effect applied to the (possibly different)
    new account, in that order.

    Raises:
        TransactionNotFoundError: If the transaction doesn't exist for this owner.
        AccountNotFoundError: If the patch names an account that doesn't exist.
    """
    txn = await get_transaction(db, owner_id, transaction_id)
    changes = patch.model_dump(exclude_unset=True)
    changes = {field: value for field, value in changes.items() if value is not None}

    new_amount = changes.get("amount_cents", txn.amount_cents)
    new_type = require_income_or_expense(changes.get("type", txn.type))
    new_account_id = changes.get("account_id", txn.account_id)
    require_positive_amount(new_amount)

    moves_money = (
        new_amount != txn.amount_cents
        or new_type != txn.type
        or new_account_id != txn.account_id
    )
    new_account = None
    if moves_money:
        # Checked before any write so a bad account id changes nothing
        new_account = await get_account(db, owner_id, new_account_id, for_update=True)

    old_amount, old_type = txn.amount_cents, txn.type
    steps = OperationSteps(db, "update_transaction")
    if moves_money:
        async with steps.step("reverse_previous"):
            old_account = await _owning_account(db, txn)
            if old_account is not None:
                old_account.balance_cents -= signed_delta(txn.type, txn.amount_cents)
                old_account.updated_at = datetime.now(timezone.utc)
                await db.flush()

        async with steps.step("apply_new"):
            new_account.balance_cents += signed_delta(new_type, new_amount)
            new_account.updated_at = datetime.now(timezone.utc)
            txn.currency = new_account.currency
            await db.flush()

    async with steps.step("write_transaction"):
        txn.amount_cents = new_amount
        txn.type = new_type
        txn.account_id = new_account_id
        if "category" in changes:
            txn.category = TransactionCategory(changes["category"])
        if "source" in changes:
            txn.source = changes["source"]
        if "occurred_at" in changes:
            txn.occurred_at = as_utc(changes["occurred_at"])
        txn.updated_at = datetime.now(timezone.utc)
        await db.flush()

    await record_movement(
        db,
        owner_id,
        MovementType.TRANSACTION_UPDATED,
        f"Transaction updated ({format_amount(txn.amount_cents, txn.currency)})",
        entity_id=txn.id,
        entity_type=MovementEntityType.TRANSACTION,
        amount_cents=txn.amount_cents,
        currency=txn.currency,
        metadata={
            "changed_fields": sorted(changes),
            "previous_amount_cents": old_amount,
            "previous_type": old_type.value,
            "transaction_type": txn.type.value,
            "account_id": str(txn.account_id),
        },
    )
    return txn


async def delete_transaction(
    db: AsyncSession,
    owner_id: str,
    transaction_id: uuid.UUID,
) -> Account | None:
    """
    Delete a transaction after reversing its effect on the account.

    An expense is re-credited, an income re-debited. If the account was
    deleted in the meantime only the row is removed.

    Returns:
        The account whose balance was restored, or None.

    Raises:
        TransactionNotFoundError: If the transaction doesn't exist for this owner.
    """
    txn = await get_transaction(db, owner_id, transaction_id)
    amount, currency, txn_type = txn.amount_cents, txn.currency, txn.type
    account_id, category = txn.account_id, txn.category

    steps = OperationSteps(db, "delete_transaction")
    async with steps.step("reverse_balance"):
        account = await _owning_account(db, txn)
        if account is not None and txn_type != TransactionType.TRANSFER:
            account.balance_cents -= signed_delta(txn_type, amount)
            account.updated_at = datetime.now(timezone.utc)
            await db.flush()
        elif account is None:
            logger.info(
                "transaction_account_missing",
                owner_id=owner_id,
                transaction_id=str(transaction_id),
                account_id=str(account_id),
            )

    async with steps.step("delete_transaction"):
        await db.delete(txn)
        await db.flush()

    await record_movement(
        db,
        owner_id,
        MovementType.TRANSACTION_DELETED,
        f"Transaction of {format_amount(amount, currency)} deleted",
        entity_id=transaction_id,
        entity_type=MovementEntityType.TRANSACTION,
        amount_cents=amount,
        currency=currency,
        metadata={
            "transaction_type": txn_type.value,
            "category": category.value,
            "account_id": str(account_id),
            "balance_restored": account is not None,
        },
    )
    return account
