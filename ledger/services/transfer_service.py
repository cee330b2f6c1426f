"""
Transfer service — moving money between two accounts of the same owner.

A transfer writes two legs on the account-scoped sub-ledger, linked by a
shared transfer_pair_id:
  1. A DEBIT on the source account
  2. A CREDIT on the destination account, tagged with the source as its
     counterpart (and the debit tagged with the destination)

Order of checks and writes:
  same account -> amount -> load both accounts -> currency -> funds -> debit
  -> credit -> one transfer_created movement.

Every check runs before the first write, so a rejected transfer changes
nothing. The debit and credit run in the caller's session as separate
steps; if the credit fails after the debit was flushed, the session is
rolled back and PartialFailureError says so.

Deadlock prevention:
  Both accounts are loaded FOR UPDATE in sorted UUID order, so two
  opposite transfers between the same pair lock in the same order.
  (FOR UPDATE is a no-op on SQLite; the version column still catches a
  concurrent balance write.)
"""

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.exceptions import (
    AccountNotFoundError,
    CurrencyMismatchError,
    InsufficientFundsError,
    SameAccountError,
)
from ledger.models.account import Account
from ledger.models.account_transaction import (
    AccountTransaction,
    AccountTransactionType,
    TRANSFER_CATEGORY,
)
from ledger.models.movement import MovementEntityType, MovementType
from ledger.services.account_service import require_positive_amount
from ledger.services.movement_service import format_amount, record_movement
from ledger.services.operation import OperationSteps


logger = structlog.get_logger(__name__)


async def _load_pair(
    db: AsyncSession,
    owner_id: str,
    from_account_id: uuid.UUID,
    to_account_id: uuid.UUID,
) -> tuple[Account, Account]:
    loaded = {}
    for account_id in sorted([from_account_id, to_account_id]):
        result = await db.execute(
            select(Account)
            .where(Account.id == account_id)
            .where(Account.owner_id == owner_id)
            .with_for_update()
        )
        loaded[account_id] = result.scalar_one_or_none()

    # Report the source first when both are missing
    for account_id in (from_account_id, to_account_id):
        if loaded[account_id] is None:
            raise AccountNotFoundError(account_id)

    return loaded[from_account_id], loaded[to_account_id]


async def transfer(
    db: AsyncSession,
    owner_id: str,
    from_account_id: uuid.UUID,
    to_account_id: uuid.UUID,
    amount_cents: int,
    description: str | None = None,
) -> tuple[AccountTransaction, AccountTransaction, Account, Account]:
    """
    Move amount_cents from one account to another.

    Returns:
        Tuple of (debit_leg, credit_leg, source_account, destination_account).

    Raises:
        SameAccountError: If source and destination are the same account.
        InvalidAmountError: If amount_cents <= 0.
        AccountNotFoundError: If either account doesn't exist for this owner.
        CurrencyMismatchError: If the two accounts hold different currencies.
        InsufficientFundsError: If the source balance is below amount_cents.
        PartialFailureError: If the credit step fails after the debit step.
    """
    if from_account_id == to_account_id:
        raise SameAccountError(from_account_id)
    require_positive_amount(amount_cents)

    source, dest = await _load_pair(db, owner_id, from_account_id, to_account_id)
    if source.currency != dest.currency:
        raise CurrencyMismatchError(expected=source.currency, actual=dest.currency)

    if source.balance_cents < amount_cents:
        raise InsufficientFundsError(
            account_id=from_account_id,
            requested_cents=amount_cents,
            available_cents=source.balance_cents,
        )

    transfer_pair_id = uuid.uuid4()
    steps = OperationSteps(db, "transfer")

    async with steps.step("debit_source"):
        source.balance_cents -= amount_cents
        source.updated_at = datetime.now(timezone.utc)
        debit_txn = AccountTransaction(
            owner_id=owner_id,
            account_id=source.id,
            type=AccountTransactionType.DEBIT,
            amount_cents=amount_cents,
            category=TRANSFER_CATEGORY,
            description=description,
            counterpart_account_id=dest.id,
            transfer_pair_id=transfer_pair_id,
        )
        db.add(debit_txn)
        await db.flush()

    async with steps.step("credit_destination"):
        dest.balance_cents += amount_cents
        dest.updated_at = datetime.now(timezone.utc)
        credit_txn = AccountTransaction(
            owner_id=owner_id,
            account_id=dest.id,
            type=AccountTransactionType.CREDIT,
            amount_cents=amount_cents,
            category=TRANSFER_CATEGORY,
            description=description,
            counterpart_account_id=source.id,
            transfer_pair_id=transfer_pair_id,
        )
        db.add(credit_txn)
        await db.flush()

    await record_movement(
        db,
        owner_id,
        MovementType.TRANSFER_CREATED,
        f'Transfer of {format_amount(amount_cents, source.currency)} '
        f'from "{source.name}" to "{dest.name}"',
        entity_id=transfer_pair_id,
        entity_type=MovementEntityType.TRANSFER,
        amount_cents=amount_cents,
        currency=source.currency,
        from_account_id=source.id,
        to_account_id=dest.id,
        metadata={
            "from_account_name": source.name,
            "to_account_name": dest.name,
            "description": description,
            "debit_transaction_id": str(debit_txn.id),
            "credit_transaction_id": str(credit_txn.id),
        },
    )

    logger.info(
        "transfer_completed",
        owner_id=owner_id,
        transfer_pair_id=str(transfer_pair_id),
        amount_cents=amount_cents,
    )
    return debit_txn, credit_txn, source, dest
