"""
Transfers router — moving money between two of the caller's accounts.

Endpoints:
  POST /transfers — Transfer money from one account to another

A transfer creates two linked legs on the account sub-ledger:
  1. A DEBIT on the source account
  2. A CREDIT on the destination account

Both legs share a transfer_pair_id. They are written in one database
transaction: either both balances move or neither does. Both accounts must
belong to the caller.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.cache import OwnerReadCache
from ledger.database import get_db
from ledger.dependencies import OwnerIdentity, get_current_owner, get_read_cache
from ledger.schemas.account import AccountTransactionResponse
from ledger.schemas.transaction import TransferRequest, TransferResponse
from ledger.services import transfer_service

router = APIRouter()


@router.post(
    "",
    response_model=TransferResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Transfer money between accounts",
)
async def create_transfer(
    request: TransferRequest,
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
    cache: OwnerReadCache = Depends(get_read_cache),
):
    """
    Transfer money from one account to another.

    - **amount_cents**: Positive integer in cents (e.g., $50.00 = 5000)
    - Cannot transfer to the same account
    - Rejected with `insufficient_funds` (422) if the source balance is too low;
      nothing is written in that case
    """
    debit_txn, credit_txn, source, dest = await transfer_service.transfer(
        db,
        owner.owner_id,
        from_account_id=request.from_account_id,
        to_account_id=request.to_account_id,
        amount_cents=request.amount_cents,
        description=request.description,
    )
    cache.invalidate_on_commit(db, owner.owner_id)

    return TransferResponse(
        transfer_pair_id=debit_txn.transfer_pair_id,
        debit_transaction=AccountTransactionResponse.model_validate(debit_txn),
        credit_transaction=AccountTransactionResponse.model_validate(credit_txn),
        amount_cents=request.amount_cents,
        from_account_id=source.id,
        to_account_id=dest.id,
        from_balance_cents=source.balance_cents,
        to_balance_cents=dest.balance_cents,
    )
