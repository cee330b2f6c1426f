"""
Transactions router — the user-level income/expense ledger.

Endpoints (require a Bearer token, scoped to the caller's owner id):
  POST   /transactions                  — Record income or an expense
  GET    /transactions                  — Newest first, plain limit
  GET    /transactions/page             — Newest first, keyset cursor paging
  PATCH  /transactions/{transaction_id} — Edit (balance effect re-applied)
  DELETE /transactions/{transaction_id} — Delete (balance effect reversed)

Each write moves the named account's balance, so every mutating endpoint
invalidates the caller's read cache once the request commits.
"""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.cache import OwnerReadCache
from ledger.config import settings
from ledger.database import get_db
from ledger.dependencies import OwnerIdentity, get_current_owner, get_read_cache
from ledger.schemas.transaction import (
    TransactionCreateRequest,
    TransactionPageResponse,
    TransactionPatch,
    TransactionResponse,
)
from ledger.services import transaction_service

router = APIRouter()


@router.post(
    "",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record income or an expense",
)
async def create_transaction(
    request: TransactionCreateRequest,
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
    cache: OwnerReadCache = Depends(get_read_cache),
):
    """
    - **income**: adds to the account balance
    - **expense**: subtracts from the account balance

    All amounts are in **integer cents** (e.g., $10.50 = 1050).
    """
    txn, _ = await transaction_service.add_transaction(
        db,
        owner.owner_id,
        request.account_id,
        amount_cents=request.amount_cents,
        txn_type=request.type,
        category=request.category,
        source=request.source,
        occurred_at=request.occurred_at,
    )
    cache.invalidate_on_commit(db, owner.owner_id)
    return txn


@router.get(
    "",
    response_model=list[TransactionResponse],
    summary="List your transactions",
)
async def list_transactions(
    limit: int = Query(settings.TRANSACTIONS_DEFAULT_LIMIT, ge=1, le=500),
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    return await transaction_service.get_transactions(db, owner.owner_id, limit=limit)


@router.get(
    "/page",
    response_model=TransactionPageResponse,
    summary="Page through your transactions",
)
async def page_transactions(
    limit: int = Query(20, ge=1, le=200),
    cursor: str | None = Query(None, description="next_cursor from the previous page"),
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """Newest first; pass `next_cursor` back as `cursor` until it comes back null."""
    items, next_cursor = await transaction_service.get_transactions_page(
        db, owner.owner_id, limit=limit, cursor=cursor
    )
    return TransactionPageResponse(
        items=[TransactionResponse.model_validate(txn) for txn in items],
        next_cursor=next_cursor,
    )


@router.patch(
    "/{transaction_id}",
    response_model=TransactionResponse,
    summary="Edit a transaction",
)
async def update_transaction(
    transaction_id: uuid.UUID,
    patch: TransactionPatch,
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
    cache: OwnerReadCache = Depends(get_read_cache),
):
    """Changing amount, type or account reverses the old effect and applies the new one."""
    txn = await transaction_service.update_transaction(
        db, owner.owner_id, transaction_id, patch
    )
    cache.invalidate_on_commit(db, owner.owner_id)
    return txn


@router.delete(
    "/{transaction_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a transaction",
)
async def delete_transaction(
    transaction_id: uuid.UUID,
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
    cache: OwnerReadCache = Depends(get_read_cache),
):
    """An expense is re-credited and an income re-debited before the row is removed."""
    await transaction_service.delete_transaction(db, owner.owner_id, transaction_id)
    cache.invalidate_on_commit(db, owner.owner_id)
