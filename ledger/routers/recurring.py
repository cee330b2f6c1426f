"""
Recurring router — standing incomes and expenses.

Endpoints (require a Bearer token, scoped to the caller's owner id):
  POST   /recurring                — Create a recurring transaction
  GET    /recurring                — List, newest first
  GET    /recurring/{recurring_id} — Get one
  PATCH  /recurring/{recurring_id} — Edit (next due date recomputed)
  DELETE /recurring/{recurring_id} — Delete

No endpoint here moves money, so none of them touch the read cache.
"""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.database import get_db
from ledger.dependencies import OwnerIdentity, get_current_owner
from ledger.schemas.recurring import (
    RecurringTransactionCreateRequest,
    RecurringTransactionPatch,
    RecurringTransactionResponse,
)
from ledger.services import recurring_service

router = APIRouter()


@router.post(
    "",
    response_model=RecurringTransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a recurring transaction",
)
async def create_recurring_transaction(
    request: RecurringTransactionCreateRequest,
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """
    Schedule an income or expense on one of your accounts.

    `next_process_date` is the first date of the series after today.
    """
    return await recurring_service.add_recurring_transaction(
        db,
        owner.owner_id,
        request.account_id,
        amount_cents=request.amount_cents,
        txn_type=request.type,
        description=request.description,
        frequency=request.frequency,
        start_date=request.start_date,
        end_date=request.end_date,
        category=request.category,
        is_active=request.is_active,
    )


@router.get(
    "",
    response_model=list[RecurringTransactionResponse],
    summary="List your recurring transactions",
)
async def list_recurring_transactions(
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    return await recurring_service.get_recurring_transactions(db, owner.owner_id)


@router.get(
    "/{recurring_id}",
    response_model=RecurringTransactionResponse,
    summary="Get a recurring transaction",
)
async def get_recurring_transaction(
    recurring_id: uuid.UUID,
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    return await recurring_service.get_recurring_transaction(db, owner.owner_id, recurring_id)


@router.patch(
    "/{recurring_id}",
    response_model=RecurringTransactionResponse,
    summary="Edit a recurring transaction",
)
async def update_recurring_transaction(
    recurring_id: uuid.UUID,
    patch: RecurringTransactionPatch,
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """Changing frequency, start date or end date recomputes `next_process_date`."""
    return await recurring_service.update_recurring_transaction(
        db, owner.owner_id, recurring_id, patch
    )


@router.delete(
    "/{recurring_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a recurring transaction",
)
async def delete_recurring_transaction(
    recurring_id: uuid.UUID,
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    await recurring_service.delete_recurring_transaction(db, owner.owner_id, recurring_id)
