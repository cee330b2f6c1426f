"""
Accounts router — account management and the account sub-ledger.

Endpoints (require a Bearer token, scoped to the caller's owner id):
    POST   /accounts                              — Create an account
    GET    /accounts                              — List own accounts (cached)
    GET    /accounts/default                      — Get the default account
    GET    /accounts/{account_id}                 — Get account details
    PATCH  /accounts/{account_id}                 — Update non-monetary fields
    DELETE /accounts/{account_id}                 — Delete an account
    GET    /accounts/{account_id}/balance         — Cached vs computed balance
    POST   /accounts/{account_id}/transactions    — Direct debit or credit
    GET    /accounts/{account_id}/transactions    — List the account's legs

Every mutating endpoint invalidates the caller's read cache once the request
commits.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.cache import OwnerReadCache
from ledger.database import get_db
from ledger.dependencies import OwnerIdentity, get_current_owner, get_read_cache
from ledger.schemas.account import (
    AccountCreateRequest,
    AccountPatch,
    AccountResponse,
    AccountTransactionCreateRequest,
    AccountTransactionResponse,
    AccountTransactionResult,
    BalanceResponse,
)
from ledger.services import account_service

router = APIRouter()

ACCOUNT_LIST_KEY = "accounts"


@router.post(
    "",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an account",
)
async def create_account(
    request: AccountCreateRequest,
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
    cache: OwnerReadCache = Depends(get_read_cache),
):
    """
    Create an account with an opening balance in **integer cents**.

    The opening balance may be zero or negative (credit accounts). The
    caller's first account becomes the default.
    """
    account = await account_service.create_account(
        db,
        owner.owner_id,
        name=request.name,
        account_type=request.account_type,
        initial_balance_cents=request.initial_balance_cents,
        currency=request.currency,
        description=request.description,
        is_default=request.is_default,
    )
    cache.invalidate_on_commit(db, owner.owner_id)
    return account


@router.get(
    "",
    response_model=list[AccountResponse],
    summary="List your accounts",
)
async def list_accounts(
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
    cache: OwnerReadCache = Depends(get_read_cache),
):
    """List the caller's accounts, newest first. Served from the read cache when fresh."""

    async def load():
        accounts = await account_service.get_accounts(db, owner.owner_id)
        return [AccountResponse.model_validate(account) for account in accounts]

    return await cache.get_or_load(owner.owner_id, ACCOUNT_LIST_KEY, load)


@router.get(
    "/default",
    response_model=AccountResponse,
    summary="Get your default account",
)
async def get_default_account(
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    account = await account_service.get_default_account(db, owner.owner_id)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No default account",
        )
    return account


@router.get(
    "/{account_id}",
    response_model=AccountResponse,
    summary="Get account details",
)
async def get_account(
    account_id: uuid.UUID,
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """Returns 404 if the account doesn't exist or belongs to someone else."""
    return await account_service.get_account(db, owner.owner_id, account_id)


@router.patch(
    "/{account_id}",
    response_model=AccountResponse,
    summary="Update an account",
)
async def update_account(
    account_id: uuid.UUID,
    patch: AccountPatch,
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
    cache: OwnerReadCache = Depends(get_read_cache),
):
    """
    Update name, type, description or the default flag.

    The balance cannot be set here; unknown fields are rejected with 422.
    """
    account = await account_service.update_account(db, owner.owner_id, account_id, patch)
    cache.invalidate_on_commit(db, owner.owner_id)
    return account


@router.delete(
    "/{account_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an account",
)
async def delete_account(
    account_id: uuid.UUID,
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
    cache: OwnerReadCache = Depends(get_read_cache),
):
    """
    Delete an account. Its transactions and movements remain as history;
    goals funded from it are detached.
    """
    await account_service.delete_account(db, owner.owner_id, account_id)
    cache.invalidate_on_commit(db, owner.owner_id)


@router.get(
    "/{account_id}/balance",
    response_model=BalanceResponse,
    summary="Check account balance",
)
async def get_balance(
    account_id: uuid.UUID,
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """
    Get the account balance — both cached and computed from history.

    The response includes a `match` boolean indicating whether the cached
    balance agrees with the opening balance plus every transaction leg.
    """
    return await account_service.get_balance(db, owner.owner_id, account_id)


@router.post(
    "/{account_id}/transactions",
    response_model=AccountTransactionResult,
    status_code=status.HTTP_201_CREATED,
    summary="Record a debit or credit on an account",
)
async def create_account_transaction(
    account_id: uuid.UUID,
    request: AccountTransactionCreateRequest,
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
    cache: OwnerReadCache = Depends(get_read_cache),
):
    """
    - **credit**: adds to the balance
    - **debit**: subtracts from the balance (may go below zero)

    All amounts are in **integer cents** (e.g., $10.50 = 1050).
    """
    txn, account = await account_service.add_account_transaction(
        db,
        owner.owner_id,
        account_id,
        amount_cents=request.amount_cents,
        txn_type=request.type,
        category=request.category,
        description=request.description,
    )
    cache.invalidate_on_commit(db, owner.owner_id)
    return AccountTransactionResult(
        transaction=AccountTransactionResponse.model_validate(txn),
        balance_cents=account.balance_cents,
    )


@router.get(
    "/{account_id}/transactions",
    response_model=list[AccountTransactionResponse],
    summary="List an account's transactions",
)
async def list_account_transactions(
    account_id: uuid.UUID,
    limit: int | None = Query(None, ge=1, le=500),
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """Newest first: direct debits/credits, transfer legs and goal contributions."""
    return await account_service.get_account_transactions(
        db, owner.owner_id, account_id, limit=limit
    )
