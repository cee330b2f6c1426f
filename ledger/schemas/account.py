"""
Pydantic schemas for Account endpoints.

These schemas define the API contract for account creation, updates,
balance checking and the account-scoped transaction sub-ledger. All
monetary amounts are expressed in integer cents.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from ledger.models.account import AccountType
from ledger.models.account_transaction import AccountTransactionType


class AccountCreateRequest(BaseModel):
    """Request body for POST /accounts."""
    name: str = Field(min_length=1, max_length=100)
    account_type: AccountType = AccountType.CHECKING
    # Any sign: credit accounts may open below zero
    initial_balance_cents: int = 0
    currency: str | None = Field(None, min_length=3, max_length=3)
    description: str | None = Field(None, max_length=255)
    is_default: bool = False


class AccountPatch(BaseModel):
    """
    The fields of an account that may change after creation.

    The balance is deliberately absent: it only moves through transactions,
    transfers and goal funding. Unknown fields are rejected.
    """
    name: str | None = Field(None, min_length=1, max_length=100)
    account_type: AccountType | None = None
    description: str | None = Field(None, max_length=255)
    is_default: bool | None = None

    model_config = {"extra": "forbid"}


class AccountResponse(BaseModel):
    """Public representation of an account."""
    id: uuid.UUID
    owner_id: str
    name: str
    account_type: AccountType
    balance_cents: int
    currency: str
    description: str | None
    is_default: bool
    is_goal_account: bool
    goal_id: uuid.UUID | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BalanceResponse(BaseModel):
    """
    Balance check response — includes both cached and computed values.

    `match` tells whether the cached balance agrees with the balance
    re-derived from the opening balance and every transaction leg. A
    mismatch means a data integrity issue.
    """
    account_id: uuid.UUID
    cached_balance_cents: int
    computed_balance_cents: int
    match: bool
    currency: str


class AccountTransactionCreateRequest(BaseModel):
    """Request body for POST /accounts/{id}/transactions."""
    type: AccountTransactionType
    amount_cents: int = Field(gt=0, description="Amount in cents (must be positive)")
    category: str | None = Field(None, max_length=50)
    description: str | None = Field(None, max_length=255)


class AccountTransactionResponse(BaseModel):
    """Public representation of one leg in the account sub-ledger."""
    id: uuid.UUID
    account_id: uuid.UUID
    type: AccountTransactionType
    amount_cents: int
    category: str | None
    description: str | None
    counterpart_account_id: uuid.UUID | None
    transfer_pair_id: uuid.UUID | None
    goal_id: uuid.UUID | None
    created_at: datetime

    model_config = {"from_attributes": True}


class AccountTransactionResult(BaseModel):
    """Response body for POST /accounts/{id}/transactions."""
    transaction: AccountTransactionResponse
    balance_cents: int
