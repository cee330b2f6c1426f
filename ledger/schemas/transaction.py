"""
Pydantic schemas for user-level Transaction and Transfer endpoints.

All monetary amounts are in integer cents (e.g., $10.50 = 1050).
"""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from ledger.models.transaction import TransactionCategory, TransactionType
from ledger.schemas.account import AccountTransactionResponse


class TransactionCreateRequest(BaseModel):
    """Request body for POST /transactions."""
    account_id: uuid.UUID
    type: Literal["income", "expense"]
    amount_cents: int = Field(gt=0, description="Amount in cents (must be positive)")
    category: TransactionCategory = TransactionCategory.OTHER
    source: str = Field("", max_length=255)
    occurred_at: datetime | None = None


class TransactionPatch(BaseModel):
    """Fields of a user-level transaction that may be edited."""
    account_id: uuid.UUID | None = None
    type: Literal["income", "expense"] | None = None
    amount_cents: int | None = Field(None, gt=0)
    category: TransactionCategory | None = None
    source: str | None = Field(None, max_length=255)
    occurred_at: datetime | None = None

    model_config = {"extra": "forbid"}


class TransactionResponse(BaseModel):
    """Public representation of a user-level transaction."""
    id: uuid.UUID
    account_id: uuid.UUID
    amount_cents: int
    currency: str
    type: TransactionType
    category: TransactionCategory
    source: str
    transfer_account_id: uuid.UUID | None
    occurred_at: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


class TransactionPageResponse(BaseModel):
    """One page of transactions; pass next_cursor back to get the next page."""
    items: list[TransactionResponse]
    next_cursor: str | None


class TransferRequest(BaseModel):
    """Request body for POST /transfers."""
    from_account_id: uuid.UUID
    to_account_id: uuid.UUID
    amount_cents: int = Field(gt=0, description="Amount in cents (must be positive)")
    description: str | None = Field(None, max_length=255)


class TransferResponse(BaseModel):
    """Response body for a successful transfer."""
    transfer_pair_id: uuid.UUID
    debit_transaction: AccountTransactionResponse
    credit_transaction: AccountTransactionResponse
    amount_cents: int
    from_account_id: uuid.UUID
    to_account_id: uuid.UUID
    from_balance_cents: int
    to_balance_cents: int
