"""
Pydantic schemas for RecurringTransaction endpoints.

Amounts are integer cents. Dates are calendar dates (YYYY-MM-DD).
"""

import uuid
from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field

from ledger.models.recurring_transaction import RecurrenceFrequency
from ledger.models.transaction import TransactionCategory, TransactionType


class RecurringTransactionCreateRequest(BaseModel):
    """Request body for POST /recurring."""
    account_id: uuid.UUID
    type: Literal["income", "expense"]
    amount_cents: int = Field(gt=0, description="Amount in cents (must be positive)")
    description: str = Field(min_length=1, max_length=255)
    category: TransactionCategory = TransactionCategory.OTHER
    frequency: RecurrenceFrequency
    start_date: date
    end_date: date | None = None
    is_active: bool = True


class RecurringTransactionPatch(BaseModel):
    """Fields of a recurring transaction that may change. Unknown fields are rejected."""
    account_id: uuid.UUID | None = None
    type: Literal["income", "expense"] | None = None
    amount_cents: int | None = Field(None, gt=0)
    description: str | None = Field(None, min_length=1, max_length=255)
    category: TransactionCategory | None = None
    frequency: RecurrenceFrequency | None = None
    start_date: date | None = None
    # Explicit null removes the end date
    end_date: date | None = None
    is_active: bool | None = None

    model_config = {"extra": "forbid"}


class RecurringTransactionResponse(BaseModel):
    """Public representation of a recurring transaction."""
    id: uuid.UUID
    account_id: uuid.UUID
    amount_cents: int
    currency: str
    type: TransactionType
    category: TransactionCategory
    description: str
    frequency: RecurrenceFrequency
    start_date: date
    end_date: date | None
    is_active: bool
    last_processed: date | None
    next_process_date: date | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
