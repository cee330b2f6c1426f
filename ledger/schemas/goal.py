"""
Pydantic schemas for savings Goal endpoints.

A goal is either linked to an existing account (`account_id`) or gets a
dedicated savings account created with it (`create_account=true`).
"""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from ledger.models.account import AccountType
from ledger.models.goal import GoalStatus


class GoalCreateRequest(BaseModel):
    """Request body for POST /goals."""
    name: str = Field(min_length=1, max_length=100)
    target_amount_cents: int = Field(gt=0)
    currency: str | None = Field(None, min_length=3, max_length=3)
    description: str | None = Field(None, max_length=255)
    deadline: datetime | None = None
    account_id: uuid.UUID | None = None
    create_account: bool = False
    account_name: str | None = Field(None, max_length=100)
    account_type: AccountType = AccountType.SAVINGS


class GoalPatch(BaseModel):
    """
    Fields of a goal that may change after creation.

    `current_amount_cents` is not here: progress moves only through funding
    or the explicit progress adjustment. Status can be toggled between
    active and canceled; completion is reached, never requested.
    """
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, max_length=255)
    target_amount_cents: int | None = Field(None, gt=0)
    deadline: datetime | None = None
    account_id: uuid.UUID | None = None
    status: Literal["active", "canceled"] | None = None

    model_config = {"extra": "forbid"}


class GoalResponse(BaseModel):
    """Public representation of a goal."""
    id: uuid.UUID
    name: str
    description: str | None
    target_amount_cents: int
    current_amount_cents: int
    currency: str
    status: GoalStatus
    account_id: uuid.UUID | None
    deadline: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class GoalFundsRequest(BaseModel):
    """Request body for POST /goals/{id}/funds."""
    amount_cents: int = Field(gt=0, description="Amount in cents (must be positive)")


class GoalProgressRequest(BaseModel):
    """Request body for POST /goals/{id}/progress (positive or negative)."""
    delta_cents: int

    @model_validator(mode="after")
    def delta_must_be_nonzero(self):
        if self.delta_cents == 0:
            raise ValueError("delta_cents must not be zero")
        return self


class GoalFundingResponse(BaseModel):
    """Outcome of moving money from the linked account into a goal."""
    completed: bool
    new_balance_cents: int
    new_goal_amount_cents: int
    goal: GoalResponse
