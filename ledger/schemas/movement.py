"""
Pydantic schemas for the Movement audit trail.

Movements are read-only over the API; they are written by the ledger
services as a side effect of every mutation.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from ledger.models.movement import MovementEntityType, MovementType


class MovementResponse(BaseModel):
    """Public representation of a movement."""
    id: uuid.UUID
    type: MovementType
    timestamp: datetime
    description: str
    entity_id: str | None
    entity_type: MovementEntityType | None
    amount_cents: int | None
    currency: str | None
    from_account_id: str | None
    to_account_id: str | None
    # The ORM attribute is `details`; the wire name is `metadata`
    metadata: dict = Field(validation_alias="details")

    model_config = {"from_attributes": True}


class MovementPageResponse(BaseModel):
    """One page of movements, newest first. next_cursor is None on the last page."""
    items: list[MovementResponse]
    next_cursor: str | None


class MovementTypeInfo(BaseModel):
    type: MovementType
    label: str
