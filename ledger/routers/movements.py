"""
Movements router — read access to the audit trail.

Endpoints (require a Bearer token, scoped to the caller's owner id):
  GET    /movements                 — Newest first; cursor paging, or filtered
                                      by type and/or a date range
  GET    /movements/types           — Every movement type with its label
  DELETE /movements/{movement_id}   — [ADMIN ONLY] administrative cleanup

Movements are written by the ledger services; there is no create or update
endpoint.
"""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.config import settings
from ledger.database import get_db
from ledger.dependencies import OwnerIdentity, get_current_owner, require_admin
from ledger.exceptions import LedgerValidationError
from ledger.models.movement import MovementType
from ledger.schemas.movement import MovementPageResponse, MovementResponse, MovementTypeInfo
from ledger.services import movement_service

router = APIRouter()


@router.get(
    "",
    response_model=MovementPageResponse,
    summary="List your movements",
)
async def list_movements(
    limit: int = Query(settings.MOVEMENTS_DEFAULT_LIMIT, ge=1, le=500),
    cursor: str | None = Query(None, description="next_cursor from the previous page"),
    type: MovementType | None = Query(None, description="Only movements of this type"),
    start: datetime | None = Query(None, description="Inclusive lower bound"),
    end: datetime | None = Query(None, description="Inclusive upper bound"),
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """
    Without filters, returns one page and a `next_cursor` (null on the last
    page). With `type` and/or `start`+`end`, returns up to `limit` matching
    movements and no cursor.
    """
    if (start is None) != (end is None):
        raise LedgerValidationError("Pass both start and end for a date range")

    if start is not None:
        items = await movement_service.list_movements_by_date_range(
            db, owner.owner_id, start, end, limit=limit, movement_type=type
        )
        next_cursor = None
    elif type is not None:
        items = await movement_service.list_movements_by_type(
            db, owner.owner_id, type, limit=limit
        )
        next_cursor = None
    else:
        items, next_cursor = await movement_service.list_movements(
            db, owner.owner_id, limit=limit, cursor=cursor
        )

    return MovementPageResponse(
        items=[MovementResponse.model_validate(movement) for movement in items],
        next_cursor=next_cursor,
    )


@router.get(
    "/types",
    response_model=list[MovementTypeInfo],
    summary="List movement types",
)
async def list_movement_types(
    owner: OwnerIdentity = Depends(get_current_owner),
):
    return [
        MovementTypeInfo(type=movement_type, label=movement_service.movement_type_label(movement_type))
        for movement_type in MovementType
    ]


@router.delete(
    "/{movement_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="[Admin] Delete a movement",
    tags=["Admin"],
)
async def delete_movement(
    movement_id: uuid.UUID,
    admin: OwnerIdentity = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    [ADMIN ONLY] Remove one of the admin's own movements.

    No ledger operation deletes movements; this exists for cleanup only.
    """
    await movement_service.delete_movement(db, admin.owner_id, movement_id)
