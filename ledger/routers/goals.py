"""
Goals router — savings goals and goal funding.

Endpoints (require a Bearer token, scoped to the caller's owner id):
  POST   /goals                      — Create a goal (link or create an account)
  GET    /goals                      — List own goals
  GET    /goals/{goal_id}            — Get a goal
  PATCH  /goals/{goal_id}            — Update a goal
  DELETE /goals/{goal_id}            — Delete a goal
  POST   /goals/{goal_id}/funds      — Move money from the linked account
  POST   /goals/{goal_id}/progress   — Adjust progress without moving money
"""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.cache import OwnerReadCache
from ledger.database import get_db
from ledger.dependencies import OwnerIdentity, get_current_owner, get_read_cache
from ledger.schemas.goal import (
    GoalCreateRequest,
    GoalFundingResponse,
    GoalFundsRequest,
    GoalPatch,
    GoalProgressRequest,
    GoalResponse,
)
from ledger.services import goal_service

router = APIRouter()


@router.post(
    "",
    response_model=GoalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a savings goal",
)
async def create_goal(
    request: GoalCreateRequest,
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
    cache: OwnerReadCache = Depends(get_read_cache),
):
    """
    Either pass `account_id` to fund the goal from an existing account, or
    `create_account: true` to open a dedicated savings account at zero.
    """
    goal = await goal_service.create_goal(
        db,
        owner.owner_id,
        name=request.name,
        target_amount_cents=request.target_amount_cents,
        currency=request.currency,
        description=request.description,
        deadline=request.deadline,
        account_id=request.account_id,
        create_account=request.create_account,
        account_name=request.account_name,
        account_type=request.account_type,
    )
    # The linked account's goal flags changed
    cache.invalidate_on_commit(db, owner.owner_id)
    return goal


@router.get(
    "",
    response_model=list[GoalResponse],
    summary="List your goals",
)
async def list_goals(
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    return await goal_service.get_goals(db, owner.owner_id)


@router.get(
    "/{goal_id}",
    response_model=GoalResponse,
    summary="Get a goal",
)
async def get_goal(
    goal_id: uuid.UUID,
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    return await goal_service.get_goal(db, owner.owner_id, goal_id)


@router.patch(
    "/{goal_id}",
    response_model=GoalResponse,
    summary="Update a goal",
)
async def update_goal(
    goal_id: uuid.UUID,
    patch: GoalPatch,
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
    cache: OwnerReadCache = Depends(get_read_cache),
):
    """
    Progress is not editable here; use `/progress` or `/funds`. A completed
    goal cannot change status.
    """
    goal = await goal_service.update_goal(db, owner.owner_id, goal_id, patch)
    cache.invalidate_on_commit(db, owner.owner_id)
    return goal


@router.delete(
    "/{goal_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a goal",
)
async def delete_goal(
    goal_id: uuid.UUID,
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
    cache: OwnerReadCache = Depends(get_read_cache),
):
    """The linked account keeps its balance; only its goal link is cleared."""
    await goal_service.delete_goal(db, owner.owner_id, goal_id)
    cache.invalidate_on_commit(db, owner.owner_id)


@router.post(
    "/{goal_id}/funds",
    response_model=GoalFundingResponse,
    summary="Fund a goal from its linked account",
)
async def add_funds(
    goal_id: uuid.UUID,
    request: GoalFundsRequest,
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
    cache: OwnerReadCache = Depends(get_read_cache),
):
    """
    Debit the linked account and add the amount to the goal's progress.

    `completed` is true once progress has reached the target.
    """
    result = await goal_service.add_funds_to_goal(
        db, owner.owner_id, goal_id, request.amount_cents
    )
    cache.invalidate_on_commit(db, owner.owner_id)
    return GoalFundingResponse(
        completed=result["completed"],
        new_balance_cents=result["new_balance_cents"],
        new_goal_amount_cents=result["new_goal_amount_cents"],
        goal=GoalResponse.model_validate(result["goal"]),
    )


@router.post(
    "/{goal_id}/progress",
    response_model=GoalResponse,
    summary="Adjust a goal's progress",
)
async def adjust_progress(
    goal_id: uuid.UUID,
    request: GoalProgressRequest,
    owner: OwnerIdentity = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """Positive or negative delta in cents; progress never drops below zero."""
    return await goal_service.update_goal_progress(
        db, owner.owner_id, goal_id, request.delta_cents
    )
