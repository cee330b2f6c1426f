"""
Tests for savings goals and the Goal Funding Service.

These tests verify:
  - Goals link an existing account or get a new savings account
  - Funding moves money from the linked account into the goal, in one step
  - Completion happens exactly when progress reaches the target and is
    never undone
  - Every pre-check (goal, linked account, status, currency, funds) runs
    before any write
  - A goal and its linked account always share one currency
  - Update and delete keep the account back-reference in step
"""

import uuid

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ledger.exceptions import (
    CurrencyMismatchError,
    GoalNotFoundError,
    NoLinkedAccountError,
    PartialFailureError,
)
from ledger.models.account import Account
from ledger.models.goal import Goal, GoalStatus
from ledger.services import account_service, goal_service


async def create_account(client, name="Savings", balance=0, currency=None):
    payload = {"name": name, "initial_balance_cents": balance}
    if currency:
        payload["currency"] = currency
    response = await client.post("/accounts", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


async def create_goal(client, account_id, name="Vacation", target=50000, **fields):
    response = await client.post(
        "/goals",
        json={"name": name, "target_amount_cents": target, "account_id": account_id, **fields},
    )
    assert response.status_code == 201, response.text
    return response.json()


async def fund(client, goal_id, amount):
    return await client.post(f"/goals/{goal_id}/funds", json={"amount_cents": amount})


class TestCreateGoal:
    """Tests for POST /goals."""

    async def test_link_existing_account(self, authenticated_client):
        savings = await create_account(authenticated_client)
        goal = await create_goal(authenticated_client, savings["id"])

        assert goal["status"] == "active"
        assert goal["current_amount_cents"] == 0
        assert goal["account_id"] == savings["id"]

        account = (await authenticated_client.get(f"/accounts/{savings['id']}")).json()
        assert account["is_goal_account"] is True
        assert account["goal_id"] == goal["id"]

        movements = await authenticated_client.get("/movements", params={"type": "goal_created"})
        assert len(movements.json()["items"]) == 1

    async def test_create_dedicated_account(self, authenticated_client):
        response = await authenticated_client.post(
            "/goals",
            json={"name": "Car", "target_amount_cents": 900000, "create_account": True},
        )
        assert response.status_code == 201
        goal = response.json()

        account = (await authenticated_client.get(f"/accounts/{goal['account_id']}")).json()
        assert account["name"] == "Car Savings"
        assert account["account_type"] == "savings"
        assert account["balance_cents"] == 0
        assert account["goal_id"] == goal["id"]

    async def test_account_is_required(self, authenticated_client):
        response = await authenticated_client.post(
            "/goals", json={"name": "Car", "target_amount_cents": 900000}
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "missing_field"

    async def test_unknown_account(self, authenticated_client):
        response = await authenticated_client.post(
            "/goals",
            json={"name": "Car", "target_amount_cents": 900000, "account_id": str(uuid.uuid4())},
        )
        assert response.status_code == 404

    async def test_currency_must_match_linked_account(self, authenticated_client):
        dollars = await create_account(authenticated_client, "Dollars", 10000, currency="USD")

        response = await authenticated_client.post(
            "/goals",
            json={
                "name": "Tokyo",
                "target_amount_cents": 500000,
                "currency": "JPY",
                "account_id": dollars["id"],
            },
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "currency_mismatch"
        assert (await authenticated_client.get("/goals")).json() == []

        account = (await authenticated_client.get(f"/accounts/{dollars['id']}")).json()
        assert account["is_goal_account"] is False

    async def test_dedicated_account_takes_goal_currency(self, authenticated_client):
        response = await authenticated_client.post(
            "/goals",
            json={
                "name": "Tokyo",
                "target_amount_cents": 500000,
                "currency": "jpy",
                "create_account": True,
            },
        )
        goal = response.json()
        assert goal["currency"] == "JPY"
        account = (await authenticated_client.get(f"/accounts/{goal['account_id']}")).json()
        assert account["currency"] == "JPY"


class TestAddFunds:
    """Tests for POST /goals/{id}/funds."""

    async def test_partial_funding_stays_active(self, authenticated_client):
        """Savings 50.00, goal target 500.00, fund 50.00 -> 0.00 / 50.00, active."""
        savings = await create_account(authenticated_client, balance=5000)
        goal = await create_goal(authenticated_client, savings["id"], target=50000)

        response = await fund(authenticated_client, goal["id"], 5000)
        assert response.status_code == 200
        data = response.json()
        assert data["completed"] is False
        assert data["new_balance_cents"] == 0
        assert data["new_goal_amount_cents"] == 5000
        assert data["goal"]["status"] == "active"

        account = (await authenticated_client.get(f"/accounts/{savings['id']}")).json()
        assert account["balance_cents"] == 0

        movements = await authenticated_client.get(
            "/movements", params={"type": "goal_funds_added"}
        )
        items = movements.json()["items"]
        assert len(items) == 1
        assert items[0]["amount_cents"] == 5000
        assert items[0]["from_account_id"] == savings["id"]
        assert items[0]["metadata"]["account_name"] == "Savings"

    async def test_reaching_target_completes(self, authenticated_client):
        """Fund 50.00 then 450.00 against a 500.00 target -> completed."""
        savings = await create_account(authenticated_client, balance=5000)
        goal = await create_goal(authenticated_client, savings["id"], target=50000)
        await fund(authenticated_client, goal["id"], 5000)

        await authenticated_client.post(
            f"/accounts/{savings['id']}/transactions",
            json={"type": "credit", "amount_cents": 45000},
        )
        response = await fund(authenticated_client, goal["id"], 45000)
        data = response.json()
        assert data["completed"] is True
        assert data["new_goal_amount_cents"] == 50000
        assert data["new_balance_cents"] == 0

        stored = (await authenticated_client.get(f"/goals/{goal['id']}")).json()
        assert stored["status"] == "completed"
        assert stored["current_amount_cents"] == 50000

    async def test_completed_goal_keeps_accumulating(self, authenticated_client):
        savings = await create_account(authenticated_client, balance=20000)
        goal = await create_goal(authenticated_client, savings["id"], target=10000)
        await fund(authenticated_client, goal["id"], 10000)

        response = await fund(authenticated_client, goal["id"], 2500)
        data = response.json()
        assert data["completed"] is True
        assert data["new_goal_amount_cents"] == 12500

    async def test_writes_goal_contribution_leg(self, authenticated_client):
        savings = await create_account(authenticated_client, balance=5000)
        goal = await create_goal(authenticated_client, savings["id"])
        await fund(authenticated_client, goal["id"], 1200)

        legs = (await authenticated_client.get(f"/accounts/{savings['id']}/transactions")).json()
        assert len(legs) == 1
        assert legs[0]["type"] == "debit"
        assert legs[0]["category"] == "Goal"
        assert legs[0]["goal_id"] == goal["id"]

        balance = (await authenticated_client.get(f"/accounts/{savings['id']}/balance")).json()
        assert balance["match"] is True

    async def test_insufficient_funds_changes_nothing(self, authenticated_client):
        savings = await create_account(authenticated_client, balance=1000)
        goal = await create_goal(authenticated_client, savings["id"])

        response = await fund(authenticated_client, goal["id"], 1001)
        assert response.status_code == 422
        assert response.json()["error_type"] == "insufficient_funds"

        account = (await authenticated_client.get(f"/accounts/{savings['id']}")).json()
        assert account["balance_cents"] == 1000
        stored = (await authenticated_client.get(f"/goals/{goal['id']}")).json()
        assert stored["current_amount_cents"] == 0

        movements = await authenticated_client.get(
            "/movements", params={"type": "goal_funds_added"}
        )
        assert movements.json()["items"] == []

    async def test_goal_without_account(self, authenticated_client):
        savings = await create_account(authenticated_client, balance=1000)
        goal = await create_goal(authenticated_client, savings["id"])
        await authenticated_client.delete(f"/accounts/{savings['id']}")

        response = await fund(authenticated_client, goal["id"], 100)
        assert response.status_code == 400
        assert response.json()["error_type"] == "no_linked_account"

    async def test_canceled_goal_rejects_funds(self, authenticated_client):
        savings = await create_account(authenticated_client, balance=1000)
        goal = await create_goal(authenticated_client, savings["id"])
        await authenticated_client.patch(f"/goals/{goal['id']}", json={"status": "canceled"})

        response = await fund(authenticated_client, goal["id"], 100)
        assert response.status_code == 400
        assert response.json()["error_type"] == "goal_status"

    async def test_unknown_goal(self, authenticated_client):
        response = await fund(authenticated_client, uuid.uuid4(), 100)
        assert response.status_code == 404
        assert response.json()["error_type"] == "goal_not_found"


class TestGoalProgress:
    """Tests for POST /goals/{id}/progress and completion monotonicity."""

    async def test_reduction_never_uncompletes(self, authenticated_client):
        savings = await create_account(authenticated_client, balance=10000)
        goal = await create_goal(authenticated_client, savings["id"], target=10000)
        await fund(authenticated_client, goal["id"], 10000)

        response = await authenticated_client.post(
            f"/goals/{goal['id']}/progress", json={"delta_cents": -4000}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["current_amount_cents"] == 6000
        assert data["status"] == "completed"

        # Funding after the reduction still does not reset status
        await authenticated_client.post(
            f"/accounts/{savings['id']}/transactions",
            json={"type": "credit", "amount_cents": 100},
        )
        funded = await fund(authenticated_client, goal["id"], 100)
        assert funded.json()["goal"]["status"] == "completed"

    async def test_progress_floors_at_zero(self, authenticated_client):
        savings = await create_account(authenticated_client)
        goal = await create_goal(authenticated_client, savings["id"])

        response = await authenticated_client.post(
            f"/goals/{goal['id']}/progress", json={"delta_cents": -500}
        )
        assert response.json()["current_amount_cents"] == 0

    async def test_progress_can_complete_without_moving_money(self, authenticated_client):
        savings = await create_account(authenticated_client, balance=300)
        goal = await create_goal(authenticated_client, savings["id"], target=1000)

        response = await authenticated_client.post(
            f"/goals/{goal['id']}/progress", json={"delta_cents": 1000}
        )
        assert response.json()["status"] == "completed"
        account = (await authenticated_client.get(f"/accounts/{savings['id']}")).json()
        assert account["balance_cents"] == 300

    async def test_zero_delta_rejected(self, authenticated_client):
        savings = await create_account(authenticated_client)
        goal = await create_goal(authenticated_client, savings["id"])
        response = await authenticated_client.post(
            f"/goals/{goal['id']}/progress", json={"delta_cents": 0}
        )
        assert response.status_code == 422


class TestUpdateGoal:
    """Tests for PATCH /goals/{id}."""

    async def test_lowering_target_completes(self, authenticated_client):
        savings = await create_account(authenticated_client, balance=5000)
        goal = await create_goal(authenticated_client, savings["id"], target=50000)
        await fund(authenticated_client, goal["id"], 5000)

        response = await authenticated_client.patch(
            f"/goals/{goal['id']}", json={"target_amount_cents": 5000}
        )
        assert response.json()["status"] == "completed"

        raised = await authenticated_client.patch(
            f"/goals/{goal['id']}", json={"target_amount_cents": 80000}
        )
        assert raised.json()["status"] == "completed"

    async def test_completed_goal_cannot_be_reopened(self, authenticated_client):
        savings = await create_account(authenticated_client, balance=1000)
        goal = await create_goal(authenticated_client, savings["id"], target=1000)
        await fund(authenticated_client, goal["id"], 1000)

        response = await authenticated_client.patch(
            f"/goals/{goal['id']}", json={"status": "active"}
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "goal_status"

    async def test_progress_not_patchable(self, authenticated_client):
        savings = await create_account(authenticated_client)
        goal = await create_goal(authenticated_client, savings["id"])
        response = await authenticated_client.patch(
            f"/goals/{goal['id']}", json={"current_amount_cents": 100}
        )
        assert response.status_code == 422

    async def test_relink_moves_back_reference(self, authenticated_client):
        old = await create_account(authenticated_client, "Old")
        new = await create_account(authenticated_client, "New")
        goal = await create_goal(authenticated_client, old["id"])

        response = await authenticated_client.patch(
            f"/goals/{goal['id']}", json={"account_id": new["id"]}
        )
        assert response.json()["account_id"] == new["id"]

        old_account = (await authenticated_client.get(f"/accounts/{old['id']}")).json()
        new_account = (await authenticated_client.get(f"/accounts/{new['id']}")).json()
        assert old_account["is_goal_account"] is False
        assert old_account["goal_id"] is None
        assert new_account["is_goal_account"] is True
        assert new_account["goal_id"] == goal["id"]

        movements = await authenticated_client.get("/movements", params={"type": "goal_updated"})
        assert movements.json()["items"][0]["metadata"]["changed_fields"] == ["account_id"]

    async def test_relink_to_other_currency_rejected(self, authenticated_client):
        dollars = await create_account(authenticated_client, "Dollars", currency="USD")
        euros = await create_account(authenticated_client, "Euros", currency="EUR")
        goal = await create_goal(authenticated_client, dollars["id"])

        response = await authenticated_client.patch(
            f"/goals/{goal['id']}", json={"account_id": euros["id"]}
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "currency_mismatch"

        stored = (await authenticated_client.get(f"/goals/{goal['id']}")).json()
        assert stored["account_id"] == dollars["id"]
        euro_account = (await authenticated_client.get(f"/accounts/{euros['id']}")).json()
        assert euro_account["is_goal_account"] is False


class TestDeleteGoal:
    """Tests for DELETE /goals/{id}."""

    async def test_delete_clears_back_reference(self, authenticated_client):
        savings = await create_account(authenticated_client, balance=5000)
        goal = await create_goal(authenticated_client, savings["id"])
        await fund(authenticated_client, goal["id"], 1000)

        response = await authenticated_client.delete(f"/goals/{goal['id']}")
        assert response.status_code == 204

        account = (await authenticated_client.get(f"/accounts/{savings['id']}")).json()
        assert account["is_goal_account"] is False
        assert account["goal_id"] is None
        assert account["balance_cents"] == 4000

        assert (await authenticated_client.get(f"/goals/{goal['id']}")).status_code == 404
        movements = await authenticated_client.get("/movements", params={"type": "goal_deleted"})
        assert len(movements.json()["items"]) == 1

    async def test_other_owner_cannot_delete(
        self, authenticated_client, second_authenticated_client
    ):
        savings = await create_account(authenticated_client)
        goal = await create_goal(authenticated_client, savings["id"])

        response = await second_authenticated_client.delete(f"/goals/{goal['id']}")
        assert response.status_code == 404
        assert (await authenticated_client.get(f"/goals/{goal['id']}")).status_code == 200


class TestGoalFundingService:
    """Step failures and pre-checks at the service layer."""

    async def test_contribution_failure_rolls_back_everything(
        self, db_session, owner_id, fail_flush, monkeypatch
    ):
        account = await account_service.create_account(
            db_session, owner_id, "Savings", initial_balance_cents=5000
        )
        goal = await goal_service.create_goal(
            db_session, owner_id, "Vacation", 50000, account_id=account.id
        )
        await db_session.commit()
        account_id, goal_id = account.id, goal.id

        fail_flush(3, IntegrityError("INSERT INTO account_transactions", {}, Exception("locked")))

        with pytest.raises(PartialFailureError) as exc_info:
            await goal_service.add_funds_to_goal(db_session, owner_id, goal_id, 2000)
        assert exc_info.value.failed_step == "write_contribution"
        assert exc_info.value.completed_steps == ["debit_account", "increment_goal"]

        monkeypatch.undo()
        balance = (
            await db_session.execute(select(Account.balance_cents).where(Account.id == account_id))
        ).scalar_one()
        progress = (
            await db_session.execute(select(Goal.current_amount_cents).where(Goal.id == goal_id))
        ).scalar_one()
        assert balance == 5000
        assert progress == 0

    async def test_unknown_goal(self, db_session, owner_id):
        with pytest.raises(GoalNotFoundError):
            await goal_service.add_funds_to_goal(db_session, owner_id, uuid.uuid4(), 100)

    async def test_detached_goal(self, db_session, owner_id):
        account = await account_service.create_account(db_session, owner_id, "Savings")
        goal = await goal_service.create_goal(
            db_session, owner_id, "Vacation", 50000, account_id=account.id
        )
        await account_service.delete_account(db_session, owner_id, account.id)

        with pytest.raises(NoLinkedAccountError):
            await goal_service.add_funds_to_goal(db_session, owner_id, goal.id, 100)
        assert goal.status == GoalStatus.ACTIVE

    async def test_currency_checked_before_funds(self, db_session, owner_id):
        account = await account_service.create_account(
            db_session, owner_id, "Dollars", initial_balance_cents=10000, currency="USD"
        )
        goal = await goal_service.create_goal(
            db_session, owner_id, "Tokyo", 500000, account_id=account.id
        )
        # A goal left over from before currencies were enforced
        goal.currency = "JPY"
        await db_session.commit()

        with pytest.raises(CurrencyMismatchError) as exc_info:
            await goal_service.add_funds_to_goal(db_session, owner_id, goal.id, 50000)
        assert exc_info.value.expected == "JPY"
        assert exc_info.value.actual == "USD"
        assert account.balance_cents == 10000
        assert goal.current_amount_cents == 0
        assert not db_session.dirty
