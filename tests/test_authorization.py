"""
Tests for authorization boundaries: owner isolation and the admin role.

1. **Owner isolation**: An owner cannot access, modify, or even detect the
   existence of another owner's accounts, transactions, goals or movements.
   Every attempt returns 404, exactly as for an id that does not exist.

2. **Role enforcement**: Only a token carrying the "admin" role claim may
   use the administrative movement cleanup endpoint.
"""

import uuid
from datetime import timedelta

from ledger.security import create_access_token


async def new_account(client, name="Checking", balance=0):
    response = await client.post(
        "/accounts", json={"name": name, "initial_balance_cents": balance}
    )
    return response.json()["id"]


class TestIdentity:
    """The Bearer token is the only source of the owner id."""

    async def test_missing_token(self, client):
        assert (await client.get("/accounts")).status_code == 401
        assert (await client.get("/movements")).status_code == 401

    async def test_expired_token(self, client):
        token = create_access_token("owner-1", expires_delta=timedelta(minutes=-1))
        response = await client.get("/accounts", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_health_is_public(self, client):
        response = await client.get("/health")
        assert response.status_code == 200


class TestCrossOwnerAccountAccess:
    """An owner cannot see or modify another owner's accounts."""

    async def test_cannot_view_account(self, authenticated_client, second_authenticated_client):
        account_id = await new_account(authenticated_client)

        response = await second_authenticated_client.get(f"/accounts/{account_id}")
        assert response.status_code == 404
        assert response.json()["error_type"] == "account_not_found"

    async def test_foreign_and_missing_look_the_same(
        self, authenticated_client, second_authenticated_client
    ):
        account_id = await new_account(authenticated_client)

        foreign = await second_authenticated_client.get(f"/accounts/{account_id}/balance")
        missing = await second_authenticated_client.get(f"/accounts/{uuid.uuid4()}/balance")
        assert foreign.status_code == missing.status_code == 404
        assert foreign.json()["error_type"] == missing.json()["error_type"]

    async def test_lists_are_disjoint(self, authenticated_client, second_authenticated_client):
        await new_account(authenticated_client)
        await new_account(second_authenticated_client)

        a_ids = {a["id"] for a in (await authenticated_client.get("/accounts")).json()}
        b_ids = {b["id"] for b in (await second_authenticated_client.get("/accounts")).json()}
        assert len(a_ids) == len(b_ids) == 1
        assert a_ids.isdisjoint(b_ids)

    async def test_cannot_credit_or_rename(self, authenticated_client, second_authenticated_client):
        account_id = await new_account(authenticated_client, balance=100)

        credit = await second_authenticated_client.post(
            f"/accounts/{account_id}/transactions",
            json={"type": "credit", "amount_cents": 5000},
        )
        rename = await second_authenticated_client.patch(
            f"/accounts/{account_id}", json={"name": "Mine now"}
        )
        delete = await second_authenticated_client.delete(f"/accounts/{account_id}")
        assert credit.status_code == rename.status_code == delete.status_code == 404

        account = (await authenticated_client.get(f"/accounts/{account_id}")).json()
        assert account["name"] == "Checking"
        assert account["balance_cents"] == 100

    async def test_cannot_list_account_transactions(
        self, authenticated_client, second_authenticated_client
    ):
        account_id = await new_account(authenticated_client)
        response = await second_authenticated_client.get(f"/accounts/{account_id}/transactions")
        assert response.status_code == 404


class TestCrossOwnerTransfers:
    async def test_cannot_drain_another_owners_account(
        self, authenticated_client, second_authenticated_client
    ):
        a_id = await new_account(authenticated_client, balance=50000)
        b_id = await new_account(second_authenticated_client)

        response = await second_authenticated_client.post(
            "/transfers",
            json={"from_account_id": a_id, "to_account_id": b_id, "amount_cents": 50000},
        )
        assert response.status_code == 404

        balance = (await authenticated_client.get(f"/accounts/{a_id}/balance")).json()
        assert balance["cached_balance_cents"] == 50000


class TestCrossOwnerGoals:
    async def test_cannot_link_foreign_account(
        self, authenticated_client, second_authenticated_client
    ):
        account_id = await new_account(authenticated_client, balance=1000)
        response = await second_authenticated_client.post(
            "/goals",
            json={"name": "Steal", "target_amount_cents": 1000, "account_id": account_id},
        )
        assert response.status_code == 404

    async def test_cannot_fund_or_view_foreign_goal(
        self, authenticated_client, second_authenticated_client
    ):
        account_id = await new_account(authenticated_client, balance=1000)
        goal = (await authenticated_client.post(
            "/goals",
            json={"name": "Trip", "target_amount_cents": 1000, "account_id": account_id},
        )).json()

        view = await second_authenticated_client.get(f"/goals/{goal['id']}")
        fund = await second_authenticated_client.post(
            f"/goals/{goal['id']}/funds", json={"amount_cents": 500}
        )
        assert view.status_code == fund.status_code == 404
        assert (await second_authenticated_client.get("/goals")).json() == []


class TestAdminRole:
    """Movement cleanup is gated on the admin role claim."""

    async def test_member_blocked_even_for_own_movement(self, authenticated_client):
        await new_account(authenticated_client)
        movement_id = (await authenticated_client.get("/movements")).json()["items"][0]["id"]

        response = await authenticated_client.delete(f"/movements/{movement_id}")
        assert response.status_code == 403

    async def test_role_check_happens_before_lookup(self, authenticated_client):
        response = await authenticated_client.delete(f"/movements/{uuid.uuid4()}")
        assert response.status_code == 403

    async def test_admin_passes_the_gate(self, admin_client):
        response = await admin_client.delete(f"/movements/{uuid.uuid4()}")
        assert response.status_code == 404
