"""
Tests for recurring transactions.

These tests verify:
  - The next due date for every frequency, including month-end clamping
    and leap years
  - A recurring transaction needs one of the caller's accounts
  - Editing the schedule recomputes the next due date
  - Create, update and delete are recorded on the audit trail
  - Schedules never move money
"""

import uuid
from datetime import date, timedelta

import pytest

from ledger.exceptions import LedgerValidationError, MissingFieldError
from ledger.models.recurring_transaction import RecurrenceFrequency
from ledger.services import account_service, recurring_service
from ledger.services.recurring_service import add_months, calculate_next_process_date


async def create_account(client, name="Checking", balance=0, **fields):
    response = await client.post(
        "/accounts", json={"name": name, "initial_balance_cents": balance, **fields}
    )
    assert response.status_code == 201, response.text
    return response.json()


async def create_recurring(client, account_id, **fields):
    body = {
        "account_id": account_id,
        "type": "expense",
        "amount_cents": 120000,
        "description": "Rent",
        "frequency": "monthly",
        "start_date": "2020-01-31",
        **fields,
    }
    response = await client.post("/recurring", json=body)
    assert response.status_code == 201, response.text
    return response.json()


class TestNextProcessDate:
    """calculate_next_process_date() with a fixed reference day."""

    @pytest.mark.parametrize(
        "start, frequency, today, expected",
        [
            # Start still ahead: the start itself is next
            (date(2025, 6, 1), RecurrenceFrequency.MONTHLY, date(2025, 5, 20), date(2025, 6, 1)),
            (date(2025, 1, 1), RecurrenceFrequency.DAILY, date(2025, 3, 10), date(2025, 3, 11)),
            # Weekly on Wednesdays; today is the due day, so the next week
            (date(2025, 1, 1), RecurrenceFrequency.WEEKLY, date(2025, 1, 15), date(2025, 1, 22)),
            (date(2025, 1, 1), RecurrenceFrequency.WEEKLY, date(2025, 1, 16), date(2025, 1, 22)),
            (date(2025, 1, 1), RecurrenceFrequency.BIWEEKLY, date(2025, 1, 16), date(2025, 1, 29)),
            (date(2025, 1, 1), RecurrenceFrequency.BIWEEKLY, date(2025, 1, 14), date(2025, 1, 15)),
            # Month ends
            (date(2024, 1, 31), RecurrenceFrequency.MONTHLY, date(2024, 2, 10), date(2024, 2, 29)),
            (date(2025, 1, 31), RecurrenceFrequency.MONTHLY, date(2025, 2, 10), date(2025, 2, 28)),
            (date(2025, 1, 31), RecurrenceFrequency.MONTHLY, date(2025, 2, 28), date(2025, 3, 31)),
            (date(2025, 1, 31), RecurrenceFrequency.MONTHLY, date(2025, 4, 15), date(2025, 4, 30)),
            (date(2025, 1, 31), RecurrenceFrequency.MONTHLY, date(2025, 1, 31), date(2025, 2, 28)),
            (date(2024, 11, 30), RecurrenceFrequency.QUARTERLY, date(2024, 12, 1), date(2025, 2, 28)),
            (date(2024, 8, 31), RecurrenceFrequency.QUARTERLY, date(2024, 12, 1), date(2025, 2, 28)),
            (date(2025, 12, 15), RecurrenceFrequency.MONTHLY, date(2026, 1, 3), date(2026, 1, 15)),
            # Leap day
            (date(2024, 2, 29), RecurrenceFrequency.YEARLY, date(2024, 3, 1), date(2025, 2, 28)),
            (date(2024, 2, 29), RecurrenceFrequency.YEARLY, date(2027, 6, 1), date(2028, 2, 29)),
        ],
    )
    def test_next_date(self, start, frequency, today, expected):
        assert calculate_next_process_date(start, frequency, today=today) == expected

    def test_always_after_today(self):
        start = date(2024, 1, 31)
        for offset in range(0, 800, 13):
            today = start + timedelta(days=offset)
            for frequency in RecurrenceFrequency:
                upcoming = calculate_next_process_date(start, frequency, today=today)
                assert upcoming > today

    def test_past_end_date_has_no_next(self):
        assert calculate_next_process_date(
            date(2025, 1, 31),
            RecurrenceFrequency.MONTHLY,
            today=date(2025, 3, 5),
            end_date=date(2025, 3, 30),
        ) is None

    def test_end_date_itself_is_still_due(self):
        assert calculate_next_process_date(
            date(2025, 1, 31),
            RecurrenceFrequency.MONTHLY,
            today=date(2025, 3, 5),
            end_date=date(2025, 3, 31),
        ) == date(2025, 3, 31)

    def test_add_months_crosses_years(self):
        assert add_months(date(2025, 11, 30), 3) == date(2026, 2, 28)
        assert add_months(date(2025, 3, 31), -1) == date(2025, 2, 28)


class TestCreateRecurring:
    """Tests for POST /recurring."""

    async def test_create(self, authenticated_client):
        account = await create_account(authenticated_client, balance=5000)
        data = await create_recurring(authenticated_client, account["id"], category="Utilities")

        assert data["account_id"] == account["id"]
        assert data["amount_cents"] == 120000
        assert data["currency"] == "USD"
        assert data["type"] == "expense"
        assert data["category"] == "Utilities"
        assert data["frequency"] == "monthly"
        assert data["is_active"] is True
        assert data["last_processed"] is None
        expected = calculate_next_process_date(date(2020, 1, 31), RecurrenceFrequency.MONTHLY)
        assert data["next_process_date"] == expected.isoformat()

        # A schedule moves no money
        stored = (await authenticated_client.get(f"/accounts/{account['id']}")).json()
        assert stored["balance_cents"] == 5000

    async def test_future_start_is_next_date(self, authenticated_client):
        account = await create_account(authenticated_client)
        start = date.today() + timedelta(days=10)
        data = await create_recurring(
            authenticated_client, account["id"], frequency="weekly", start_date=start.isoformat()
        )
        assert data["next_process_date"] == start.isoformat()

    async def test_records_movement(self, authenticated_client):
        account = await create_account(authenticated_client)
        data = await create_recurring(authenticated_client, account["id"], type="income")

        movements = await authenticated_client.get(
            "/movements", params={"type": "recurring_transaction_created"}
        )
        items = movements.json()["items"]
        assert len(items) == 1
        assert items[0]["entity_id"] == data["id"]
        assert items[0]["entity_type"] == "recurring_transaction"
        assert items[0]["to_account_id"] == account["id"]
        assert items[0]["metadata"]["frequency"] == "monthly"

    async def test_account_is_required(self, authenticated_client):
        response = await authenticated_client.post(
            "/recurring",
            json={
                "type": "expense",
                "amount_cents": 100,
                "description": "Gym",
                "frequency": "monthly",
                "start_date": "2025-01-01",
            },
        )
        assert response.status_code == 422

    async def test_unknown_account(self, authenticated_client):
        response = await authenticated_client.post(
            "/recurring",
            json={
                "account_id": str(uuid.uuid4()),
                "type": "expense",
                "amount_cents": 100,
                "description": "Gym",
                "frequency": "monthly",
                "start_date": "2025-01-01",
            },
        )
        assert response.status_code == 404
        assert response.json()["error_type"] == "account_not_found"

    async def test_end_before_start(self, authenticated_client):
        account = await create_account(authenticated_client)
        response = await authenticated_client.post(
            "/recurring",
            json={
                "account_id": account["id"],
                "type": "expense",
                "amount_cents": 100,
                "description": "Gym",
                "frequency": "monthly",
                "start_date": "2025-02-01",
                "end_date": "2025-01-01",
            },
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "validation_error"

    async def test_transfer_type_rejected(self, authenticated_client):
        account = await create_account(authenticated_client)
        response = await authenticated_client.post(
            "/recurring",
            json={
                "account_id": account["id"],
                "type": "transfer",
                "amount_cents": 100,
                "description": "Savings",
                "frequency": "monthly",
                "start_date": "2025-01-01",
            },
        )
        assert response.status_code == 422

    async def test_takes_account_currency(self, authenticated_client):
        account = await create_account(authenticated_client, "Euros", currency="EUR")
        data = await create_recurring(authenticated_client, account["id"])
        assert data["currency"] == "EUR"


class TestListAndGet:
    async def test_list_newest_first(self, authenticated_client):
        account = await create_account(authenticated_client)
        first = await create_recurring(authenticated_client, account["id"], description="Rent")
        second = await create_recurring(authenticated_client, account["id"], description="Gym")

        items = (await authenticated_client.get("/recurring")).json()
        assert [item["id"] for item in items] == [second["id"], first["id"]]

    async def test_get_one(self, authenticated_client):
        account = await create_account(authenticated_client)
        created = await create_recurring(authenticated_client, account["id"])

        response = await authenticated_client.get(f"/recurring/{created['id']}")
        assert response.status_code == 200
        assert response.json()["description"] == "Rent"

    async def test_other_owner_sees_nothing(
        self, authenticated_client, second_authenticated_client
    ):
        account = await create_account(authenticated_client)
        created = await create_recurring(authenticated_client, account["id"])

        response = await second_authenticated_client.get(f"/recurring/{created['id']}")
        assert response.status_code == 404
        assert response.json()["error_type"] == "recurring_transaction_not_found"
        assert (await second_authenticated_client.get("/recurring")).json() == []

    async def test_cannot_use_foreign_account(
        self, authenticated_client, second_authenticated_client
    ):
        account = await create_account(authenticated_client)
        response = await second_authenticated_client.post(
            "/recurring",
            json={
                "account_id": account["id"],
                "type": "expense",
                "amount_cents": 100,
                "description": "Gym",
                "frequency": "monthly",
                "start_date": "2025-01-01",
            },
        )
        assert response.status_code == 404


class TestUpdateRecurring:
    """Tests for PATCH /recurring/{id}."""

    async def test_frequency_change_recomputes_next_date(self, authenticated_client):
        account = await create_account(authenticated_client)
        created = await create_recurring(authenticated_client, account["id"])

        response = await authenticated_client.patch(
            f"/recurring/{created['id']}", json={"frequency": "quarterly"}
        )
        assert response.status_code == 200
        expected = calculate_next_process_date(date(2020, 1, 31), RecurrenceFrequency.QUARTERLY)
        assert response.json()["next_process_date"] == expected.isoformat()

    async def test_start_date_change_recomputes_next_date(self, authenticated_client):
        account = await create_account(authenticated_client)
        created = await create_recurring(authenticated_client, account["id"])
        start = date.today() + timedelta(days=3)

        response = await authenticated_client.patch(
            f"/recurring/{created['id']}", json={"start_date": start.isoformat()}
        )
        assert response.json()["next_process_date"] == start.isoformat()

    async def test_ended_series_has_no_next_date(self, authenticated_client):
        account = await create_account(authenticated_client)
        created = await create_recurring(authenticated_client, account["id"])

        response = await authenticated_client.patch(
            f"/recurring/{created['id']}", json={"end_date": "2020-06-30"}
        )
        assert response.json()["next_process_date"] is None

        reopened = await authenticated_client.patch(
            f"/recurring/{created['id']}", json={"end_date": None}
        )
        assert reopened.json()["end_date"] is None
        assert reopened.json()["next_process_date"] is not None

    async def test_plain_fields_keep_schedule(self, authenticated_client):
        account = await create_account(authenticated_client)
        created = await create_recurring(authenticated_client, account["id"])

        response = await authenticated_client.patch(
            f"/recurring/{created['id']}",
            json={"amount_cents": 130000, "description": "Rent (new lease)", "is_active": False},
        )
        data = response.json()
        assert data["amount_cents"] == 130000
        assert data["description"] == "Rent (new lease)"
        assert data["is_active"] is False
        assert data["next_process_date"] == created["next_process_date"]

        movements = await authenticated_client.get(
            "/movements", params={"type": "recurring_transaction_updated"}
        )
        changed = movements.json()["items"][0]["metadata"]["changed_fields"]
        assert changed == ["amount_cents", "description", "is_active"]

    async def test_move_to_another_account(self, authenticated_client):
        dollars = await create_account(authenticated_client, "Dollars")
        euros = await create_account(authenticated_client, "Euros", currency="EUR")
        created = await create_recurring(authenticated_client, dollars["id"])

        response = await authenticated_client.patch(
            f"/recurring/{created['id']}", json={"account_id": euros["id"]}
        )
        assert response.json()["account_id"] == euros["id"]
        assert response.json()["currency"] == "EUR"

    async def test_unknown_fields_rejected(self, authenticated_client):
        account = await create_account(authenticated_client)
        created = await create_recurring(authenticated_client, account["id"])

        response = await authenticated_client.patch(
            f"/recurring/{created['id']}", json={"next_process_date": "2030-01-01"}
        )
        assert response.status_code == 422

    async def test_end_before_start_rejected(self, authenticated_client):
        account = await create_account(authenticated_client)
        created = await create_recurring(authenticated_client, account["id"])

        response = await authenticated_client.patch(
            f"/recurring/{created['id']}", json={"end_date": "2019-12-31"}
        )
        assert response.status_code == 400
        stored = (await authenticated_client.get(f"/recurring/{created['id']}")).json()
        assert stored["end_date"] is None


class TestDeleteRecurring:
    async def test_delete(self, authenticated_client):
        account = await create_account(authenticated_client)
        created = await create_recurring(authenticated_client, account["id"])

        response = await authenticated_client.delete(f"/recurring/{created['id']}")
        assert response.status_code == 204
        assert (await authenticated_client.get(f"/recurring/{created['id']}")).status_code == 404

        movements = await authenticated_client.get(
            "/movements", params={"type": "recurring_transaction_deleted"}
        )
        items = movements.json()["items"]
        assert len(items) == 1
        assert items[0]["entity_id"] == created["id"]
        assert items[0]["from_account_id"] == account["id"]

    async def test_delete_missing(self, authenticated_client):
        response = await authenticated_client.delete(f"/recurring/{uuid.uuid4()}")
        assert response.status_code == 404


class TestRecurringService:
    """Validation order at the service layer."""

    async def test_missing_account(self, db_session, owner_id):
        with pytest.raises(MissingFieldError) as exc_info:
            await recurring_service.add_recurring_transaction(
                db_session, owner_id, None, 100, "expense", "Gym",
                RecurrenceFrequency.MONTHLY, date(2025, 1, 1),
            )
        assert exc_info.value.field_name == "account_id"

    async def test_blank_description(self, db_session, owner_id):
        account = await account_service.create_account(db_session, owner_id, "Checking")
        with pytest.raises(MissingFieldError):
            await recurring_service.add_recurring_transaction(
                db_session, owner_id, account.id, 100, "expense", "   ",
                RecurrenceFrequency.MONTHLY, date(2025, 1, 1),
            )

    async def test_transfer_type(self, db_session, owner_id):
        account = await account_service.create_account(db_session, owner_id, "Checking")
        with pytest.raises(LedgerValidationError):
            await recurring_service.add_recurring_transaction(
                db_session, owner_id, account.id, 100, "transfer", "Savings",
                RecurrenceFrequency.MONTHLY, date(2025, 1, 1),
            )
