import asyncio

import pytest
from sqlalchemy import func, select

from app.core.database import async_session_maker
from app.models.ticket import Ticket
from app.models.user import User
from app.services.credits import CreditLedger

from conftest import auth_headers


async def _reload(db, user_id):
    return await db.get(User, user_id, populate_existing=True)


class TestCreditLedger:
    async def test_debit_moves_one_credit_from_remaining_to_used(self, db, make_user):
        user = await make_user(credits_remaining=3)

        snapshot = await CreditLedger().debit_one(db, user.id)

        assert snapshot.credits_remaining == 2
        assert snapshot.credits_used == 1

    async def test_debit_with_no_credits_returns_none_and_changes_nothing(self, db, make_user):
        user = await make_user(credits_remaining=0, credits_used=4)

        assert await CreditLedger().debit_one(db, user.id) is None

        user = await _reload(db, user.id)
        assert user.credits_remaining == 0
        assert user.credits_used == 4

    async def test_last_credit_can_only_be_spent_once(self, db, make_user):
        user = await make_user(credits_remaining=1)

        async def attempt():
            async with async_session_maker() as session:
                return await CreditLedger().debit_one(session, user.id)

        results = await asyncio.gather(attempt(), attempt(), attempt())

        assert sum(1 for r in results if r is not None) == 1
        user = await _reload(db, user.id)
        assert user.credits_remaining == 0
        assert user.credits_used == 1

    async def test_refund_restores_debited_credit(self, db, make_user):
        user = await make_user(credits_remaining=2)
        ledger = CreditLedger()
        await ledger.debit_one(db, user.id)

        assert await ledger.refund(db, user.id) is True

        user = await _reload(db, user.id)
        assert user.credits_remaining == 2
        assert user.credits_used == 0

    async def test_refund_never_drives_used_negative(self, db, make_user):
        user = await make_user(credits_remaining=2, credits_used=0)

        assert await CreditLedger().refund(db, user.id) is False

        user = await _reload(db, user.id)
        assert user.credits_remaining == 2
        assert user.credits_used == 0


class TestTicketCreationCredits:
    async def test_exhausted_user_gets_402_and_no_ticket(self, client, db, make_user):
        user = await make_user(credits_remaining=0, credits_used=5)

        response = await client.post(
            "/api/tickets",
            json={"title": "Login broken", "description": "Cannot log in"},
            headers=auth_headers(user),
        )

        assert response.status_code == 402
        assert response.json()["detail"]["code"] == "CREDIT_EXHAUSTED"
        count = await db.scalar(select(func.count()).select_from(Ticket))
        assert count == 0
        user = await _reload(db, user.id)
        assert user.credits_used == 5

    async def test_successful_creation_consumes_one_credit(self, client, db, make_user):
        user = await make_user(credits_remaining=5)

        response = await client.post(
            "/api/tickets",
            json={"title": "Login broken", "description": "Cannot log in"},
            headers=auth_headers(user),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["credits"]["credits_remaining"] == 4
        assert body["credits"]["credits_used"] == 1

    async def test_staff_create_tickets_without_spending_credits(self, client, db, make_user):
        moderator = await make_user(role="moderator", credits_remaining=0)

        response = await client.post(
            "/api/tickets",
            json={"title": "Printer", "description": "Out of toner"},
            headers=auth_headers(moderator),
        )

        assert response.status_code == 201
        assert response.json()["credits"] is None

    async def test_failed_processing_refunds_the_credit(self, client, db, make_user, monkeypatch):
        user = await make_user(credits_remaining=2)

        async def broken_pipeline(*args, **kwargs):
            raise RuntimeError("analysis crashed")

        monkeypatch.setattr("app.services.tickets.process_ticket", broken_pipeline)

        response = await client.post(
            "/api/tickets",
            json={"title": "Login broken", "description": "Cannot log in"},
            headers=auth_headers(user),
        )

        assert response.status_code == 500
        user = await _reload(db, user.id)
        assert user.credits_remaining == 2
        assert user.credits_used == 0

    @pytest.mark.parametrize("payload", [{"title": "", "description": "x"}, {"title": "x"}, {}])
    async def test_missing_fields_are_rejected_before_debit(self, client, db, make_user, payload):
        user = await make_user(credits_remaining=1)

        response = await client.post("/api/tickets", json=payload, headers=auth_headers(user))

        assert response.status_code == 400
        user = await _reload(db, user.id)
        assert user.credits_remaining == 1
