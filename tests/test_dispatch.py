from app.core.config import settings
from app.models.ticket import TicketStatus
from app.services.auth import UserNotFoundError
from app.services.dispatch import enqueue
from app.services.ticket_agent import TicketNotFoundError
from app.tasks import password_reset, ticket_processor

from conftest import auth_headers


class FakeTask:
    name = "fake/task"

    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def apply_async(self, kwargs=None, retry=True):
        self.calls.append((kwargs, retry))
        if self.error:
            raise self.error


class TestEnqueue:
    def test_disabled_queue_runs_inline(self):
        task = FakeTask()

        assert enqueue(task, ticket_id=1) is False
        assert task.calls == []

    def test_broker_failure_falls_back(self, monkeypatch):
        monkeypatch.setattr(settings, "TASK_QUEUE_ENABLED", True)
        task = FakeTask(error=ConnectionError("redis unreachable"))

        assert enqueue(task, ticket_id=1) is False

    def test_successful_dispatch_does_not_retry_the_broker(self, monkeypatch):
        monkeypatch.setattr(settings, "TASK_QUEUE_ENABLED", True)
        task = FakeTask()

        assert enqueue(task, ticket_id=7) is True
        assert task.calls == [({"ticket_id": 7}, False)]


class TestCeleryTasks:
    def test_missing_ticket_is_not_retried(self, monkeypatch):
        async def missing(ticket_id):
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")

        monkeypatch.setattr(ticket_processor, "process_ticket_async", missing)

        result = ticket_processor.process_ticket_task.run(ticket_id=42)

        assert result == {"success": False, "error": "Ticket 42 not found"}

    def test_unknown_email_is_skipped(self, monkeypatch):
        async def unknown(email):
            raise UserNotFoundError("User does not exist")

        monkeypatch.setattr(password_reset, "send_password_reset_async", unknown)

        assert password_reset.send_password_reset_task.run(email="ghost@example.com") == {"success": False}


async def test_queued_ticket_is_left_for_the_worker(client, make_user, monkeypatch):
    monkeypatch.setattr("app.services.tickets.enqueue", lambda task, **kwargs: True)
    user = await make_user()

    response = await client.post(
        "/api/tickets",
        json={"title": "VPN drops", "description": "Every ten minutes"},
        headers=auth_headers(user),
    )

    assert response.status_code == 201
    assert "AI agent is processing" in response.json()["message"]
    assert response.json()["ticket"]["status"] == TicketStatus.NEW.value
    assert response.json()["ticket"]["assignee"] is None


async def test_queued_password_reset_does_no_inline_work(client, make_user, monkeypatch, sent_mail):
    dispatched = []

    def fake_enqueue(task, **kwargs):
        dispatched.append((task.name, kwargs))
        return True

    monkeypatch.setattr("app.routers.auth.enqueue", fake_enqueue)
    await make_user(email="real@example.com")

    response = await client.post("/api/auth/forgot-password", json={"email": "Real@Example.com"})

    assert response.status_code == 200
    assert dispatched == [("user/forgot-password", {"email": "real@example.com"})]
    assert sent_mail == []
