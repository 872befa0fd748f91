"""Shared pytest fixtures: a throwaway SQLite database and an ASGI client."""
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

_DB_DIR = tempfile.mkdtemp(prefix="helpdesk-tests-")

os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{Path(_DB_DIR) / 'test.db'}"
os.environ["TASK_QUEUE_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["PAYMENT_MODE"] = "razorpay"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "test_key_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "test_webhook_secret"
os.environ["GEMINI_API_KEY"] = ""
os.environ["SENDGRID_API_KEY"] = ""
os.environ["ENVIRONMENT"] = "test"

import httpx
import pytest

from app.core.database import Base, async_session_maker, engine, init_db
from app.main import app
from app.models.user import User
from app.services.auth import AuthService, hash_password
from app.services.email import EmailService

_PASSWORD_HASHES = {}


def password_hash(password: str) -> str:
    if password not in _PASSWORD_HASHES:
        _PASSWORD_HASHES[password] = hash_password(password)
    return _PASSWORD_HASHES[password]


@pytest.fixture
async def database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await init_db()
    yield
    await engine.dispose()


@pytest.fixture
async def db(database):
    async with async_session_maker() as session:
        yield session


@pytest.fixture
async def client(database):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture(autouse=True)
def sent_mail(monkeypatch):
    """Capture outgoing mail instead of calling SendGrid."""
    outbox = []

    async def fake_send_mail(self, to_email, subject, text):
        outbox.append({"to": to_email, "subject": subject, "text": text})

    monkeypatch.setattr(EmailService, "send_mail", fake_send_mail)
    return outbox


@pytest.fixture
def make_user(db):
    base_time = datetime(2024, 1, 1, tzinfo=timezone.utc)
    counter = {"n": 0}

    async def _make_user(
        email=None,
        role="user",
        skills=None,
        credits_remaining=5,
        credits_used=0,
        issues_resolved=0,
        score=0,
        password="secret123",
    ):
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            hashed_password=password_hash(password),
            role=role,
            skills=skills or [],
            credits_remaining=credits_remaining,
            credits_used=credits_used,
            issues_resolved=issues_resolved,
            score=score,
            created_at=base_time + timedelta(minutes=counter["n"]),
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    return _make_user


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {AuthService().token_for(user)}"}
