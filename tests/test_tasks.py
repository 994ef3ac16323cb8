import uuid
from datetime import timedelta
import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from recipe_api import tasks
from recipe_api.audit import utcnow
from recipe_api.celery_app import celery_app
from recipe_api.database import Base
from recipe_api.models import PasswordResetToken


@pytest.fixture
def sync_session_factory(monkeypatch):
    engine = create_engine(
        "sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False)

    def _get_db_sync():
        db = factory()
        try:
            yield db
        finally:
            db.close()

    monkeypatch.setattr(tasks, "get_db_sync", _get_db_sync)
    yield factory
    engine.dispose()


def make_token(expiry_date, used=False):
    return PasswordResetToken(
        token=str(uuid.uuid4()),
        user_login="owner",
        expiry_date=expiry_date,
        used=used,
        created_at=expiry_date - timedelta(hours=1),
    )


def test_cleanup_removes_only_expired_tokens(sync_session_factory):
    now = utcnow()
    with sync_session_factory() as db:
        db.add_all([
            make_token(now - timedelta(hours=2)),
            make_token(now - timedelta(minutes=1), used=True),
            make_token(now + timedelta(minutes=30)),
        ])
        db.commit()

    result = tasks.cleanup_expired_reset_tokens()
    assert result["deleted"] == 2

    with sync_session_factory() as db:
        remaining = db.execute(select(PasswordResetToken)).scalars().all()
        assert len(remaining) == 1
        assert remaining[0].expiry_date > now


def test_cleanup_is_scheduled_hourly():
    schedule = celery_app.conf.beat_schedule["cleanup-expired-reset-tokens"]
    assert schedule["task"] == "tasks.cleanup_expired_reset_tokens"
    assert schedule["schedule"].minute == {0}


def test_reset_email_is_logged_without_smtp(monkeypatch, settings):
    monkeypatch.setattr(tasks, "get_settings", lambda: settings)
    result = tasks.send_password_reset_email("owner@example.com", "abc-123")
    assert result == {"recipient": "owner@example.com", "sent": False}


def test_reset_email_sent_over_smtp(monkeypatch, settings):
    sent = []

    class FakeSMTP:
        def __init__(self, host, port):
            self.address = (host, port)

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def starttls(self):
            pass

        def login(self, username, password):
            sent.append(("login", username))

        def send_message(self, message):
            sent.append(("message", message))

    smtp_settings = settings.model_copy(update={
        "smtp_host": "smtp.example.com",
        "smtp_username": "mailer",
        "smtp_password": "pw",
        "frontend_url": "http://front/",
    })
    monkeypatch.setattr(tasks, "get_settings", lambda: smtp_settings)
    monkeypatch.setattr(tasks.smtplib, "SMTP", FakeSMTP)

    result = tasks.send_password_reset_email("owner@example.com", "abc-123")
    assert result["sent"] is True
    assert sent[0] == ("login", "mailer")
    message = sent[1][1]
    assert message["To"] == "owner@example.com"
    assert message["From"] == "mailer"
    assert "http://front/reset-password/abc-123" in message.get_content()
