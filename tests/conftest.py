import os

# must be set before the package reads its settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENV", "test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from datetime import timedelta

import pytest
from sqlmodel import Session

from sav3_notifications.application.ports.notification_repo import NotificationDto
from sav3_notifications.application.services.notification_store import NotificationStore
from sav3_notifications.database import build_engine, create_db_and_tables
from sav3_notifications.db.models import User
from sav3_notifications.infrastructure.persistence.sqlalchemy.repositories.notification_repository_sql import SqlNotificationRepository
from sav3_notifications.schemas.notifications.notification import NotificationCreate
from sav3_notifications.utils import create_jwt_token, utcnow


@pytest.fixture
def engine():
    eng = build_engine("sqlite://")
    create_db_and_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def make_user(session):
    def _make(user_id: str, email=None, phone=None, name=None):
        user = User(id=user_id, email=email, phone=phone, name=name)
        session.add(user)
        session.commit()
        return user
    return _make


@pytest.fixture
def repo(session):
    return SqlNotificationRepository(session)


@pytest.fixture
def store(repo):
    return NotificationStore(repo)


@pytest.fixture
def seed(store, repo):
    """Create notifications with strictly increasing created_at, oldest first."""
    def _seed(user_id: str, count: int, **overrides):
        base = utcnow() - timedelta(hours=1)
        items = []
        for i in range(count):
            fields = {"user_id": user_id, "type": "message", "title": f"n{i}", "body": f"body {i}"}
            fields.update(overrides)
            item = store.create(NotificationCreate(**fields))
            items.append(repo.update(item.id, created_at=base + timedelta(seconds=i)))
        return items
    return _seed


def auth_header(user_id: str, role=None) -> dict:
    claims = {"sub": user_id}
    if role:
        claims["role"] = role
    return {"Authorization": f"Bearer {create_jwt_token(claims)}"}


@pytest.fixture
def auth():
    return auth_header


@pytest.fixture
def make_dto():
    """Build an in-memory NotificationDto without touching the database."""
    def _make(**fields):
        now = utcnow()
        values = {
            "id": "n1",
            "user_id": "u1",
            "type": "message",
            "category": "social",
            "title": "Hello",
            "body": "You have a new message",
            "data": None,
            "priority": "normal",
            "status": "pending",
            "channels": ["in_app", "push"],
            "actions": [],
            "meta": {},
            "is_read": False,
            "scheduled_for": None,
            "sent_at": None,
            "read_at": None,
            "expires_at": None,
            "created_at": now,
            "updated_at": now,
        }
        values.update(fields)
        return NotificationDto(**values)
    return _make
