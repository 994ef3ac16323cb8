import os

# the app reads these at import time
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import io
import pytest
import pytest_asyncio
from datetime import timedelta
from httpx import AsyncClient, ASGITransport
from PIL import Image
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from recipe_api.main import app
from recipe_api.audit import utcnow
from recipe_api.auth import create_access_token, get_password_hash
from recipe_api.celery_app import celery_app
from recipe_api.config import Settings, get_settings
from recipe_api.database import Base, get_db
from recipe_api.models import Recipe, RecipeCategory, User, UserRole

TEST_PASSWORD = "secret123"


def make_image_bytes(fmt="PNG", size=(64, 64)):
    """Random noise so the encoded file stays above the minimum upload size."""
    width, height = size
    image = Image.frombytes("RGB", size, os.urandom(width * height * 3))
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def auth_headers(user, settings):
    token = create_access_token(
        {"sub": user.login}, settings.jwt_secret, expires_delta=timedelta(minutes=30)
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def settings(tmp_path):
    return Settings(
        jwt_secret="test-secret",
        upload_dir=str(tmp_path / "uploads"),
        base_url="http://test",
        max_images_per_recipe=3,
    )


@pytest_asyncio.fixture
async def engine():
    # one shared connection so every session sees the same in-memory database
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine):
    session_factory = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    async with session_factory() as session:
        yield session


async def create_test_user(db_session, login, role=UserRole.USER):
    now = utcnow()
    user = User(
        login=login,
        password_hash=get_password_hash(TEST_PASSWORD),
        email=f"{login}@example.com",
        role=role,
        created_at=now,
        password_changed_at=now,
        password_changed_by=login,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def owner(db_session):
    return await create_test_user(db_session, "owner")


@pytest_asyncio.fixture
async def other_user(db_session):
    return await create_test_user(db_session, "intruder")


@pytest_asyncio.fixture
async def admin(db_session):
    return await create_test_user(db_session, "admin", role=UserRole.ADMIN)


@pytest_asyncio.fixture
async def recipe(db_session, owner):
    now = utcnow()
    db_recipe = Recipe(
        name="Bolo de cenoura",
        preparation="Misture tudo e asse por 40 minutos.",
        prep_time="60 min",
        servings="12 fatias",
        category=RecipeCategory.BOLO,
        owner_id=owner.id,
        created_at=now,
        created_by=owner.login,
        updated_at=now,
        updated_by=owner.login,
    )
    db_session.add(db_recipe)
    await db_session.commit()
    return db_recipe


class DummyTask:
    def __init__(self, id):
        self.id = id


@pytest.fixture
def sent_tasks(monkeypatch):
    sent = []

    def _send_task(name, args=None, kwargs=None, **options):
        sent.append((name, args))
        return DummyTask(id=f"task-{len(sent)}")

    monkeypatch.setattr(celery_app, "send_task", _send_task)
    return sent


@pytest_asyncio.fixture
async def client(db_session, settings, sent_tasks):
    async def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_settings] = lambda: settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
