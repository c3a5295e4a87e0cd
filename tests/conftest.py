import os
import shutil
import tempfile
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# ------------------------------------------------------------------
# FORCE TEST SETTINGS
# Must happen BEFORE importing crm.main so config/database pick them up.
# Each run gets its own directory so parallel runs never share a file.
# ------------------------------------------------------------------
TEST_DIR = tempfile.mkdtemp(prefix="crm_access_")
TEST_DB = os.path.join(TEST_DIR, "test.db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB}"
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["ENV"] = "test"
os.environ.pop("SUPER_ADMIN_EMAIL", None)

from sqlmodel import SQLModel

from crm.main import app
from crm.core.database import engine, AsyncSessionLocal
from crm.core.security import create_access_token
from crm.services.grant_editor import save_grants
from crm.services.user_service import create_user


def pytest_sessionfinish(session, exitstatus):
    shutil.rmtree(TEST_DIR, ignore_errors=True)


@pytest_asyncio.fixture
async def database():
    """Fresh schema for every test."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
        await conn.run_sync(SQLModel.metadata.create_all)
    yield


@pytest_asyncio.fixture
async def db_session(database):
    async with AsyncSessionLocal() as session:
        yield session


@pytest_asyncio.fixture
async def client(database):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac


@pytest_asyncio.fixture
async def make_user(db_session):
    """
    Create a user, optionally saving per-module levels for it:
        await make_user("t@test.com", role="Teacher", levels={"teacher_assignments": "CRUD"})
    """
    async def _make(email, role="Staff", branch=None, status="Active", levels=None, full_name=None):
        user = await create_user(
            db_session,
            email=email,
            full_name=full_name or email.split("@")[0].title(),
            role=role,
            branch=branch,
            status=status,
        )
        if levels is not None:
            await save_grants(db_session, user, role, levels)
        return user

    return _make


@pytest.fixture
def auth_headers():
    def _headers(email: str) -> dict:
        token = create_access_token(subject=email)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest_asyncio.fixture
async def fresh_session(database):
    """Second session for reading back what another session committed."""
    async with AsyncSessionLocal() as session:
        yield session
