import asyncio
import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

TEST_JWT_SECRET = "x" * 32
os.environ.setdefault("JWT_SECRET", TEST_JWT_SECRET)
os.environ.setdefault("ALLOWED_ORIGINS", "http://localhost:3000")
os.environ.setdefault("DISABLE_RATE_LIMITS", "true")
# CI may point at a file-backed database; local runs stay in memory.
DEFAULT_DB_URL = os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

# Importing models registers every table on Base.metadata.
from app import db, models  # noqa: E402,F401


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "preserve_schema: keep the ledger tables from the previous test"
    )


@pytest.fixture(scope="session")
def session_loop():
    """Event loop used by sync fixtures that prepare the database."""
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)


@pytest.fixture(autouse=True, scope="session")
def ensure_database(session_loop):
    url = os.getenv("DATABASE_URL") or DEFAULT_DB_URL
    if url.startswith("sqlite") and ":memory:" not in url:
        stale = url.split("///")[-1]
        if os.path.exists(stale):
            os.remove(stale)

    db.engine = None
    db.AsyncSessionLocal = None
    yield
    if db.engine is not None:
        session_loop.run_until_complete(db.engine.dispose())
    db.engine = None
    db.AsyncSessionLocal = None


async def _recreate_tables(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(db.Base.metadata.drop_all)
        await conn.run_sync(db.Base.metadata.create_all)


@pytest.fixture(autouse=True)
def reset_schema(request, session_loop):
    """Give every test an empty ledger unless it opts out."""
    if not request.node.get_closest_marker("preserve_schema"):
        session_loop.run_until_complete(_recreate_tables(db.engine or db.get_engine()))
    yield


@pytest.fixture
def auth():
    """Build bearer headers for a member id."""
    from app.routers.auth import issue_token

    def _headers(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {issue_token(user_id)}"}

    return _headers


@pytest.fixture
async def client(anyio_backend):
    from httpx import ASGITransport, AsyncClient

    from app.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
