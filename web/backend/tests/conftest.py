"""Shared test fixtures for backend tests.

Provides:
- FastAPI test app
- httpx AsyncClient for API testing (anonymous, admin, plain user)
- Subject snapshots and a patched ``load_subject`` for the IP gate
- Environment variable fixtures
"""
import os
import sys
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

# Ensure project root is on path
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Set required environment variables BEFORE any app imports
os.environ.setdefault("WEB_SECRET_KEY", "test-secret-key-for-unit-tests-only")
os.environ.setdefault("WEB_DEBUG", "true")
os.environ["WEB_RATE_LIMIT_ENABLED"] = "false"
os.environ["WEB_DEFAULT_ALLOWED_IPS"] = "127.0.0.1,localhost,10.0.0.0/8,172.16.0.0/12,192.168.0.0/16"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("WEB_LOG_DIR", None)

# Clear the lru_cache so test env vars take effect
from web.backend.core.config import get_web_settings
get_web_settings.cache_clear()

from httpx import ASGITransport, AsyncClient
from web.backend.core.ip_policy import RoleSnapshot, Subject, reset_policy_engine
from web.backend.core.security import create_access_token
from web.backend.main import create_app


ADMIN_ID = 1
USER_ID = 2

# An address outside every default range
OUTSIDE_IP = "203.0.113.7"


def make_subject(user_id: int = USER_ID, **overrides) -> Subject:
    """Unrestricted subject unless overridden."""
    fields = {
        "user_id": user_id,
        "email": f"user{user_id}@example.com",
        "exempt": False,
        "restricted": False,
        "allowed_ips": (),
        "role": RoleSnapshot(name="sales"),
    }
    fields.update(overrides)
    return Subject(**fields)


def auth_headers(user_id: int, email: str, role: str = None, forwarded_for: str = None) -> dict:
    """Authorization header (plus optional X-Forwarded-For) for a user."""
    headers = {"Authorization": f"Bearer {create_access_token(user_id, email, role)}"}
    if forwarded_for:
        headers["X-Forwarded-For"] = forwarded_for
    return headers


# ── App and client fixtures ──────────────────────────────────

@pytest.fixture()
def app():
    """Create a fresh FastAPI app for testing."""
    get_web_settings.cache_clear()
    _app = create_app()
    yield _app
    _app.dependency_overrides.clear()
    reset_policy_engine()


@pytest.fixture()
def load_subject_mock():
    """Patch the store: pool is up and every user loads as an unrestricted subject."""
    mock = AsyncMock(side_effect=lambda user_id: make_subject(user_id))
    with patch("web.backend.core.ip_store.load_subject", mock), \
         patch("web.backend.core.ip_store.is_available", return_value=True):
        yield mock


@pytest_asyncio.fixture()
async def anon_client(app):
    """Unauthenticated HTTP client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture()
async def admin_client(app, load_subject_mock):
    """Async HTTP client authenticated as admin."""
    transport = ASGITransport(app=app)
    headers = auth_headers(ADMIN_ID, "admin@example.com", "admin")
    async with AsyncClient(transport=transport, base_url="http://test", headers=headers) as ac:
        yield ac


@pytest_asyncio.fixture()
async def user_client(app, load_subject_mock):
    """Async HTTP client authenticated as a non-admin user."""
    transport = ASGITransport(app=app)
    headers = auth_headers(USER_ID, "user2@example.com", "sales")
    async with AsyncClient(transport=transport, base_url="http://test", headers=headers) as ac:
        yield ac
