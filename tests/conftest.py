"""
tests/conftest.py -- Shared test fixtures for Gatekeeper unit and integration tests.

This module provides:
  - make_settings(): Settings with a fixed signing key and test-friendly defaults
  - make_test_container(): a full service container over an isolated in-memory DB
  - _patch_lifespan(): wires a test container into app.state, bypassing real startup
  - container: function-scoped container for service-level tests
  - api_client: TestClient with an ADMIN access token for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

DEBUG and ALLOWED_HOSTS must be set before api.main is imported:
get_settings() needs DEBUG to auto-generate a key, and TrustedHostMiddleware
reads ALLOWED_HOSTS once at import ("testserver" is TestClient's Host).
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any api/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", "testserver,localhost")

import pytest
from fastapi.testclient import TestClient

from api.container import Container, build_container
from api.limiter import limiter
from api.main import app
from core.config import Settings
from db.schema import make_engine

TEST_SECRET = "test-signing-key-0123456789abcdef0123456789"
ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "adminpass123"


# ---------------------------------------------------------------------------
# Container helpers
# ---------------------------------------------------------------------------


def memory_url(db_suffix: str) -> str:
    return f"sqlite:///file:test_{db_suffix}?mode=memory&cache=shared&uri=true"


def make_settings(**overrides) -> Settings:
    """Settings for tests. Keyword arguments override the defaults below."""
    values = {
        "debug": True,
        "secret_key": TEST_SECRET,
        "database_url": memory_url("unused"),
        "default_admin_email": ADMIN_EMAIL,
        "default_admin_password": ADMIN_PASSWORD,
        "email_provider": "log",
        "frontend_url": "http://app.example.com",
    }
    values.update(overrides)
    return Settings(**values)


def make_test_container(db_suffix: str | None = None, **overrides) -> Container:
    """Build an isolated container over a named shared-memory SQLite database.

    Args:
        db_suffix: Unique string appended to the DB name so containers don't
                   share state. A random one is used when omitted.
        overrides: Settings fields, e.g. registration_mode="closed".
    """
    url = memory_url(db_suffix or uuid.uuid4().hex)
    settings = make_settings(database_url=url, **overrides)
    return build_container(settings, db=make_engine(url))


def _patch_lifespan(container: Container):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.container = container
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> None:
    """Login counters live in process memory; start every test with a clean slate."""
    limiter.reset()


@pytest.fixture
def container() -> Generator[Container, None, None]:
    """A bootstrapped container: ADMIN role, admin principal and admin permissions exist."""
    c = make_test_container()
    c.bootstrap()
    yield c
    c.close()


@pytest.fixture
def bare_container() -> Generator[Container, None, None]:
    """A container with an empty schema (no bootstrap)."""
    c = make_test_container()
    yield c
    c.close()


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, admin_token, admin_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers and the real authorize dependency, but against an
    isolated in-memory store. admin_id is the admin principal's external id.
    """
    c = make_test_container()
    c.bootstrap()
    admin = c.principals.find_by_email(ADMIN_EMAIL)
    token = c.auth.issue_access_token(admin)

    app.router.lifespan_context = _patch_lifespan(c)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, admin.external_id

    c.close()
