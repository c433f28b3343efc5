"""
tests/conftest.py -- Shared test fixtures for Userbase unit and integration tests.

This module provides:
  - settings / hasher / tokens / store: isolated building blocks for unit tests
  - make_account: factory fixture that creates accounts straight through the store
  - api_client: TestClient with an admin account and JWT for HTTP tests

Design: Named shared-memory SQLite URIs (not plain :memory:) back the
TestClient because it runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI format shares one in-memory instance across all
connections in the same process.

The environment must be set before any core/auth import:
  DEBUG=true              -- get_settings() auto-generates SECRET_KEY
  BCRYPT_ROUNDS=4         -- bcrypt's minimum cost keeps the suite fast
  LOGIN_RATE_LIMIT        -- high enough that repeated logins never hit 429
"""

from __future__ import annotations

import asyncio
import itertools
import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before any core/auth import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app, build_services
from auth.models import Account, AccountStatus, Role
from auth.passwords import PasswordHasher
from auth.store import AccountStore
from auth.tokens import TokenService
from core.config import Settings, get_settings

_email_seq = itertools.count(1)


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}{next(_email_seq)}@example.com"


# ---------------------------------------------------------------------------
# Unit-test building blocks
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def hasher(settings: Settings) -> PasswordHasher:
    return PasswordHasher(rounds=settings.bcrypt_rounds)


@pytest.fixture
def tokens(settings: Settings) -> TokenService:
    return TokenService(settings)


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()


def _create_account(
    store: AccountStore,
    hasher: PasswordHasher,
    email: str | None = None,
    password: str = "Abcdef12",
    status: AccountStatus = AccountStatus.ACTIVE,
    role: Role = Role.USER,
) -> Account:
    """Create an account with a minimal profile directly through the store."""
    return store.create_account_with_profile(
        {
            "email": email or unique_email(),
            "password_hash": hasher.hash(password),
            "status": status,
            "role": role,
        },
        {"first_name": "Test", "last_name": "User"},
    )


@pytest.fixture
def make_account(store: AccountStore, hasher: PasswordHasher):
    """Return a factory: make_account(email=None, password=..., status=..., role=...) -> Account."""

    def factory(**kwargs) -> Account:
        return _create_account(store, hasher, **kwargs)

    return factory


# ---------------------------------------------------------------------------
# Integration client
# ---------------------------------------------------------------------------


def _patch_lifespan(store: AccountStore, confirmations: list):
    """Return an async context manager that replaces the real lifespan.

    Wires the isolated test store through the same build_services() the real
    lifespan uses, with a notifier that records confirmation pairs so tests
    can complete the email confirmation flow.

    The purge_task is a long-sleeping coroutine so shutdown can cancel a real
    asyncio.Task.
    """

    def notifier(account: Account, selector: str, verifier: str) -> None:
        confirmations.append((account.email, selector, verifier))

    @asynccontextmanager
    async def test_lifespan(app):
        build_services(app, get_settings(), store, notifier=notifier)
        app.state.sent_confirmations = confirmations
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, admin_token, admin_id) for API integration tests.

    One isolated shared-memory DB per test module. The admin account is
    created before the client starts; its token is a normal login-style JWT.
    """
    db_name = request.module.__name__.rsplit(".", 1)[-1]
    store = AccountStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    settings = get_settings()
    admin = _create_account(
        store,
        PasswordHasher(rounds=settings.bcrypt_rounds),
        email=unique_email("admin"),
        password="Adminpass1",
        role=Role.ADMIN,
    )
    token = TokenService(settings).issue(admin)

    app.router.lifespan_context = _patch_lifespan(store, [])

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, admin.id

    store.close()
