"""
tests/conftest.py -- Shared test fixtures for brick-auth.

This module provides:
  - rsa_keys: one RSA key pair per test session (key generation is slow)
  - make_service(): an AuthService over an isolated SQLite database
  - store / service: in-memory unit-test fixtures
  - _patch_lifespan(): wires a test AuthService into app.state
  - api_client: TestClient plus seeded users and their credentials

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for
the TestClient because route handlers run in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

The DEBUG env var must be set before any api/core import so get_settings()
generates an ephemeral RS256 key pair instead of raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set DEBUG before any core/api import.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.models import BUILTIN_PERMISSIONS, Role, User
from auth.service import AuthService
from auth.store import RBACStore
from auth.tokens import TokenSigner, hash_password
from core.keys import generate_rsa_keypair

# Rate limits would make test outcomes depend on test ordering.
limiter.enabled = False


# ---------------------------------------------------------------------------
# Service helpers
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def rsa_keys() -> tuple[str, str]:
    """(private_pem, public_pem) shared by every signer in the session."""
    return generate_rsa_keypair()


def make_service(db_url: str, keys: tuple[str, str], expire_seconds: int = 3600, **kwargs) -> AuthService:
    private_pem, public_pem = keys
    signer = TokenSigner(private_pem, public_pem, expire_seconds=expire_seconds)
    return AuthService(store=RBACStore(db_url), signer=signer, **kwargs)


def seed(store: RBACStore) -> None:
    """Load the RBAC fixture data used across tests.

    Roles:
      - admin:  every built-in permission
      - reader: user:read only
    Users:
      - admin  / adminpass  (admin)
      - reader / readerpass (reader)
    """
    store.set_permissions(BUILTIN_PERMISSIONS)
    store.create_role(Role(name="admin", permissions=BUILTIN_PERMISSIONS))
    store.create_role(Role(name="reader", permissions=["user:read"]))
    store.create_user(User(username="admin", password_hash=hash_password("adminpass"), role="admin"))
    store.create_user(User(username="reader", password_hash=hash_password("readerpass"), role="reader"))


@pytest.fixture
def store() -> Generator[RBACStore, None, None]:
    s = RBACStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def service(rsa_keys) -> Generator[AuthService, None, None]:
    """Seeded in-memory AuthService with exchange disabled."""
    svc = make_service("sqlite:///:memory:", rsa_keys)
    seed(svc.store)
    yield svc
    svc.close()


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-built test service into app.state so TestClient routes use
    an isolated database rather than the configured one.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth_service = service
        yield

    return test_lifespan


@dataclass
class ApiContext:
    client: TestClient
    service: AuthService
    admin_token: str
    reader_token: str

    def auth(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="module")
def api_client(request, rsa_keys) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext for API integration tests.

    Each test module gets its own named in-memory database, seeded with the
    admin and reader accounts from seed().
    """
    db_url = f"sqlite:///file:test_auth_{request.module.__name__}?mode=memory&cache=shared&uri=true"
    service = make_service(db_url, rsa_keys)
    seed(service.store)

    admin_token = service.issue_local("admin", "adminpass")
    reader_token = service.issue_local("reader", "readerpass")

    app.router.lifespan_context = _patch_lifespan(service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(client=client, service=service, admin_token=admin_token, reader_token=reader_token)

    service.close()
