"""
tests/conftest.py -- Shared fixtures for HostGate unit and integration tests.

This module provides:
  - clock / components / orchestrator / mailer / verifier: a fresh auth graph
    per test over an isolated in-memory DB (see tests/fakes.py)
  - _patch_lifespan(): wires test components into app.state, bypassing real startup
  - api_client: TestClient plus an admin token for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Each graph gets a unique name so tests never share rows.

DEBUG must be set before any auth/core import so get_settings() generates a
SECRET_KEY instead of raising. The per-IP slowapi limiter is disabled and
the graphs are built without an account limiter; throttling is exercised
explicitly in test_ratelimit.py.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set env before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
# TestClient sends Host: testserver.
os.environ.setdefault("ALLOWED_HOSTS", '["testserver"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.orchestrator import AuthOrchestrator
from auth.wiring import AuthComponents
from tests.fakes import FakeClock, FakeMailer, FakeVerifier, make_components


def _patch_lifespan(components: AuthComponents):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine so shutdown can cancel a
    real asyncio.Task.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth = components
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def components(clock: FakeClock) -> Generator[AuthComponents, None, None]:
    graph = make_components(clock=clock)
    yield graph
    graph.close()


@pytest.fixture
def orchestrator(components: AuthComponents) -> AuthOrchestrator:
    return components.orchestrator


@pytest.fixture
def mailer(orchestrator: AuthOrchestrator) -> FakeMailer:
    return orchestrator.mailer


@pytest.fixture
def verifier(orchestrator: AuthOrchestrator) -> FakeVerifier:
    return orchestrator.verifier


# ---------------------------------------------------------------------------
# Module-scoped API fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, AuthComponents, str], None, None]:
    """Yield (client, components, admin_token) for API integration tests.

    The admin is provisioned directly, the same way the CLI does it, and
    its access token is minted from the graph's TokenService.
    """
    graph = make_components()
    admin = graph.orchestrator.provision_admin("Test Admin", "admin@stay.io", "adminpass123")
    token = graph.tokens.create_access_token({"id": admin.id, "email": admin.email, "role": admin.role})

    app.router.lifespan_context = _patch_lifespan(graph)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, graph, token

    graph.close()
