"""Shared fixtures for integration tests.

The application runs in-process over an in-memory store that reconciles
objects immediately, so requests exercise every layer from the middleware
down to admission without a cluster.
"""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from src.api.main import create_app
from src.core.config import ObservabilityConfig, Settings, StoreConfig
from src.infrastructure.store.factory import create_memory_backend
from src.infrastructure.store.memory import InMemoryResourceStore
from tests.fixtures.identities import ADMIN, ALICE, BOB
from tests.fixtures.store import grant, seed_org, seed_space

EXTERNAL_URL = "https://api.example.com"


@pytest.fixture
def integration_settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    monkeypatch.setenv("APP_NAME", "Stratus")
    monkeypatch.setenv("ENVIRONMENT", "development")
    return Settings(
        external_url=EXTERNAL_URL,
        store_config=StoreConfig(backend="memory", auto_reconcile=True),
        observability_config=ObservabilityConfig(enable_tracing=False),
    )


@pytest.fixture
def store() -> InMemoryResourceStore:
    """Store holding org-1 (acme) with space-1 (dev); alice develops in space-1."""
    store = InMemoryResourceStore(auto_reconcile=True)
    store.add_token("alice-token", ALICE.name)
    store.add_token("bob-token", BOB.name)
    store.add_token("admin-token", ADMIN.name)
    store.add_cluster_admin(ADMIN)
    seed_org(store, "org-1", "acme")
    seed_space(store, "org-1", "space-1", "dev")
    grant(store, "space-1", ALICE)
    return store


@pytest.fixture
async def client(
    integration_settings: Settings, store: InMemoryResourceStore
) -> AsyncGenerator[AsyncClient]:
    """Client for an application serving from ``store``."""
    app = create_app(
        integration_settings, backend=create_memory_backend(integration_settings, store)
    )
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
