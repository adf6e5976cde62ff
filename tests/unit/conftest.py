"""Shared fixtures for unit tests."""

import pytest
from pytest_mock import MockerFixture, MockType

from src.authorization.credentials import BearerToken
from src.authorization.identity import (
    CertificateInspector,
    CredentialIdentityResolver,
    TokenReviewer,
)
from src.authorization.permissions import NamespacePermissions
from src.core.config import ObservabilityConfig, Settings, StoreConfig
from src.infrastructure.store.memory import (
    InMemoryResourceStore,
    InMemoryUserClientFactory,
)
from src.repositories.base import NamespaceRetriever, RepositoryContext
from src.repositories.conditions import ConditionAwaiter
from src.webhooks.uniqueness import UniquenessGuard
from tests.fixtures.identities import ADMIN, ALICE, BOB


@pytest.fixture
def mock_settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Provide a Settings object with test defaults.

    Returns:
        Settings: Development settings on the memory backend, tracing off.
    """
    monkeypatch.setenv("APP_NAME", "TestApp")
    monkeypatch.setenv("APP_VERSION", "1.0.0")
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("API_HOST", "127.0.0.1")
    monkeypatch.setenv("API_PORT", "3000")
    monkeypatch.delenv("PORT", raising=False)

    return Settings(
        store_config=StoreConfig(backend="memory"),
        observability_config=ObservabilityConfig(enable_tracing=False),
    )


@pytest.fixture
def memory_store() -> InMemoryResourceStore:
    """An empty store with alice, bob and a cluster admin known by token."""
    store = InMemoryResourceStore()
    store.add_token("alice-token", ALICE.name)
    store.add_token("bob-token", BOB.name)
    store.add_token("admin-token", ADMIN.name)
    store.add_cluster_admin(ADMIN)
    return store


@pytest.fixture
def alice_credential() -> BearerToken:
    return BearerToken("alice-token")


@pytest.fixture
def bob_credential() -> BearerToken:
    return BearerToken("bob-token")


@pytest.fixture
def admin_credential() -> BearerToken:
    return BearerToken("admin-token")


@pytest.fixture
def guarded_store(memory_store: InMemoryResourceStore) -> InMemoryResourceStore:
    """The memory store with the uniqueness guard installed as admission hook."""
    guard = UniquenessGuard(memory_store.privileged())
    for kind in guard.kinds:
        memory_store.register_admission_hook(kind, guard)
    return memory_store


@pytest.fixture
def repository_context(guarded_store: InMemoryResourceStore) -> RepositoryContext:
    """Collaborators for repositories over the guarded memory store."""
    privileged = guarded_store.privileged()
    user_clients = InMemoryUserClientFactory(guarded_store)
    resolver = CredentialIdentityResolver(
        TokenReviewer(privileged), CertificateInspector()
    )
    return RepositoryContext(
        privileged_store=privileged,
        user_clients=user_clients,
        permissions=NamespacePermissions(privileged, user_clients, resolver),
        awaiter=ConditionAwaiter(timeout_seconds=2.0),
        namespace_retriever=NamespaceRetriever(privileged),
    )


@pytest.fixture
def mock_uvicorn(mocker: MockerFixture) -> MockType:
    """Mock uvicorn.run to prevent server startup.

    Returns:
        MockType: The mock for assertion purposes.
    """
    return mocker.patch("uvicorn.run")
