"""Fixtures for repository tests."""

import pytest

from src.infrastructure.store.memory import InMemoryResourceStore
from src.repositories.apps import AppRepository
from src.repositories.base import RepositoryContext
from src.repositories.orgs import OrgRepository
from src.repositories.spaces import SpaceRepository
from tests.fixtures.identities import ALICE
from tests.fixtures.store import grant, seed_org, seed_space


@pytest.fixture
def reconciling_store(guarded_store: InMemoryResourceStore) -> InMemoryResourceStore:
    """Guarded store that reports conditions as soon as objects change.

    Holds org-1 (acme) with space-1 (dev) and space-2 (prod); alice is a
    developer in space-1.
    """
    guarded_store.auto_reconcile = True
    seed_org(guarded_store, "org-1", "acme")
    seed_space(guarded_store, "org-1", "space-1", "dev")
    seed_space(guarded_store, "org-1", "space-2", "prod")
    grant(guarded_store, "space-1", ALICE)
    return guarded_store


@pytest.fixture
def org_repository(
    reconciling_store: InMemoryResourceStore, repository_context: RepositoryContext
) -> OrgRepository:
    return OrgRepository(repository_context, reconciling_store.root_namespace)


@pytest.fixture
def space_repository(
    repository_context: RepositoryContext, org_repository: OrgRepository
) -> SpaceRepository:
    return SpaceRepository(repository_context, org_repository)


@pytest.fixture
def app_repository(
    reconciling_store: InMemoryResourceStore, repository_context: RepositoryContext
) -> AppRepository:
    return AppRepository(repository_context)
