"""Unit tests for the build repository."""

import pytest
import pytest_check

from src.authorization.credentials import BearerToken
from src.core.exceptions import ForbiddenError, NotFoundError
from src.infrastructure.store.memory import InMemoryResourceStore
from src.infrastructure.store.resources import CF_BUILD, SUCCEEDED_CONDITION
from src.repositories.base import RepositoryContext
from src.repositories.builds import BuildRepository, BuildState
from tests.fixtures.store import seed_app


@pytest.fixture
def builds(
    reconciling_store: InMemoryResourceStore, repository_context: RepositoryContext
) -> BuildRepository:
    seed_app(reconciling_store, "space-1", "app-1", "web")
    return BuildRepository(repository_context)


@pytest.mark.unit
class TestBuildRepository:
    """Test build staging state."""

    async def test_build_starts_staging_then_staged(
        self, builds: BuildRepository, alice_credential: BearerToken
    ) -> None:
        """Verify the create returns STAGING and a later read shows the droplet."""
        created = await builds.create_build(alice_credential, "app-1", "package-1")
        fetched = await builds.get(alice_credential, created.guid)

        with pytest_check.check:
            assert created.state is BuildState.STAGING
        with pytest_check.check:
            assert created.package_guid == "package-1"
        with pytest_check.check:
            assert created.app_guid == "app-1"
        with pytest_check.check:
            assert fetched.state is BuildState.STAGED
        with pytest_check.check:
            assert fetched.droplet_guid == created.guid

    async def test_staging_resources(
        self, builds: BuildRepository, alice_credential: BearerToken
    ) -> None:
        """Verify requested staging memory and disk are recorded."""
        created = await builds.create_build(
            alice_credential, "app-1", "package-1", staging_memory_mb=512, staging_disk_mb=2048
        )

        with pytest_check.check:
            assert created.staging_memory_mb == 512
        with pytest_check.check:
            assert created.staging_disk_mb == 2048

    async def test_failed_build(
        self,
        builds: BuildRepository,
        reconciling_store: InMemoryResourceStore,
        alice_credential: BearerToken,
    ) -> None:
        """Verify a False Succeeded condition marks the build failed."""
        created = await builds.create_build(alice_credential, "app-1", "package-1")
        reconciling_store.update_condition(
            CF_BUILD, created.guid, "space-1", SUCCEEDED_CONDITION, status=False
        )

        fetched = await builds.get(alice_credential, created.guid)

        with pytest_check.check:
            assert fetched.state is BuildState.FAILED
        with pytest_check.check:
            assert fetched.droplet_guid is None
        with pytest_check.check:
            assert fetched.error is not None

    async def test_build_for_unknown_app(
        self, builds: BuildRepository, alice_credential: BearerToken
    ) -> None:
        """Verify a build needs an existing app."""
        with pytest.raises(NotFoundError):
            await builds.create_build(alice_credential, "nope", "p")

    async def test_build_for_app_in_foreign_space(
        self,
        builds: BuildRepository,
        reconciling_store: InMemoryResourceStore,
        alice_credential: BearerToken,
    ) -> None:
        """Verify the store refuses builds outside the caller's bindings."""
        seed_app(reconciling_store, "space-2", "app-3", "hidden")

        with pytest.raises(ForbiddenError):
            await builds.create_build(alice_credential, "app-3", "package-1")

    async def test_get_hidden_from_other_users(
        self,
        builds: BuildRepository,
        alice_credential: BearerToken,
        bob_credential: BearerToken,
    ) -> None:
        """Verify a build in a space the caller cannot read is not found."""
        created = await builds.create_build(alice_credential, "app-1", "package-1")

        with pytest.raises(NotFoundError):
            await builds.get(bob_credential, created.guid)
