"""Unit tests for the route repository."""

import pytest
import pytest_check

from src.authorization.credentials import BearerToken
from src.core.exceptions import ForbiddenError, NotFoundError
from src.infrastructure.store.memory import InMemoryResourceStore
from src.repositories.base import RepositoryContext
from src.repositories.routes import RouteRepository
from tests.fixtures.identities import ALICE
from tests.fixtures.store import grant


@pytest.fixture
def routes(
    reconciling_store: InMemoryResourceStore, repository_context: RepositoryContext
) -> RouteRepository:
    return RouteRepository(repository_context)


@pytest.mark.unit
class TestRouteRepository:
    """Test route creation, listing and removal."""

    async def test_create(
        self, routes: RouteRepository, alice_credential: BearerToken
    ) -> None:
        """Verify the host is lowercased and the references are kept."""
        route = await routes.create_route(
            alice_credential, "Web", "/api", "space-1", "domain-1", labels={"env": "dev"}
        )

        with pytest_check.check:
            assert route.host == "web"
        with pytest_check.check:
            assert route.path == "/api"
        with pytest_check.check:
            assert route.space_guid == "space-1"
        with pytest_check.check:
            assert route.domain_guid == "domain-1"
        with pytest_check.check:
            assert route.labels == {"env": "dev"}

    async def test_routes_are_sorted_and_filtered(
        self, routes: RouteRepository, alice_credential: BearerToken
    ) -> None:
        """Verify routes are sorted by host and path and filtered by host."""
        await routes.create_route(alice_credential, "Web", "/b", "space-1", "domain-1")
        await routes.create_route(alice_credential, "web", "/a", "space-1", "domain-1")
        await routes.create_route(alice_credential, "api", "", "space-1", "domain-1")

        listed = await routes.list_routes(alice_credential)
        only_web = await routes.list_routes(alice_credential, hosts=["web"])

        with pytest_check.check:
            assert [(r.host, r.path) for r in listed] == [("api", ""), ("web", "/a"), ("web", "/b")]
        with pytest_check.check:
            assert len(only_web) == 2

    async def test_list_by_space(
        self,
        routes: RouteRepository,
        reconciling_store: InMemoryResourceStore,
        alice_credential: BearerToken,
    ) -> None:
        """Verify the space filter narrows the listing to granted spaces."""
        grant(reconciling_store, "space-2", ALICE)
        await routes.create_route(alice_credential, "web", "", "space-1", "domain-1")
        await routes.create_route(alice_credential, "api", "", "space-2", "domain-1")

        in_space_2 = await routes.list_routes(alice_credential, space_guids=["space-2"])

        assert [r.host for r in in_space_2] == ["api"]

    async def test_list_hides_routes_of_other_spaces(
        self,
        routes: RouteRepository,
        alice_credential: BearerToken,
        bob_credential: BearerToken,
    ) -> None:
        """Verify callers without a binding see no routes."""
        await routes.create_route(alice_credential, "web", "", "space-1", "domain-1")

        assert await routes.list_routes(bob_credential) == []

    async def test_create_in_foreign_space(
        self, routes: RouteRepository, alice_credential: BearerToken
    ) -> None:
        """Verify the store refuses routes outside the caller's bindings."""
        with pytest.raises(ForbiddenError):
            await routes.create_route(alice_credential, "web", "", "space-2", "domain-1")

    async def test_get_and_delete(
        self,
        routes: RouteRepository,
        alice_credential: BearerToken,
        bob_credential: BearerToken,
    ) -> None:
        """Verify a route is readable by its space members until deleted."""
        created = await routes.create_route(alice_credential, "web", "", "space-1", "domain-1")

        fetched = await routes.get(alice_credential, created.guid)
        with pytest.raises(NotFoundError):
            await routes.get(bob_credential, created.guid)
        await routes.delete(alice_credential, created.guid)

        with pytest_check.check:
            assert fetched.host == "web"
        with pytest.raises(NotFoundError):
            await routes.get(alice_credential, created.guid)
