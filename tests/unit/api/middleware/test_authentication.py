"""Unit tests for the authentication middleware."""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_check
from fastapi import FastAPI, Request

from src.api.middleware.authentication import AuthenticationMiddleware, UnauthenticatedPaths
from src.api.middleware.error_handler import register_exception_handlers
from src.authorization.credentials import BearerToken
from src.core.config import Settings
from src.core.exceptions import InvalidCredentialError
from tests.fixtures.identities import ALICE


@pytest.mark.unit
class TestUnauthenticatedPaths:
    """Test path matching for public routes."""

    def test_root_is_exact(self) -> None:
        """Verify the root path does not open every path."""
        paths = UnauthenticatedPaths(["/"])

        assert "/" in paths
        assert "/v3/apps" not in paths

    def test_prefix_entries(self) -> None:
        """Verify entries ending in a slash match everything below them."""
        paths = UnauthenticatedPaths(["/admission/"])

        assert "/admission/validate/cfapps" in paths
        assert "/admission" not in paths

    def test_defaults(self) -> None:
        """Verify health and docs are public while the v3 API is not."""
        paths = UnauthenticatedPaths()

        with pytest_check.check:
            assert "/health" in paths
        with pytest_check.check:
            assert "/docs" in paths
        with pytest_check.check:
            assert "/healthz" not in paths
        with pytest_check.check:
            assert "/v3/organizations" not in paths

    def test_register(self) -> None:
        """Verify paths can be added after construction."""
        paths = UnauthenticatedPaths([])

        paths.register("/metrics")

        assert "/metrics" in paths


@pytest.fixture
def resolver() -> AsyncMock:
    mock = AsyncMock()
    mock.resolve.return_value = ALICE
    return mock


@pytest.fixture
async def client(
    mock_settings: Settings, resolver: AsyncMock
) -> AsyncGenerator[httpx.AsyncClient]:
    app = FastAPI()
    app.state.settings = mock_settings
    register_exception_handlers(app)
    app.add_middleware(AuthenticationMiddleware, resolver_provider=lambda: resolver)

    @app.get("/whoami")
    async def whoami(request: Request) -> dict[str, str]:
        return {"identity": str(request.state.identity)}

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy"}

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as http_client:
        yield http_client


@pytest.mark.unit
class TestAuthenticationMiddleware:
    """Test caller authentication per request."""

    async def test_resolves_identity(
        self, client: httpx.AsyncClient, resolver: AsyncMock
    ) -> None:
        """Verify a bearer token is resolved and exposed to the route."""
        response = await client.get("/whoami", headers={"Authorization": "bearer t0k3n"})

        assert response.status_code == 200
        assert response.json() == {"identity": "User:alice"}
        resolver.resolve.assert_awaited_once_with(BearerToken("t0k3n"))

    async def test_missing_header(self, client: httpx.AsyncClient) -> None:
        """Verify requests without credentials are rejected with 401."""
        response = await client.get("/whoami")

        with pytest_check.check:
            assert response.status_code == 401
        with pytest_check.check:
            assert response.json()["error_code"] == "MALFORMED_CREDENTIAL"

    async def test_invalid_credential(
        self, client: httpx.AsyncClient, resolver: AsyncMock
    ) -> None:
        """Verify a credential the store rejects is answered with 401."""
        resolver.resolve.side_effect = InvalidCredentialError("Invalid bearer token")

        response = await client.get("/whoami", headers={"Authorization": "bearer nope"})

        with pytest_check.check:
            assert response.status_code == 401
        with pytest_check.check:
            assert response.json()["error_code"] == "INVALID_CREDENTIAL"

    async def test_public_path_skips_authentication(
        self, client: httpx.AsyncClient, resolver: AsyncMock
    ) -> None:
        """Verify public paths are served without a credential."""
        response = await client.get("/health")

        assert response.status_code == 200
        resolver.resolve.assert_not_awaited()
