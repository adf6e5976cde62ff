"""Unit tests for request logging."""

from collections.abc import AsyncGenerator

import httpx
import pytest
from fastapi import FastAPI
from pytest_mock import MockerFixture

from src.api.middleware.request_logging import REQUEST_ID_HEADER, RequestLoggingMiddleware
from src.core.config import LogConfig


@pytest.fixture
async def client() -> AsyncGenerator[httpx.AsyncClient]:
    app = FastAPI()
    app.add_middleware(
        RequestLoggingMiddleware,
        log_config=LogConfig(),
        trust_proxy_headers=True,
    )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.get("/v3/apps")
    async def apps() -> dict[str, list[str]]:
        return {"resources": []}

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as http_client:
        yield http_client


@pytest.mark.unit
class TestRequestLoggingMiddleware:
    """Test start and completion logging."""

    async def test_logs_request(self, client: httpx.AsyncClient, mocker: MockerFixture) -> None:
        """Verify start and completion lines are written with redacted parameters."""
        mock_logger = mocker.patch("src.api.middleware.request_logging.logger")

        response = await client.get("/v3/apps", params={"token": "t0k3n"})

        messages = [c.args[0] for c in mock_logger.info.call_args_list]
        assert messages == ["Request started", "Request completed"]
        assert mock_logger.info.call_args_list[0].kwargs["query_params"] == {"token": "[REDACTED]"}
        mock_logger.warning.assert_not_called()
        assert response.headers[REQUEST_ID_HEADER]

    async def test_request_id_is_propagated(self, client: httpx.AsyncClient) -> None:
        """Verify a client supplied request ID is echoed back."""
        response = await client.get("/v3/apps", headers={REQUEST_ID_HEADER: "req-7"})

        assert response.headers[REQUEST_ID_HEADER] == "req-7"

    async def test_excluded_path(self, client: httpx.AsyncClient, mocker: MockerFixture) -> None:
        """Verify health checks are not logged."""
        mock_logger = mocker.patch("src.api.middleware.request_logging.logger")

        response = await client.get("/health")

        mock_logger.info.assert_not_called()
        assert REQUEST_ID_HEADER not in response.headers

    async def test_forwarded_client(self, client: httpx.AsyncClient, mocker: MockerFixture) -> None:
        """Verify the first forwarded address is logged when proxies are trusted."""
        mock_logger = mocker.patch("src.api.middleware.request_logging.logger")

        await client.get("/v3/apps", headers={"X-Forwarded-For": "203.0.113.5, 10.0.0.1"})

        assert mock_logger.contextualize.call_args.kwargs["client_host"] == "203.0.113.5"
