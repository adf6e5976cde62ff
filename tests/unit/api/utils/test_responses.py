"""Unit tests for response helpers."""

import orjson
import pytest
from pydantic import BaseModel

from src.api.utils.responses import ORJSONResponse, accepted, job_url


class Link(BaseModel):
    href: str


@pytest.mark.unit
class TestResponses:
    """Test JSON rendering and job links."""

    def test_job_url(self) -> None:
        """Verify job URLs combine the operation and the GUID."""
        assert (
            job_url("https://api.example.com", "app.delete", "app-1")
            == "https://api.example.com/v3/jobs/app.delete~app-1"
        )

    def test_accepted(self) -> None:
        """Verify asynchronous deletes answer 202 with the job location."""
        response = accepted("https://api.example.com", "space.delete", "space-1")

        assert response.status_code == 202
        assert response.headers["Location"] == "https://api.example.com/v3/jobs/space.delete~space-1"

    def test_orjson_renders_models(self) -> None:
        """Verify pydantic models are dumped before serialization."""
        response = ORJSONResponse(content=Link(href="/v3"))

        assert orjson.loads(response.body) == {"href": "/v3"}
