"""JSON response class backed by orjson, and helpers for asynchronous deletes."""

from typing import Any

import orjson
from fastapi import status
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel


class ORJSONResponse(JSONResponse):
    """JSONResponse serialised with orjson.

    Attributes:
        media_type: The media type for the response.
    """

    media_type = "application/json"

    def render(self, content: Any) -> bytes:  # noqa: ANN401 - accepts any JSON-serializable content
        """Render the content as JSON using orjson.

        Args:
            content: The content to serialize to JSON.

        Returns:
            bytes: The JSON-encoded bytes.
        """
        if isinstance(content, BaseModel):
            content = content.model_dump(mode="json")

        return orjson.dumps(content, option=orjson.OPT_SORT_KEYS)


def job_url(base_url: str, operation: str, guid: str) -> str:
    """URL of the job tracking an asynchronous operation, e.g. ``app.delete``."""
    return f"{base_url}/v3/jobs/{operation}~{guid}"


def accepted(base_url: str, operation: str, guid: str) -> Response:
    """202 Accepted pointing at the job for ``operation`` on ``guid``."""
    return Response(
        status_code=status.HTTP_202_ACCEPTED,
        headers={"Location": job_url(base_url, operation, guid)},
    )
