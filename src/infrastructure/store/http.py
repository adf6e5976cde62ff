"""Kubernetes-style REST client for the resource store, built on httpx.

Bearer-token callers share one pooled ``httpx.AsyncClient``; the token rides
on each request's headers. Client certificates have to be presented during
the TLS handshake, so each such caller gets a dedicated client that lives
only for the scoped acquisition made through ``HttpUserClientFactory``.
"""

import ssl
import tempfile
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Final, assert_never

import httpx
import orjson
from loguru import logger

from src.authorization.credentials import BearerToken, ClientCertificate, Credential
from src.core.config import StoreConfig
from src.core.exceptions import InvalidCredentialError
from src.core.types import Resource
from src.infrastructure.store.client import (
    ResourceStore,
    StoreError,
    WatchEvent,
    WatchEventType,
)
from src.infrastructure.store.resources import TOKEN_REVIEW, ResourceKind

MERGE_PATCH_CONTENT_TYPE: Final[str] = "application/merge-patch+json"
TRANSPORT_ERROR_REASON: Final[str] = "TransportError"


def resource_path(kind: ResourceKind, namespace: str | None, name: str | None = None) -> str:
    """Build the REST path of a collection or of one object."""
    prefix = f"/apis/{kind.group}/{kind.version}" if kind.group else f"/api/{kind.version}"
    if kind.namespaced and namespace:
        prefix = f"{prefix}/namespaces/{namespace}"
    path = f"{prefix}/{kind.plural}"
    return f"{path}/{name}" if name else path


def _status_error(response: httpx.Response) -> StoreError:
    try:
        status = orjson.loads(response.content)
    except orjson.JSONDecodeError:
        status = {}
    if not isinstance(status, dict):
        status = {}
    return StoreError(
        response.status_code,
        str(status.get("reason") or response.reason_phrase),
        str(status.get("message") or response.text[:200]),
    )


def _selectors(
    label_selector: str | None, field_selector: str | None
) -> dict[str, str]:
    params: dict[str, str] = {}
    if label_selector:
        params["labelSelector"] = label_selector
    if field_selector:
        params["fieldSelector"] = field_selector
    return params


class HttpResourceStore:
    """``ResourceStore`` speaking the Kubernetes REST protocol.

    Args:
        client: The httpx client carrying base URL, TLS and timeouts.
        headers: Per-principal headers (the Authorization header for tokens).
        owns_client: Close ``client`` when this store is closed.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        headers: Mapping[str, str] | None = None,
        *,
        owns_client: bool = False,
    ) -> None:
        self._client = client
        self._headers = dict(headers or {})
        self._owns_client = owns_client

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        body: Any = None,
        content_type: str = "application/json",
    ) -> Resource:
        headers = dict(self._headers)
        content = None
        if body is not None:
            content = orjson.dumps(body)
            headers["Content-Type"] = content_type

        try:
            response = await self._client.request(
                method, path, params=params, content=content, headers=headers
            )
        except httpx.HTTPError as e:
            raise StoreError(0, TRANSPORT_ERROR_REASON, str(e)) from e

        if response.is_error:
            raise _status_error(response)
        if not response.content:
            return {}
        return orjson.loads(response.content)

    async def get(
        self, kind: ResourceKind, name: str, namespace: str | None = None
    ) -> Resource:
        return await self._request("GET", resource_path(kind, namespace, name))

    async def list(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        *,
        label_selector: str | None = None,
        field_selector: str | None = None,
        limit: int | None = None,
    ) -> list[Resource]:
        params = _selectors(label_selector, field_selector)
        if limit is not None:
            params["limit"] = str(limit)

        body = await self._request("GET", resource_path(kind, namespace), params=params)
        items = body.get("items") or []
        # list responses omit apiVersion and kind on the items
        for item in items:
            item.setdefault("apiVersion", kind.api_version)
            item.setdefault("kind", kind.kind)
        return items

    async def create(self, kind: ResourceKind, obj: Resource) -> Resource:
        namespace = (obj.get("metadata") or {}).get("namespace")
        return await self._request(
            "POST", resource_path(kind, namespace), body=obj
        )

    async def patch(
        self,
        kind: ResourceKind,
        name: str,
        patch: dict[str, Any],
        namespace: str | None = None,
    ) -> Resource:
        return await self._request(
            "PATCH",
            resource_path(kind, namespace, name),
            body=patch,
            content_type=MERGE_PATCH_CONTENT_TYPE,
        )

    async def delete(
        self, kind: ResourceKind, name: str, namespace: str | None = None
    ) -> None:
        await self._request("DELETE", resource_path(kind, namespace, name))

    @asynccontextmanager
    async def watch(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        *,
        field_selector: str | None = None,
        label_selector: str | None = None,
    ) -> AsyncIterator[AsyncIterator[WatchEvent]]:
        params = {"watch": "true", **_selectors(label_selector, field_selector)}
        timeout = httpx.Timeout(self._client.timeout.connect, read=None)

        try:
            async with self._client.stream(
                "GET",
                resource_path(kind, namespace),
                params=params,
                headers=self._headers,
                timeout=timeout,
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise _status_error(response)
                logger.debug("Watch established", kind=str(kind), namespace=namespace)
                yield _watch_events(response)
        except httpx.HTTPError as e:
            raise StoreError(0, TRANSPORT_ERROR_REASON, str(e)) from e
        finally:
            logger.debug("Watch released", kind=str(kind), namespace=namespace)

    async def create_token_review(self, token: str) -> Resource:
        review = {
            "apiVersion": TOKEN_REVIEW.api_version,
            "kind": TOKEN_REVIEW.kind,
            "spec": {"token": token},
        }
        return await self._request("POST", resource_path(TOKEN_REVIEW, None), body=review)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


async def _watch_events(response: httpx.Response) -> AsyncIterator[WatchEvent]:
    try:
        async for line in response.aiter_lines():
            if not line.strip():
                continue
            payload = orjson.loads(line)
            event_type = payload.get("type")
            obj = payload.get("object") or {}
            if event_type == "ERROR":
                raise StoreError(
                    int(obj.get("code") or 500),
                    str(obj.get("reason") or "WatchError"),
                    str(obj.get("message") or ""),
                )
            yield WatchEvent(WatchEventType(event_type), obj)
    except httpx.HTTPError as e:
        raise StoreError(0, TRANSPORT_ERROR_REASON, str(e)) from e


def build_ssl_context(config: StoreConfig, client_pem: bytes | None = None) -> ssl.SSLContext:
    """TLS context for talking to the store, optionally presenting a client cert."""
    if config.verify_tls:
        cafile = config.ca_cert_path
        if cafile and not Path(cafile).is_file():
            cafile = None
        context = ssl.create_default_context(cafile=cafile)
    else:
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    if client_pem is not None:
        # load_cert_chain only reads from files
        with tempfile.TemporaryDirectory() as directory:
            pem_path = Path(directory) / "client.pem"
            pem_path.write_bytes(client_pem)
            context.load_cert_chain(pem_path)
    return context


def build_http_client(
    config: StoreConfig, ssl_context: ssl.SSLContext | None = None
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=config.api_server_url,
        verify=ssl_context or build_ssl_context(config),
        timeout=config.request_timeout_seconds,
        headers={"Accept": "application/json"},
    )


class HttpUserClientFactory:
    """Hands out store clients that authenticate as the caller.

    Args:
        config: Store connection settings.
        shared_client: Pooled client reused for bearer-token callers.
    """

    def __init__(self, config: StoreConfig, shared_client: httpx.AsyncClient) -> None:
        self._config = config
        self._shared_client = shared_client

    @asynccontextmanager
    async def client_for(self, credential: Credential) -> AsyncIterator[ResourceStore]:
        match credential:
            case BearerToken(token=token):
                yield HttpResourceStore(
                    self._shared_client, {"Authorization": f"Bearer {token}"}
                )
            case ClientCertificate(pem_data=pem_data):
                try:
                    context = build_ssl_context(self._config, pem_data)
                except ssl.SSLError as e:
                    raise InvalidCredentialError(
                        "Client certificate and key could not be loaded", cause=e
                    ) from e
                store = HttpResourceStore(
                    build_http_client(self._config, context), owns_client=True
                )
                try:
                    yield store
                finally:
                    await store.aclose()
            case _:
                assert_never(credential)

    async def aclose(self) -> None:
        await self._shared_client.aclose()
