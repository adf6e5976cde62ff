"""Unit tests for the Kubernetes-style REST store client."""

from collections.abc import Callable

import httpx
import orjson
import pytest
import pytest_check

from src.authorization.credentials import BearerToken
from src.core.config import StoreConfig
from src.infrastructure.store.client import StoreError, WatchEventType
from src.infrastructure.store.http import (
    MERGE_PATCH_CONTENT_TYPE,
    HttpResourceStore,
    HttpUserClientFactory,
    resource_path,
)
from src.infrastructure.store.resources import (
    CF_APP,
    NAMESPACE,
    ROLE_BINDING,
    new_resource,
)

type Handler = Callable[[httpx.Request], httpx.Response]


def _client(handler: Handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url="https://store.test", transport=httpx.MockTransport(handler)
    )


def _store(handler: Handler, token: str = "t0k3n") -> HttpResourceStore:
    return HttpResourceStore(
        _client(handler), {"Authorization": f"Bearer {token}"}, owns_client=True
    )


def _status(code: int, reason: str, message: str) -> httpx.Response:
    return httpx.Response(
        code,
        json={"kind": "Status", "status": "Failure", "reason": reason, "message": message},
    )


@pytest.mark.unit
class TestResourcePath:
    """Test REST path construction."""

    @pytest.mark.parametrize(
        ("kind", "namespace", "name", "expected"),
        [
            (NAMESPACE, None, None, "/api/v1/namespaces"),
            (NAMESPACE, None, "cf", "/api/v1/namespaces/cf"),
            (
                ROLE_BINDING,
                "space-1",
                None,
                "/apis/rbac.authorization.k8s.io/v1/namespaces/space-1/rolebindings",
            ),
            (
                CF_APP,
                "space-1",
                "app-1",
                "/apis/korifi.cloudfoundry.org/v1alpha1/namespaces/space-1/cfapps/app-1",
            ),
            (CF_APP, None, None, "/apis/korifi.cloudfoundry.org/v1alpha1/cfapps"),
        ],
    )
    def test_paths(
        self, kind: object, namespace: str | None, name: str | None, expected: str
    ) -> None:
        """Verify core and group resources map to their REST paths."""
        assert resource_path(kind, namespace, name) == expected  # type: ignore[arg-type]


@pytest.mark.unit
class TestHttpResourceStore:
    """Test requests and error mapping of the REST client."""

    async def test_get_sends_credentials(self) -> None:
        """Verify the principal's token rides on the request."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"metadata": {"name": "app-1"}})

        store = _store(handler)
        obj = await store.get(CF_APP, "app-1", "space-1")
        await store.aclose()

        with pytest_check.check:
            assert obj == {"metadata": {"name": "app-1"}}
        with pytest_check.check:
            assert seen[0].headers["Authorization"] == "Bearer t0k3n"
        with pytest_check.check:
            assert seen[0].url.path.endswith("/namespaces/space-1/cfapps/app-1")

    async def test_list_fills_in_kind_and_passes_selectors(self) -> None:
        """Verify list items get apiVersion and kind, and selectors are sent."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"items": [{"metadata": {"name": "a"}}]})

        items = await _store(handler).list(
            CF_APP, "space-1", label_selector="x=y", field_selector="metadata.name=a", limit=1
        )

        params = seen[0].url.params
        with pytest_check.check:
            assert items[0]["kind"] == "CFApp"
        with pytest_check.check:
            assert items[0]["apiVersion"] == "korifi.cloudfoundry.org/v1alpha1"
        with pytest_check.check:
            assert params["labelSelector"] == "x=y"
        with pytest_check.check:
            assert params["fieldSelector"] == "metadata.name=a"
        with pytest_check.check:
            assert params["limit"] == "1"

    async def test_create_posts_to_collection(self) -> None:
        """Verify creates are posted to the namespace collection."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, content=request.content)

        obj = new_resource(CF_APP, "app-1", "space-1", spec={"displayName": "web"})
        created = await _store(handler).create(CF_APP, obj)

        with pytest_check.check:
            assert seen[0].method == "POST"
        with pytest_check.check:
            assert seen[0].url.path == "/apis/korifi.cloudfoundry.org/v1alpha1/namespaces/space-1/cfapps"
        with pytest_check.check:
            assert created == obj

    async def test_patch_uses_merge_patch(self) -> None:
        """Verify patches are sent as JSON merge patches."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={})

        await _store(handler).patch(CF_APP, "app-1", {"spec": {"x": 1}}, "space-1")

        with pytest_check.check:
            assert seen[0].headers["Content-Type"] == MERGE_PATCH_CONTENT_TYPE
        with pytest_check.check:
            assert orjson.loads(seen[0].content) == {"spec": {"x": 1}}

    async def test_delete_with_empty_body(self) -> None:
        """Verify deletes accept an empty response."""
        await _store(lambda request: httpx.Response(200)).delete(CF_APP, "app-1", "space-1")

    @pytest.mark.parametrize(
        ("response", "status", "reason"),
        [
            (_status(403, "Forbidden", "nope"), 403, "Forbidden"),
            (_status(404, "NotFound", "gone"), 404, "NotFound"),
            (httpx.Response(500, text="upstream exploded"), 500, "Internal Server Error"),
        ],
    )
    async def test_error_statuses(
        self, response: httpx.Response, status: int, reason: str
    ) -> None:
        """Verify error responses become store errors with status and reason."""
        with pytest.raises(StoreError) as exc_info:
            await _store(lambda request: response).get(CF_APP, "a", "s")

        with pytest_check.check:
            assert exc_info.value.status == status
        with pytest_check.check:
            assert exc_info.value.reason == reason

    async def test_transport_error(self) -> None:
        """Verify connection failures become store errors with status 0."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(StoreError) as exc_info:
            await _store(handler).list(NAMESPACE)

        with pytest_check.check:
            assert exc_info.value.status == 0
        with pytest_check.check:
            assert exc_info.value.reason == "TransportError"

    async def test_token_review(self) -> None:
        """Verify token reviews post the token in the spec."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                201, json={"status": {"authenticated": True, "user": {"username": "alice"}}}
            )

        review = await _store(handler).create_token_review("user-token")

        with pytest_check.check:
            assert seen[0].url.path == "/apis/authentication.k8s.io/v1/tokenreviews"
        with pytest_check.check:
            assert orjson.loads(seen[0].content)["spec"] == {"token": "user-token"}
        with pytest_check.check:
            assert review["status"]["user"]["username"] == "alice"


@pytest.mark.unit
class TestHttpWatch:
    """Test the newline delimited watch stream."""

    async def test_events_are_decoded(self) -> None:
        """Verify each line becomes one event."""
        seen: list[httpx.Request] = []
        lines = [
            {"type": "ADDED", "object": {"metadata": {"name": "a"}}},
            {"type": "MODIFIED", "object": {"metadata": {"name": "a"}}},
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            body = b"\n".join(orjson.dumps(line) for line in lines) + b"\n\n"
            return httpx.Response(200, content=body)

        async with _store(handler).watch(CF_APP, "space-1", field_selector="metadata.name=a") as events:
            received = [event async for event in events]

        with pytest_check.check:
            assert [e.type for e in received] == [WatchEventType.ADDED, WatchEventType.MODIFIED]
        with pytest_check.check:
            assert seen[0].url.params["watch"] == "true"
        with pytest_check.check:
            assert seen[0].url.params["fieldSelector"] == "metadata.name=a"

    async def test_error_event(self) -> None:
        """Verify an ERROR event ends the stream with a store error."""

        def handler(request: httpx.Request) -> httpx.Response:
            error = {
                "type": "ERROR",
                "object": {"code": 410, "reason": "Expired", "message": "too old"},
            }
            return httpx.Response(200, content=orjson.dumps(error) + b"\n")

        with pytest.raises(StoreError) as exc_info:
            async with _store(handler).watch(CF_APP, "space-1") as events:
                async for _ in events:
                    pass

        assert (exc_info.value.status, exc_info.value.reason) == (410, "Expired")

    async def test_refused_watch(self) -> None:
        """Verify a watch refused by the store fails on entry."""
        with pytest.raises(StoreError) as exc_info:
            async with _store(lambda request: _status(403, "Forbidden", "no watch")).watch(CF_APP):
                pass

        assert exc_info.value.is_forbidden


@pytest.mark.unit
class TestHttpUserClientFactory:
    """Test caller-bound clients."""

    async def test_bearer_callers_share_the_pool(self) -> None:
        """Verify bearer callers reuse the shared client with their own token."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"items": []})

        shared = _client(handler)
        factory = HttpUserClientFactory(StoreConfig(), shared)

        async with factory.client_for(BearerToken("caller-token")) as store:
            await store.list(NAMESPACE)

        with pytest_check.check:
            assert seen[0].headers["Authorization"] == "Bearer caller-token"
        with pytest_check.check:
            assert not shared.is_closed

        await factory.aclose()
        assert shared.is_closed
