"""Unit tests for the in-process resource store."""

import pytest
import pytest_check

from src.authorization.credentials import BearerToken
from src.infrastructure.store.client import StoreError, WatchEventType
from src.infrastructure.store.memory import (
    InMemoryResourceStore,
    InMemoryUserClientFactory,
    merge_patch,
)
from src.infrastructure.store.resources import (
    CF_APP,
    CF_ORG,
    CF_SPACE,
    NAMESPACE,
    READY_CONDITION,
    ROLE_BINDING,
    SPACE_NAME_LABEL,
    is_condition_true,
    new_resource,
    object_name,
)
from tests.fixtures.identities import ADMIN, ALICE, BOB
from tests.fixtures.store import grant, seed_app, seed_org, seed_space


@pytest.fixture
def store(memory_store: InMemoryResourceStore) -> InMemoryResourceStore:
    seed_org(memory_store, "org-1", "acme")
    seed_space(memory_store, "org-1", "space-1", "dev")
    seed_space(memory_store, "org-1", "space-2", "prod")
    grant(memory_store, "space-1", ALICE)
    return memory_store


@pytest.mark.unit
class TestMergePatch:
    """Test RFC 7386 merge patch semantics."""

    @pytest.mark.parametrize(
        ("target", "patch", "expected"),
        [
            ({"a": 1}, {"b": 2}, {"a": 1, "b": 2}),
            ({"a": 1, "b": 2}, {"a": None}, {"b": 2}),
            ({"a": {"x": 1, "y": 2}}, {"a": {"y": None, "z": 3}}, {"a": {"x": 1, "z": 3}}),
            ({"a": [1, 2]}, {"a": [3]}, {"a": [3]}),
            ({"a": 1}, {"a": {"b": 1}}, {"a": {"b": 1}}),
            ({}, {"a": None}, {}),
        ],
    )
    def test_merge(self, target: dict, patch: dict, expected: dict) -> None:
        """Verify values are merged, replaced and removed."""
        assert merge_patch(target, patch) == expected

    def test_target_is_not_modified(self) -> None:
        """Verify the input document is left intact."""
        target = {"a": {"b": 1}}

        merge_patch(target, {"a": {"b": 2}})

        assert target == {"a": {"b": 1}}


@pytest.mark.unit
class TestAccessControl:
    """Test role binding based access for principal-bound views."""

    async def test_bound_namespace_is_readable(self, store: InMemoryResourceStore) -> None:
        """Verify a binding in the namespace grants access."""
        seed_app(store, "space-1", "app-1", "web")

        obj = await store.as_identity(ALICE).get(CF_APP, "app-1", "space-1")

        assert object_name(obj) == "app-1"

    async def test_unbound_namespace_is_forbidden(self, store: InMemoryResourceStore) -> None:
        """Verify access without binding is refused with 403."""
        seed_app(store, "space-2", "app-2", "api")

        with pytest.raises(StoreError) as exc_info:
            await store.as_identity(ALICE).get(CF_APP, "app-2", "space-2")

        with pytest_check.check:
            assert exc_info.value.is_forbidden
        with pytest_check.check:
            assert 'in the namespace "space-2"' in exc_info.value.message

    async def test_org_binding_covers_spaces(self, store: InMemoryResourceStore) -> None:
        """Verify a binding in the parent organization namespace applies to its spaces."""
        grant(store, "org-1", BOB, role="cf_org_manager")

        items = await store.as_identity(BOB).list(CF_APP, "space-2")

        assert items == []

    async def test_cluster_wide_list_needs_admin(self, store: InMemoryResourceStore) -> None:
        """Verify listing across namespaces is reserved for admins."""
        with pytest.raises(StoreError) as exc_info:
            await store.as_identity(ALICE).list(CF_APP)

        assert "at the cluster scope" in exc_info.value.message

    async def test_cluster_admin_sees_everything(self, store: InMemoryResourceStore) -> None:
        """Verify cluster admins bypass bindings."""
        namespaces = await store.as_identity(ADMIN).list(NAMESPACE)

        assert {object_name(ns) for ns in namespaces} >= {"cf", "org-1", "space-1"}

    async def test_user_client_factory(self, store: InMemoryResourceStore) -> None:
        """Verify the factory binds the view to the token's user."""
        factory = InMemoryUserClientFactory(store)

        async with factory.client_for(BearerToken("alice-token")) as client:
            bindings = await client.list(ROLE_BINDING, "space-1")

        assert len(bindings) == 1

    async def test_user_client_factory_rejects_unknown_token(
        self, store: InMemoryResourceStore
    ) -> None:
        """Verify unknown tokens fail with 401."""
        factory = InMemoryUserClientFactory(store)

        with pytest.raises(StoreError) as exc_info:
            async with factory.client_for(BearerToken("stolen")):
                pass

        assert exc_info.value.is_unauthorized


@pytest.mark.unit
class TestStorage:
    """Test object persistence through the privileged view."""

    async def test_create_stamps_metadata(self, store: InMemoryResourceStore) -> None:
        """Verify created objects get uid, timestamps and generation."""
        created = await store.privileged().create(
            CF_APP, new_resource(CF_APP, "app-1", "space-1", spec={"displayName": "web"})
        )

        metadata = created["metadata"]
        with pytest_check.check:
            assert metadata["uid"]
        with pytest_check.check:
            assert metadata["creationTimestamp"].endswith("Z")
        with pytest_check.check:
            assert metadata["generation"] == 1
        with pytest_check.check:
            assert created["apiVersion"] == "korifi.cloudfoundry.org/v1alpha1"

    async def test_create_requires_namespace(self, store: InMemoryResourceStore) -> None:
        """Verify objects cannot be created in a missing namespace."""
        with pytest.raises(StoreError) as exc_info:
            await store.privileged().create(CF_APP, new_resource(CF_APP, "a", "nowhere"))

        assert exc_info.value.is_not_found

    async def test_create_conflict(self, store: InMemoryResourceStore) -> None:
        """Verify object names are unique per namespace."""
        seed_app(store, "space-1", "app-1", "web")

        with pytest.raises(StoreError) as exc_info:
            await store.privileged().create(CF_APP, new_resource(CF_APP, "app-1", "space-1"))

        assert exc_info.value.reason == "AlreadyExists"

    async def test_patch_bumps_generation_on_spec_change(
        self, store: InMemoryResourceStore
    ) -> None:
        """Verify spec changes bump the generation and metadata changes do not."""
        seed_app(store, "space-1", "app-1", "web")
        view = store.privileged()

        labelled = await view.patch(CF_APP, "app-1", {"metadata": {"labels": {"a": "b"}}}, "space-1")
        renamed = await view.patch(CF_APP, "app-1", {"spec": {"displayName": "w"}}, "space-1")

        with pytest_check.check:
            assert labelled["metadata"]["generation"] == 1
        with pytest_check.check:
            assert renamed["metadata"]["generation"] == 2

    async def test_selectors(self, store: InMemoryResourceStore) -> None:
        """Verify label and field selectors narrow lists."""
        view = store.privileged()

        by_label = await view.list(NAMESPACE, label_selector=SPACE_NAME_LABEL)
        by_value = await view.list(NAMESPACE, label_selector=f"{SPACE_NAME_LABEL}=prod")
        by_field = await view.list(CF_SPACE, field_selector="metadata.name=space-1")
        limited = await view.list(NAMESPACE, limit=1)

        with pytest_check.check:
            assert {object_name(n) for n in by_label} == {"space-1", "space-2"}
        with pytest_check.check:
            assert [object_name(n) for n in by_value] == ["space-2"]
        with pytest_check.check:
            assert [object_name(s) for s in by_field] == ["space-1"]
        with pytest_check.check:
            assert len(limited) == 1

    async def test_deleting_namespace_removes_contents(
        self, store: InMemoryResourceStore
    ) -> None:
        """Verify objects inside a deleted namespace go with it."""
        seed_app(store, "space-1", "app-1", "web")

        await store.privileged().delete(NAMESPACE, "space-1")

        assert await store.privileged().list(CF_APP, "space-1") == []

    async def test_watch_replays_then_streams(self, store: InMemoryResourceStore) -> None:
        """Verify a watch starts with current objects and then sees changes."""
        view = store.privileged()

        async with view.watch(CF_SPACE, "org-1", field_selector="metadata.name=space-1") as events:
            store.update_condition(CF_SPACE, "space-1", "org-1", "Staged")
            iterator = aiter(events)
            first = await anext(iterator)
            second = await anext(iterator)
            assert store.open_watch_count == 1

        with pytest_check.check:
            assert first.type is WatchEventType.ADDED
        with pytest_check.check:
            assert second.type is WatchEventType.MODIFIED
        with pytest_check.check:
            assert store.open_watch_count == 0

    async def test_token_review(self, store: InMemoryResourceStore) -> None:
        """Verify token reviews report the mapped user."""
        review = await store.privileged().create_token_review("alice-token")

        assert review["status"] == {"authenticated": True, "user": {"username": "alice"}}


@pytest.mark.unit
class TestReconcilerEmulation:
    """Test the optional reconciler behaviour."""

    async def test_org_gets_namespace_and_ready(self) -> None:
        """Verify a created organization gets a namespace and becomes Ready."""
        store = InMemoryResourceStore(auto_reconcile=True)

        await store.privileged().create(
            CF_ORG, new_resource(CF_ORG, "org-1", "cf", spec={"displayName": "acme"})
        )

        org = await store.privileged().get(CF_ORG, "org-1", "cf")
        namespace = await store.privileged().get(NAMESPACE, "org-1")
        with pytest_check.check:
            assert is_condition_true(org, READY_CONDITION)
        with pytest_check.check:
            assert namespace["metadata"]["labels"]["cloudfoundry.org/org-name"] == "acme"

    async def test_deleted_org_takes_namespace(self) -> None:
        """Verify deleting an organization removes its namespace."""
        store = InMemoryResourceStore(auto_reconcile=True)
        view = store.privileged()
        await view.create(CF_ORG, new_resource(CF_ORG, "org-1", "cf", spec={"displayName": "acme"}))

        await view.delete(CF_ORG, "org-1", "cf")

        with pytest.raises(StoreError):
            await view.get(NAMESPACE, "org-1")

    async def test_without_reconciler_nothing_happens(self) -> None:
        """Verify a plain store leaves conditions alone."""
        store = InMemoryResourceStore()

        created = await store.privileged().create(
            CF_ORG, new_resource(CF_ORG, "org-1", "cf", spec={"displayName": "acme"})
        )

        assert not is_condition_true(created, READY_CONDITION)
