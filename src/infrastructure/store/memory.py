"""In-process resource store for local development and tests.

``InMemoryResourceStore`` holds the cluster state. Callers never use it
directly; they go through a view bound to a principal:

- ``privileged()`` sees and may change everything, like the service account
  this process runs as;
- ``as_identity(identity)`` applies role-binding based access control. A
  caller may touch objects in a namespace when a RoleBinding in that
  namespace, or in its parent organization namespace, names the caller as a
  subject. Cluster-scoped kinds and cluster-wide lists are reserved for
  cluster admins.

Writes run admission hooks and persist under a single lock, so admission
always observes every previously admitted object. With ``auto_reconcile`` the
store also plays the part of the external reconciler: it creates namespaces
for organizations and spaces and flips their readiness conditions.
"""

import asyncio
import copy
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Final, assert_never

from loguru import logger

from src.authorization.credentials import BearerToken, ClientCertificate, Credential
from src.authorization.identity import (
    CertificateInspector,
    Identity,
    IdentityKind,
    identity_from_username,
)
from src.core.exceptions import StratusError
from src.core.types import Resource
from src.infrastructure.store.admission import (
    AdmissionHook,
    AdmissionOperation,
    AdmissionRequest,
    denial_message,
)
from src.infrastructure.store.client import (
    ResourceStore,
    StoreError,
    WatchEvent,
    WatchEventType,
)
from src.infrastructure.store.resources import (
    BINDING_SECRET_AVAILABLE_CONDITION,
    CF_APP,
    CF_BUILD,
    CF_ORG,
    CF_SERVICE_BINDING,
    CF_SPACE,
    NAMESPACE,
    ORG_GUID_LABEL,
    ORG_NAME_LABEL,
    READY_CONDITION,
    RESOURCE_KINDS,
    ROLE_BINDING,
    SPACE_NAME_LABEL,
    STAGED_CONDITION,
    SUCCEEDED_CONDITION,
    TOKEN_REVIEW,
    ResourceKind,
    display_name,
    format_timestamp,
    new_resource,
    object_labels,
    object_name,
    object_namespace,
    set_condition,
    utc_now,
)

type _Key = tuple[str, str, str]

_CLUSTER: Final[str] = ""


@dataclass(eq=False)
class _Watcher:
    kind: str
    namespace: str | None
    label_selector: str | None
    field_selector: str | None
    queue: asyncio.Queue[WatchEvent | None] = field(default_factory=asyncio.Queue)


def _key(kind: ResourceKind, name: str, namespace: str | None) -> _Key:
    return (kind.kind, (namespace or _CLUSTER) if kind.namespaced else _CLUSTER, name)


def _matches_labels(obj: Resource, selector: str | None) -> bool:
    if not selector:
        return True
    labels = object_labels(obj)
    for term in selector.split(","):
        term = term.strip()
        if "!=" in term:
            key, _, value = term.partition("!=")
            if labels.get(key.strip()) == value.strip():
                return False
        elif "=" in term:
            key, _, value = term.replace("==", "=").partition("=")
            if labels.get(key.strip()) != value.strip():
                return False
        elif term.startswith("!"):
            if term[1:] in labels:
                return False
        elif term not in labels:
            return False
    return True


def _matches_fields(obj: Resource, selector: str | None) -> bool:
    if not selector:
        return True
    values = {
        "metadata.name": object_name(obj),
        "metadata.namespace": object_namespace(obj) or "",
    }
    for term in selector.split(","):
        key, _, value = term.strip().partition("=")
        if values.get(key) != value:
            return False
    return True


def merge_patch(target: Any, patch: Any) -> Any:
    """Apply an RFC 7386 JSON merge patch and return the result."""
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = dict(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = merge_patch(result.get(key), value)
    return result


class InMemoryResourceStore:
    """Cluster state shared by all principal-bound views.

    Args:
        root_namespace: Namespace holding organizations; created up front.
        auto_reconcile: Emulate the reconciler (namespaces and conditions).
    """

    def __init__(self, root_namespace: str = "cf", *, auto_reconcile: bool = False) -> None:
        self.root_namespace = root_namespace
        self.auto_reconcile = auto_reconcile
        self._objects: dict[_Key, Resource] = {}
        self._tokens: dict[str, str] = {}
        self._cluster_admins: set[Identity] = set()
        self._hooks: dict[str, list[AdmissionHook]] = {}
        self._watchers: list[_Watcher] = []
        self._write_lock = asyncio.Lock()
        self._resource_version = 0
        self.seed(NAMESPACE, new_resource(NAMESPACE, root_namespace))

    # administration

    def add_token(self, token: str, username: str) -> None:
        """Make ``token`` authenticate as ``username`` in token reviews."""
        self._tokens[token] = username

    def revoke_token(self, token: str) -> None:
        self._tokens.pop(token, None)

    def add_cluster_admin(self, identity: Identity) -> None:
        self._cluster_admins.add(identity)

    def register_admission_hook(self, kind: ResourceKind, hook: AdmissionHook) -> None:
        self._hooks.setdefault(kind.kind, []).append(hook)

    def privileged(self) -> "InMemoryStoreView":
        return InMemoryStoreView(self, None)

    def as_identity(self, identity: Identity) -> "InMemoryStoreView":
        return InMemoryStoreView(self, identity)

    @property
    def open_watch_count(self) -> int:
        return len(self._watchers)

    def close_watches(self) -> None:
        """End every open watch stream, as a server-side timeout would."""
        for watcher in self._watchers:
            watcher.queue.put_nowait(None)

    def seed(self, kind: ResourceKind, obj: Resource) -> Resource:
        """Insert an object directly, bypassing access control and admission."""
        stored = self._stamp(copy.deepcopy(obj), kind)
        self._objects[self._key_of(kind, stored)] = stored
        self._publish(WatchEventType.ADDED, kind, stored)
        return copy.deepcopy(stored)

    def update_condition(
        self,
        kind: ResourceKind,
        name: str,
        namespace: str | None,
        condition_type: str,
        status: bool = True,
    ) -> Resource:
        """Report a status condition for the object's current generation."""
        stored = self._objects.get(_key(kind, name, namespace))
        if stored is None:
            raise StoreError(HTTPStatus.NOT_FOUND, "NotFound", f'{kind.plural} "{name}" not found')
        set_condition(stored, condition_type, status)
        self._bump_version(stored)
        self._publish(WatchEventType.MODIFIED, kind, stored)
        return copy.deepcopy(stored)

    # access control

    def _can_access(self, principal: Identity | None, kind: ResourceKind, namespace: str | None) -> bool:
        if principal is None or principal in self._cluster_admins:
            return True
        if kind is TOKEN_REVIEW:
            return True
        if not kind.namespaced or not namespace:
            return False

        candidates = {namespace}
        ns_obj = self._objects.get(_key(NAMESPACE, namespace, None))
        if ns_obj is not None and (parent := object_labels(ns_obj).get(ORG_GUID_LABEL)):
            candidates.add(parent)

        return any(
            self._binds(binding, principal)
            for (kind_name, ns, _), binding in self._objects.items()
            if kind_name == ROLE_BINDING.kind and ns in candidates
        )

    @staticmethod
    def _binds(binding: Resource, principal: Identity) -> bool:
        return any(
            subject.get("kind") == principal.kind.value
            and subject.get("name") == principal.name
            for subject in binding.get("subjects") or []
        )

    def authorize(self, principal: Identity | None, kind: ResourceKind, namespace: str | None) -> None:
        if not self._can_access(principal, kind, namespace):
            where = f' in the namespace "{namespace}"' if namespace else " at the cluster scope"
            raise StoreError(
                HTTPStatus.FORBIDDEN,
                "Forbidden",
                f'{principal} cannot access resource "{kind.plural}"{where}',
            )

    # storage

    def _key_of(self, kind: ResourceKind, obj: Resource) -> _Key:
        return _key(kind, object_name(obj), object_namespace(obj))

    def _bump_version(self, obj: Resource) -> None:
        self._resource_version += 1
        obj["metadata"]["resourceVersion"] = str(self._resource_version)

    def _stamp(self, obj: Resource, kind: ResourceKind) -> Resource:
        obj.setdefault("apiVersion", kind.api_version)
        obj.setdefault("kind", kind.kind)
        meta = obj.setdefault("metadata", {})
        meta.setdefault("uid", str(uuid.uuid4()))
        meta.setdefault("creationTimestamp", format_timestamp(utc_now()))
        meta.setdefault("generation", 1)
        self._bump_version(obj)
        return obj

    def _publish(self, event_type: WatchEventType, kind: ResourceKind, obj: Resource) -> None:
        for watcher in self._watchers:
            if (
                watcher.kind == kind.kind
                and (watcher.namespace is None or watcher.namespace == object_namespace(obj))
                and _matches_labels(obj, watcher.label_selector)
                and _matches_fields(obj, watcher.field_selector)
            ):
                watcher.queue.put_nowait(WatchEvent(event_type, copy.deepcopy(obj)))

    def select(
        self,
        kind: ResourceKind,
        namespace: str | None,
        label_selector: str | None = None,
        field_selector: str | None = None,
    ) -> list[Resource]:
        found = [
            copy.deepcopy(obj)
            for (kind_name, ns, _), obj in self._objects.items()
            if kind_name == kind.kind
            and (namespace is None or not kind.namespaced or ns == namespace)
            and _matches_labels(obj, label_selector)
            and _matches_fields(obj, field_selector)
        ]
        return sorted(found, key=lambda o: (object_namespace(o) or "", object_name(o)))

    def lookup(self, kind: ResourceKind, name: str, namespace: str | None) -> Resource:
        stored = self._objects.get(_key(kind, name, namespace))
        if stored is None:
            raise StoreError(HTTPStatus.NOT_FOUND, "NotFound", f'{kind.plural} "{name}" not found')
        return stored

    async def _admit(
        self,
        operation: AdmissionOperation,
        kind: ResourceKind,
        obj: Resource | None,
        old_obj: Resource | None,
    ) -> None:
        request = AdmissionRequest(operation, kind.kind, obj, old_obj)
        for hook in self._hooks.get(kind.kind, []):
            try:
                await hook(request)
            except StratusError as e:
                logger.debug("Admission denied", kind=kind.kind, operation=operation.value, reason=e.message)
                raise StoreError(
                    HTTPStatus.UNPROCESSABLE_ENTITY, "Invalid", denial_message(e)
                ) from e

    async def create(self, kind: ResourceKind, obj: Resource) -> Resource:
        obj = copy.deepcopy(obj)
        name, namespace = object_name(obj), object_namespace(obj)
        if not name:
            raise StoreError(HTTPStatus.UNPROCESSABLE_ENTITY, "Invalid", "metadata.name is required")
        if kind.namespaced:
            if not namespace:
                raise StoreError(HTTPStatus.UNPROCESSABLE_ENTITY, "Invalid", "metadata.namespace is required")
            self.lookup(NAMESPACE, namespace, None)

        async with self._write_lock:
            key = self._key_of(kind, obj)
            if key in self._objects:
                raise StoreError(HTTPStatus.CONFLICT, "AlreadyExists", f'{kind.plural} "{name}" already exists')
            await self._admit(AdmissionOperation.CREATE, kind, obj, None)
            stored = self._stamp(obj, kind)
            self._objects[key] = stored
            self._publish(WatchEventType.ADDED, kind, stored)

        created = copy.deepcopy(stored)
        if self.auto_reconcile:
            self._reconcile(kind, stored)
        return created

    async def patch(self, kind: ResourceKind, name: str, patch: dict[str, Any], namespace: str | None) -> Resource:
        async with self._write_lock:
            old = self.lookup(kind, name, namespace)
            updated = merge_patch(copy.deepcopy(old), patch)
            updated["metadata"]["name"] = name
            if old.get("spec") != updated.get("spec"):
                updated["metadata"]["generation"] = int(old["metadata"].get("generation", 1)) + 1
            await self._admit(AdmissionOperation.UPDATE, kind, updated, copy.deepcopy(old))
            self._bump_version(updated)
            self._objects[_key(kind, name, namespace)] = updated
            self._publish(WatchEventType.MODIFIED, kind, updated)

        patched = copy.deepcopy(updated)
        if self.auto_reconcile:
            self._reconcile(kind, updated)
        return patched

    async def delete(self, kind: ResourceKind, name: str, namespace: str | None) -> None:
        async with self._write_lock:
            old = self.lookup(kind, name, namespace)
            await self._admit(AdmissionOperation.DELETE, kind, None, copy.deepcopy(old))
            self._remove(kind, old)

        if self.auto_reconcile and kind in (CF_ORG, CF_SPACE):
            ns_key = _key(NAMESPACE, name, None)
            if ns_key in self._objects:
                self._remove(NAMESPACE, self._objects[ns_key])

    def _remove(self, kind: ResourceKind, obj: Resource) -> None:
        self._objects.pop(self._key_of(kind, obj), None)
        self._publish(WatchEventType.DELETED, kind, obj)
        if kind is NAMESPACE:
            namespace = object_name(obj)
            contained = [
                (RESOURCE_KINDS[kind_name], stored)
                for (kind_name, ns, _), stored in list(self._objects.items())
                if ns == namespace
            ]
            for child_kind, child in contained:
                self._remove(child_kind, child)

    def watcher(
        self,
        kind: ResourceKind,
        namespace: str | None,
        label_selector: str | None,
        field_selector: str | None,
    ) -> _Watcher:
        watcher = _Watcher(kind.kind, namespace, label_selector, field_selector)
        for obj in self.select(kind, namespace, label_selector, field_selector):
            watcher.queue.put_nowait(WatchEvent(WatchEventType.ADDED, obj))
        self._watchers.append(watcher)
        return watcher

    def release(self, watcher: _Watcher) -> None:
        self._watchers.remove(watcher)

    def review_token(self, token: str) -> Resource:
        username = self._tokens.get(token)
        status: dict[str, Any] = {"authenticated": username is not None}
        if username is not None:
            status["user"] = {"username": username}
        else:
            status["error"] = "token not recognized"
        return {"apiVersion": TOKEN_REVIEW.api_version, "kind": TOKEN_REVIEW.kind, "status": status}

    # reconciler emulation

    def _reconcile(self, kind: ResourceKind, obj: Resource) -> None:
        name, namespace = object_name(obj), object_namespace(obj)
        spec = obj.get("spec") or {}

        if kind is CF_ORG:
            self._ensure_namespace(name, {ORG_NAME_LABEL: display_name(obj)})
            self.update_condition(kind, name, namespace, READY_CONDITION)
        elif kind is CF_SPACE:
            self._ensure_namespace(
                name, {SPACE_NAME_LABEL: display_name(obj), ORG_GUID_LABEL: namespace or ""}
            )
            self.update_condition(kind, name, namespace, READY_CONDITION)
        elif kind is CF_APP and (spec.get("currentDropletRef") or {}).get("name"):
            self.update_condition(kind, name, namespace, STAGED_CONDITION)
        elif kind is CF_BUILD:
            self.update_condition(kind, name, namespace, SUCCEEDED_CONDITION)
        elif kind is CF_SERVICE_BINDING:
            self.update_condition(kind, name, namespace, BINDING_SECRET_AVAILABLE_CONDITION)

    def _ensure_namespace(self, name: str, labels: dict[str, str]) -> None:
        if _key(NAMESPACE, name, None) not in self._objects:
            self.seed(NAMESPACE, new_resource(NAMESPACE, name, labels=labels))


async def _drain(queue: asyncio.Queue[WatchEvent | None]) -> AsyncIterator[WatchEvent]:
    while (event := await queue.get()) is not None:
        yield event


class InMemoryStoreView:
    """``ResourceStore`` bound to one principal (None means privileged)."""

    def __init__(self, backing: InMemoryResourceStore, principal: Identity | None) -> None:
        self._backing = backing
        self.principal = principal

    async def get(self, kind: ResourceKind, name: str, namespace: str | None = None) -> Resource:
        self._backing.authorize(self.principal, kind, namespace)
        return copy.deepcopy(self._backing.lookup(kind, name, namespace))

    async def list(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        *,
        label_selector: str | None = None,
        field_selector: str | None = None,
        limit: int | None = None,
    ) -> list[Resource]:
        self._backing.authorize(self.principal, kind, namespace)
        items = self._backing.select(kind, namespace, label_selector, field_selector)
        return items[:limit] if limit is not None else items

    async def create(self, kind: ResourceKind, obj: Resource) -> Resource:
        self._backing.authorize(self.principal, kind, object_namespace(obj))
        return await self._backing.create(kind, obj)

    async def patch(
        self, kind: ResourceKind, name: str, patch: dict[str, Any], namespace: str | None = None
    ) -> Resource:
        self._backing.authorize(self.principal, kind, namespace)
        return await self._backing.patch(kind, name, patch, namespace)

    async def delete(self, kind: ResourceKind, name: str, namespace: str | None = None) -> None:
        self._backing.authorize(self.principal, kind, namespace)
        await self._backing.delete(kind, name, namespace)

    @asynccontextmanager
    async def watch(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        *,
        field_selector: str | None = None,
        label_selector: str | None = None,
    ) -> AsyncIterator[AsyncIterator[WatchEvent]]:
        self._backing.authorize(self.principal, kind, namespace)
        watcher = self._backing.watcher(kind, namespace, label_selector, field_selector)
        try:
            yield _drain(watcher.queue)
        finally:
            self._backing.release(watcher)

    async def create_token_review(self, token: str) -> Resource:
        return self._backing.review_token(token)

    async def aclose(self) -> None:
        return None


class InMemoryUserClientFactory:
    """Authenticates callers against the in-memory store's token table.

    Args:
        backing: The store holding tokens and role bindings.
        certificate_inspector: Derives identities from client certificates.
    """

    def __init__(
        self,
        backing: InMemoryResourceStore,
        certificate_inspector: CertificateInspector | None = None,
    ) -> None:
        self._backing = backing
        self._certificate_inspector = certificate_inspector or CertificateInspector()

    def _authenticate(self, credential: Credential) -> Identity:
        match credential:
            case BearerToken(token=token):
                status = self._backing.review_token(token)["status"]
                if not status["authenticated"]:
                    raise StoreError(HTTPStatus.UNAUTHORIZED, "Unauthorized", "Unauthorized")
                return identity_from_username(status["user"]["username"])
            case ClientCertificate():
                return self._certificate_inspector.inspect(credential)
            case _:
                assert_never(credential)

    @asynccontextmanager
    async def client_for(self, credential: Credential) -> AsyncIterator[ResourceStore]:
        yield self._backing.as_identity(self._authenticate(credential))

    async def aclose(self) -> None:
        return None


def role_binding(
    name: str,
    namespace: str,
    identity: Identity,
    role: str = "cf_space_developer",
) -> Resource:
    """Build a RoleBinding granting ``role`` to ``identity`` in ``namespace``."""
    subject: dict[str, str] = {"kind": identity.kind.value, "name": identity.name}
    if identity.kind is IdentityKind.SERVICE_ACCOUNT:
        subject["namespace"] = namespace
    binding = new_resource(ROLE_BINDING, name, namespace)
    binding["roleRef"] = {"apiGroup": "rbac.authorization.k8s.io", "kind": "ClusterRole", "name": role}
    binding["subjects"] = [subject]
    return binding
