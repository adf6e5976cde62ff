"""Base repository for authorized access to namespaced store resources.

Every repository call takes the caller's credential. Reads and writes of
individual objects go through a store client bound to that credential, so
the store decides per object whether the caller may proceed; list calls are
narrowed to the namespaces the caller holds role bindings in.
"""

import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Collection, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from loguru import logger

from src.authorization.credentials import Credential
from src.authorization.permissions import NamespacePermissions
from src.core.exceptions import NotFoundError, UnknownFailureError, forbidden_as_not_found
from src.core.types import Resource
from src.infrastructure.store.client import (
    ResourceStore,
    StoreError,
    UserClientFactory,
    from_store_error,
)
from src.infrastructure.store.resources import (
    ResourceKind,
    creation_timestamp,
    last_updated,
    object_annotations,
    object_labels,
    object_name,
    object_namespace,
)
from src.repositories.conditions import ConditionAwaiter


@dataclass(frozen=True, kw_only=True)
class Record:
    """Fields shared by every entity record."""

    guid: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)


def record_fields(obj: Resource) -> dict[str, Any]:
    """Common ``Record`` keyword arguments for a store object."""
    return {
        "guid": object_name(obj),
        "created_at": creation_timestamp(obj),
        "updated_at": last_updated(obj),
        "labels": object_labels(obj),
        "annotations": object_annotations(obj),
    }


def new_guid() -> str:
    return str(uuid.uuid4())


def matches(value: str, allowed: Collection[str] | None) -> bool:
    """True when no filter is given or ``value`` is one of ``allowed``."""
    return not allowed or value in allowed


def metadata_patch(
    labels: dict[str, str | None] | None,
    annotations: dict[str, str | None] | None,
) -> dict[str, Any]:
    """Merge patch for labels and annotations. None values remove keys."""
    patch: dict[str, Any] = {}
    if labels:
        patch["labels"] = labels
    if annotations:
        patch["annotations"] = annotations
    return {"metadata": patch}


class NamespaceRetriever:
    """Finds the namespace an object lives in from its guid."""

    def __init__(self, privileged_store: ResourceStore) -> None:
        self._store = privileged_store

    async def namespace_for(self, kind: ResourceKind, guid: str, resource_type: str) -> str:
        """Return the namespace of the ``kind`` object named ``guid``.

        Raises:
            NotFoundError: If no such object exists.
            UnknownFailureError: If several objects carry the guid.
        """
        try:
            found = await self._store.list(kind, field_selector=f"metadata.name={guid}")
        except StoreError as e:
            raise from_store_error(e, resource_type) from e

        if not found:
            raise NotFoundError(
                f"{resource_type} not found",
                context={"resource_type": resource_type, "guid": guid},
            )
        if len(found) > 1:
            raise UnknownFailureError(
                f"Duplicate {resource_type} records exist",
                context={"guid": guid, "count": len(found)},
            )
        return object_namespace(found[0]) or ""


@dataclass(frozen=True)
class RepositoryContext:
    """Collaborators shared by all repositories."""

    privileged_store: ResourceStore
    user_clients: UserClientFactory
    permissions: NamespacePermissions
    awaiter: ConditionAwaiter
    namespace_retriever: NamespaceRetriever


class NamespacedRepository[R: Record](ABC):
    """Common operations for one namespaced resource kind.

    Subclasses set ``kind`` and ``resource_type`` and implement
    ``to_record``.

    Example:
        class AppRepository(NamespacedRepository[AppRecord]):
            kind = CF_APP
            resource_type = "App"
    """

    kind: ClassVar[ResourceKind]
    resource_type: ClassVar[str]

    def __init__(self, context: RepositoryContext) -> None:
        self._context = context
        self._privileged = context.privileged_store
        self._permissions = context.permissions
        self._awaiter = context.awaiter

    @abstractmethod
    def to_record(self, obj: Resource) -> R:
        """Convert a store object to the repository's record type."""

    @asynccontextmanager
    async def caller_store(
        self, credential: Credential, *, hide_forbidden: bool = False
    ) -> AsyncIterator[ResourceStore]:
        """Store client acting as the caller, translating store failures.

        Args:
            credential: The caller's credential.
            hide_forbidden: Report Forbidden as NotFound, for single objects.
        """
        try:
            async with self._context.user_clients.client_for(credential) as store:
                yield store
        except StoreError as e:
            error = from_store_error(e, self.resource_type)
            if hide_forbidden:
                error = forbidden_as_not_found(error)
            raise error from e

    async def namespace_of(self, guid: str) -> str:
        return await self._context.namespace_retriever.namespace_for(
            self.kind, guid, self.resource_type
        )

    async def get(self, credential: Credential, guid: str) -> R:
        namespace = await self.namespace_of(guid)
        async with self.caller_store(credential, hide_forbidden=True) as store:
            obj = await store.get(self.kind, guid, namespace)
        logger.debug("Fetched {} {}", self.resource_type, guid)
        return self.to_record(obj)

    async def delete(self, credential: Credential, guid: str) -> None:
        namespace = await self.namespace_of(guid)
        async with self.caller_store(credential, hide_forbidden=True) as store:
            await store.delete(self.kind, guid, namespace)
        logger.info("Deleted {} {}", self.resource_type, guid)

    async def patch_metadata(
        self,
        credential: Credential,
        guid: str,
        labels: dict[str, str | None] | None = None,
        annotations: dict[str, str | None] | None = None,
    ) -> R:
        namespace = await self.namespace_of(guid)
        async with self.caller_store(credential, hide_forbidden=True) as store:
            obj = await store.patch(
                self.kind, guid, metadata_patch(labels, annotations), namespace
            )
        logger.info("Updated metadata of {} {}", self.resource_type, guid)
        return self.to_record(obj)

    async def list_in_namespaces(
        self,
        credential: Credential,
        namespaces: Iterable[str],
        label_selector: str | None = None,
    ) -> list[Resource]:
        """List objects of this kind across ``namespaces`` as the caller.

        Namespaces that became forbidden since the permission check are
        skipped rather than failing the whole listing.
        """
        objects: list[Resource] = []
        async with self.caller_store(credential) as store:
            for namespace in sorted(namespaces):
                try:
                    objects.extend(
                        await store.list(self.kind, namespace, label_selector=label_selector)
                    )
                except StoreError as e:
                    if not e.is_forbidden:
                        raise
                    logger.debug("Skipping forbidden namespace {}", namespace)
        return objects
