"""Admission checks keeping display names unique within their partition.

The store cannot enforce "one live object per (partition, case-folded name)"
on its own, so every create and rename of a named kind passes through
``UniquenessGuard`` on the store's admission path. The guard lists the live
siblings in the object's namespace and rejects a case-insensitive clash, and
on create it also rejects objects whose namespace does not belong to a live
parent entity.

Uniqueness is best-effort across admission replicas: two replicas admitting
clashing creates at the same instant can both succeed. Within one process
the in-memory store runs admission and persistence under one lock, so there
at most one of two concurrent clashing creates is admitted.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

from loguru import logger

from src.core.exceptions import DuplicateNameError, OrphanedReferenceError, UnknownFailureError
from src.core.observability import trace_operation
from src.core.types import Resource
from src.infrastructure.store.admission import AdmissionOperation, AdmissionRequest
from src.infrastructure.store.client import ResourceStore, StoreError
from src.infrastructure.store.resources import (
    CF_APP,
    CF_ORG,
    CF_SPACE,
    ResourceKind,
    display_name,
    is_being_deleted,
    object_name,
    object_namespace,
)


@dataclass(frozen=True, slots=True)
class UniqueNameRule:
    """How names of one kind are scoped.

    Attributes:
        kind: The named kind.
        resource_type: User-facing type name used in messages.
        duplicate_message: Message template, formatted with ``name``.
        parent_kind: Kind of the entity owning the namespace, if any. The
            parent entity is the object of this kind named after the namespace.
        parent_type: User-facing name of the parent type.
    """

    kind: ResourceKind
    resource_type: str
    duplicate_message: str
    parent_kind: ResourceKind | None = None
    parent_type: str = ""


DEFAULT_RULES: Final[dict[str, UniqueNameRule]] = {
    rule.kind.kind: rule
    for rule in (
        UniqueNameRule(CF_ORG, "Organization", "Organization '{name}' already exists."),
        UniqueNameRule(
            CF_SPACE,
            "Space",
            "Space '{name}' already exists.",
            parent_kind=CF_ORG,
            parent_type="Organization",
        ),
        UniqueNameRule(
            CF_APP,
            "App",
            "App with the name '{name}' already exists.",
            parent_kind=CF_SPACE,
            parent_type="Space",
        ),
    )
}


class UniquenessGuard:
    """Validates creates and renames of named, partitioned objects.

    Args:
        store: Privileged client used to read siblings and parents.
        rules: Rules per kind name; kinds without a rule are always admitted.
    """

    def __init__(
        self,
        store: ResourceStore,
        rules: Mapping[str, UniqueNameRule] = DEFAULT_RULES,
    ) -> None:
        self._store = store
        self._rules = rules

    @property
    def kinds(self) -> list[ResourceKind]:
        return [rule.kind for rule in self._rules.values()]

    async def __call__(self, request: AdmissionRequest) -> None:
        """Admission hook entry point."""
        match request.operation:
            case AdmissionOperation.CREATE if request.obj is not None:
                await self.validate_create(request.kind, request.obj)
            case AdmissionOperation.UPDATE if request.obj is not None and request.old_obj is not None:
                await self.validate_update(request.kind, request.old_obj, request.obj)
            case _:
                self.validate_delete(request.kind)

    async def validate_create(self, kind: str, obj: Resource) -> None:
        """Reject a create that clashes with a sibling or has no live parent.

        Raises:
            DuplicateNameError: If a live sibling has the same case-folded name.
            OrphanedReferenceError: If the namespace has no live parent entity.
            UnknownFailureError: If the store could not be read.
        """
        rule = self._rules.get(kind)
        if rule is None:
            return

        name, namespace = display_name(obj), object_namespace(obj) or ""
        with trace_operation("validate_create", kind=kind, namespace=namespace):
            if rule.parent_kind is not None:
                await self._check_parent(rule, rule.parent_kind, namespace, name)
            await self._check_unique(rule, namespace, name, exclude=object_name(obj))

    async def validate_update(self, kind: str, old_obj: Resource, new_obj: Resource) -> None:
        """Reject a rename onto a name already used by another sibling."""
        rule = self._rules.get(kind)
        if rule is None:
            return

        new_name = display_name(new_obj)
        if new_name.casefold() == display_name(old_obj).casefold():
            return

        namespace = object_namespace(new_obj) or ""
        with trace_operation("validate_update", kind=kind, namespace=namespace):
            await self._check_unique(rule, namespace, new_name, exclude=object_name(new_obj))

    def validate_delete(self, kind: str) -> None:
        """Deletes are always admitted."""
        logger.trace("Admitting delete", kind=kind)

    async def _list(self, kind: ResourceKind, namespace: str | None, field_selector: str | None = None) -> list[Resource]:
        try:
            return await self._store.list(kind, namespace, field_selector=field_selector)
        except StoreError as e:
            raise UnknownFailureError(
                f"Admission could not list {kind}",
                context={"namespace": namespace, "reason": e.reason},
                cause=e,
            ) from e

    async def _check_unique(self, rule: UniqueNameRule, namespace: str, name: str, exclude: str) -> None:
        folded = name.casefold()
        for sibling in await self._list(rule.kind, namespace):
            if object_name(sibling) == exclude or is_being_deleted(sibling):
                continue
            if display_name(sibling).casefold() == folded:
                logger.info(
                    "Rejecting duplicate {} name",
                    rule.resource_type,
                    namespace=namespace,
                    existing=object_name(sibling),
                )
                raise DuplicateNameError(
                    rule.duplicate_message.format(name=name),
                    context={"namespace": namespace, "resource_type": rule.resource_type},
                )

    async def _check_parent(
        self, rule: UniqueNameRule, parent_kind: ResourceKind, namespace: str, name: str
    ) -> None:
        parents = await self._list(parent_kind, None, field_selector=f"metadata.name={namespace}")
        if any(not is_being_deleted(parent) for parent in parents):
            return

        raise OrphanedReferenceError(
            f"{rule.parent_type} '{namespace}' does not exist for {rule.resource_type} '{name}'",
            context={"namespace": namespace, "resource_type": rule.resource_type},
        )
