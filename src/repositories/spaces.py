"""Spaces: CFSpace objects inside their organization's namespace."""

from collections.abc import Collection
from dataclasses import dataclass

from loguru import logger

from src.authorization.credentials import Credential
from src.core.exceptions import NotFoundError, ValidationError
from src.core.types import Resource
from src.infrastructure.store.resources import (
    CF_SPACE,
    READY_CONDITION,
    ObjectRef,
    display_name,
    is_condition_true,
    new_resource,
    object_name,
    object_namespace,
)
from src.repositories.base import (
    NamespacedRepository,
    Record,
    RepositoryContext,
    matches,
    new_guid,
    record_fields,
)
from src.repositories.orgs import OrgRepository


@dataclass(frozen=True, kw_only=True)
class SpaceRecord(Record):
    name: str
    organization_guid: str


class SpaceRepository(NamespacedRepository[SpaceRecord]):
    kind = CF_SPACE
    resource_type = "Space"

    def __init__(self, context: RepositoryContext, orgs: OrgRepository) -> None:
        super().__init__(context)
        self._orgs = orgs

    def to_record(self, obj: Resource) -> SpaceRecord:
        return SpaceRecord(
            name=display_name(obj),
            organization_guid=object_namespace(obj) or "",
            **record_fields(obj),
        )

    async def create_space(
        self,
        credential: Credential,
        name: str,
        organization_guid: str,
        labels: dict[str, str] | None = None,
        annotations: dict[str, str] | None = None,
    ) -> SpaceRecord:
        """Create a space in a visible organization and wait until it is Ready.

        Raises:
            ValidationError: If the organization is not visible to the caller.
        """
        try:
            await self._orgs.get(credential, organization_guid)
        except NotFoundError as e:
            raise ValidationError(
                "Invalid organization. Ensure the organization exists and you have access to it.",
                context={"organization_guid": organization_guid},
                cause=e,
            ) from e

        guid = new_guid()
        obj = new_resource(
            CF_SPACE,
            guid,
            organization_guid,
            spec={"displayName": name},
            labels=labels,
            annotations=annotations,
        )

        async with self.caller_store(credential) as store:
            await store.create(CF_SPACE, obj)
            ready = await self._awaiter.await_condition(
                store, ObjectRef(CF_SPACE, guid, organization_guid), READY_CONDITION
            )

        logger.info("Created space {}", guid, space_name=name, org_guid=organization_guid)
        return self.to_record(ready)

    async def list_spaces(
        self,
        credential: Credential,
        names: Collection[str] | None = None,
        organization_guids: Collection[str] | None = None,
        guids: Collection[str] | None = None,
    ) -> list[SpaceRecord]:
        """Ready spaces the caller may see, optionally filtered."""
        org_namespaces = await self._permissions.authorized_org_namespaces(credential)
        space_namespaces = await self._permissions.authorized_space_namespaces(credential)

        spaces = await self.list_in_namespaces(
            credential, [ns for ns in org_namespaces if matches(ns, organization_guids)]
        )

        records = [
            self.to_record(space)
            for space in spaces
            if object_name(space) in space_namespaces
            and is_condition_true(space, READY_CONDITION)
            and matches(display_name(space), names)
            and matches(object_name(space), guids)
        ]
        return sorted(records, key=lambda r: r.name)
