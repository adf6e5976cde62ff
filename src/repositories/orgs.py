"""Organizations: CFOrg objects in the root namespace.

Each organization owns a namespace of the same name (its guid), created by
the reconciler before it reports the organization Ready.
"""

from collections.abc import Collection
from dataclasses import dataclass

from loguru import logger

from src.authorization.credentials import Credential
from src.core.exceptions import NotFoundError
from src.core.types import Resource
from src.infrastructure.store.client import StoreError, from_store_error
from src.infrastructure.store.resources import (
    CF_ORG,
    READY_CONDITION,
    ObjectRef,
    display_name,
    is_condition_true,
    new_resource,
    object_name,
)
from src.repositories.base import (
    NamespacedRepository,
    Record,
    RepositoryContext,
    matches,
    new_guid,
    record_fields,
)


@dataclass(frozen=True, kw_only=True)
class OrgRecord(Record):
    name: str
    suspended: bool = False


class OrgRepository(NamespacedRepository[OrgRecord]):
    kind = CF_ORG
    resource_type = "Org"

    def __init__(self, context: RepositoryContext, root_namespace: str) -> None:
        super().__init__(context)
        self._root_namespace = root_namespace

    def to_record(self, obj: Resource) -> OrgRecord:
        return OrgRecord(
            name=display_name(obj),
            suspended=bool((obj.get("spec") or {}).get("suspended", False)),
            **record_fields(obj),
        )

    async def namespace_of(self, guid: str) -> str:
        return self._root_namespace

    async def create_org(
        self,
        credential: Credential,
        name: str,
        labels: dict[str, str] | None = None,
        annotations: dict[str, str] | None = None,
    ) -> OrgRecord:
        """Create an organization and wait until it is Ready."""
        guid = new_guid()
        obj = new_resource(
            CF_ORG,
            guid,
            self._root_namespace,
            spec={"displayName": name},
            labels=labels,
            annotations=annotations,
        )

        async with self.caller_store(credential) as store:
            await store.create(CF_ORG, obj)
            ready = await self._awaiter.await_condition(
                store, ObjectRef(CF_ORG, guid, self._root_namespace), READY_CONDITION
            )

        logger.info("Created org {}", guid, org_name=name)
        return self.to_record(ready)

    async def list_orgs(
        self,
        credential: Credential,
        names: Collection[str] | None = None,
        guids: Collection[str] | None = None,
    ) -> list[OrgRecord]:
        """Ready organizations whose namespace the caller holds a role binding in."""
        authorized = await self._permissions.authorized_org_namespaces(credential)

        try:
            orgs = await self._privileged.list(CF_ORG, self._root_namespace)
        except StoreError as e:
            raise from_store_error(e, self.resource_type) from e

        records = [
            self.to_record(org)
            for org in orgs
            if object_name(org) in authorized
            and is_condition_true(org, READY_CONDITION)
            and matches(display_name(org), names)
            and matches(object_name(org), guids)
        ]
        return sorted(records, key=lambda r: r.name)

    async def get(self, credential: Credential, guid: str) -> OrgRecord:
        """Visible organization by guid.

        Organization users hold no role binding in the root namespace, so
        visibility is decided by the authorized org namespaces instead of a
        direct read.
        """
        orgs = await self.list_orgs(credential, guids=[guid])
        if not orgs:
            raise NotFoundError("Org not found", context={"guid": guid})
        return orgs[0]

    async def patch_metadata(
        self,
        credential: Credential,
        guid: str,
        labels: dict[str, str | None] | None = None,
        annotations: dict[str, str | None] | None = None,
    ) -> OrgRecord:
        await self.get(credential, guid)
        return await super().patch_metadata(credential, guid, labels, annotations)

    async def delete(self, credential: Credential, guid: str) -> None:
        await self.get(credential, guid)
        await super().delete(credential, guid)
