"""Routes: CFRoute objects mapping host and path on a domain into a space."""

from collections.abc import Collection
from dataclasses import dataclass

from loguru import logger

from src.authorization.credentials import Credential
from src.core.types import Resource
from src.infrastructure.store.resources import CF_ROUTE, new_resource, object_namespace
from src.repositories.base import (
    NamespacedRepository,
    Record,
    matches,
    new_guid,
    record_fields,
)


@dataclass(frozen=True, kw_only=True)
class RouteRecord(Record):
    host: str
    path: str
    domain_guid: str
    space_guid: str


class RouteRepository(NamespacedRepository[RouteRecord]):
    kind = CF_ROUTE
    resource_type = "Route"

    def to_record(self, obj: Resource) -> RouteRecord:
        spec = obj.get("spec") or {}
        return RouteRecord(
            host=spec.get("host", ""),
            path=spec.get("path", ""),
            domain_guid=(spec.get("domainRef") or {}).get("name", ""),
            space_guid=object_namespace(obj) or "",
            **record_fields(obj),
        )

    async def create_route(
        self,
        credential: Credential,
        host: str,
        path: str,
        space_guid: str,
        domain_guid: str,
        labels: dict[str, str] | None = None,
        annotations: dict[str, str] | None = None,
    ) -> RouteRecord:
        guid = new_guid()
        obj = new_resource(
            CF_ROUTE,
            guid,
            space_guid,
            spec={
                "host": host.lower(),
                "path": path,
                "domainRef": {"name": domain_guid},
            },
            labels=labels,
            annotations=annotations,
        )

        async with self.caller_store(credential) as store:
            created = await store.create(CF_ROUTE, obj)

        logger.info("Created route {}", guid, host=host, space_guid=space_guid)
        return self.to_record(created)

    async def list_routes(
        self,
        credential: Credential,
        space_guids: Collection[str] | None = None,
        hosts: Collection[str] | None = None,
    ) -> list[RouteRecord]:
        authorized = await self._permissions.authorized_space_namespaces(credential)
        namespaces = [ns for ns in authorized if matches(ns, space_guids)]

        routes = [
            self.to_record(route)
            for route in await self.list_in_namespaces(credential, namespaces)
        ]
        return sorted(
            (r for r in routes if matches(r.host, hosts)),
            key=lambda r: (r.host, r.path),
        )
