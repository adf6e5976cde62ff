"""Service credential bindings: CFServiceBinding objects linking apps to instances."""

from collections.abc import Collection
from dataclasses import dataclass

from loguru import logger

from src.authorization.credentials import Credential
from src.core.types import Resource
from src.infrastructure.store.resources import (
    BINDING_SECRET_AVAILABLE_CONDITION,
    CF_APP,
    CF_GROUP,
    CF_SERVICE_BINDING,
    CF_VERSION,
    ObjectRef,
    is_condition_true,
    new_resource,
    object_namespace,
)
from src.repositories.base import (
    NamespacedRepository,
    Record,
    matches,
    new_guid,
    record_fields,
)


@dataclass(frozen=True, kw_only=True)
class ServiceBindingRecord(Record):
    name: str | None
    app_guid: str
    service_instance_guid: str
    space_guid: str
    ready: bool


class ServiceBindingRepository(NamespacedRepository[ServiceBindingRecord]):
    kind = CF_SERVICE_BINDING
    resource_type = "Service Credential Binding"

    def to_record(self, obj: Resource) -> ServiceBindingRecord:
        spec = obj.get("spec") or {}
        return ServiceBindingRecord(
            name=spec.get("displayName") or None,
            app_guid=(spec.get("appRef") or {}).get("name", ""),
            service_instance_guid=(spec.get("service") or {}).get("name", ""),
            space_guid=object_namespace(obj) or "",
            ready=is_condition_true(obj, BINDING_SECRET_AVAILABLE_CONDITION),
            **record_fields(obj),
        )

    async def create_service_binding(
        self,
        credential: Credential,
        app_guid: str,
        service_instance_guid: str,
        name: str | None = None,
    ) -> ServiceBindingRecord:
        """Bind an app to a service instance and wait for the binding secret."""
        namespace = await self._context.namespace_retriever.namespace_for(
            CF_APP, app_guid, "App"
        )
        guid = new_guid()
        spec: dict[str, object] = {
            "appRef": {"name": app_guid},
            "service": {
                "apiVersion": f"{CF_GROUP}/{CF_VERSION}",
                "kind": "CFServiceInstance",
                "name": service_instance_guid,
            },
        }
        if name:
            spec["displayName"] = name
        obj = new_resource(CF_SERVICE_BINDING, guid, namespace, spec=spec)

        async with self.caller_store(credential) as store:
            await store.create(CF_SERVICE_BINDING, obj)
            bound = await self._awaiter.await_condition(
                store,
                ObjectRef(CF_SERVICE_BINDING, guid, namespace),
                BINDING_SECRET_AVAILABLE_CONDITION,
            )

        logger.info(
            "Created service binding {}",
            guid,
            app_guid=app_guid,
            service_instance_guid=service_instance_guid,
        )
        return self.to_record(bound)

    async def list_service_bindings(
        self,
        credential: Credential,
        app_guids: Collection[str] | None = None,
        service_instance_guids: Collection[str] | None = None,
    ) -> list[ServiceBindingRecord]:
        authorized = await self._permissions.authorized_space_namespaces(credential)
        bindings = [
            self.to_record(obj)
            for obj in await self.list_in_namespaces(credential, authorized)
        ]
        return [
            b
            for b in bindings
            if matches(b.app_guid, app_guids)
            and matches(b.service_instance_guid, service_instance_guids)
        ]
