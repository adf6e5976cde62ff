"""Response bodies of the v3 endpoints, built from repository records.

Every resource carries ``links`` with absolute URLs under the configured
external URL. Listing endpoints wrap resources in a single-page
``ListResponse``.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

from src.repositories.apps import (
    AppEnvRecord,
    AppEnvVarsRecord,
    AppRecord,
    CurrentDropletRecord,
)
from src.repositories.base import Record
from src.repositories.builds import BuildRecord, BuildState
from src.repositories.orgs import OrgRecord
from src.repositories.routes import RouteRecord
from src.repositories.service_bindings import ServiceBindingRecord
from src.repositories.spaces import SpaceRecord


class Link(BaseModel):
    href: str


class GuidRef(BaseModel):
    guid: str


class Relationship(BaseModel):
    data: GuidRef | None


class Metadata(BaseModel):
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)


class ResourceResponse(BaseModel):
    guid: str
    created_at: datetime | None
    updated_at: datetime | None
    metadata: Metadata
    links: dict[str, Link]


def _common(record: Record, self_href: str, **links: str) -> dict[str, object]:
    return {
        "guid": record.guid,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
        "metadata": Metadata(labels=record.labels, annotations=record.annotations),
        "links": {"self": Link(href=self_href)} | {k: Link(href=v) for k, v in links.items()},
    }


def _to_one(guid: str | None) -> Relationship:
    return Relationship(data=GuidRef(guid=guid) if guid else None)


class OrgResponse(ResourceResponse):
    name: str
    suspended: bool
    relationships: dict[str, Relationship] = Field(default_factory=dict)

    @classmethod
    def from_record(cls, record: OrgRecord, base_url: str) -> "OrgResponse":
        return cls(
            name=record.name,
            suspended=record.suspended,
            **_common(record, f"{base_url}/v3/organizations/{record.guid}"),
        )


class SpaceResponse(ResourceResponse):
    name: str
    relationships: dict[str, Relationship]

    @classmethod
    def from_record(cls, record: SpaceRecord, base_url: str) -> "SpaceResponse":
        return cls(
            name=record.name,
            relationships={"organization": _to_one(record.organization_guid)},
            **_common(
                record,
                f"{base_url}/v3/spaces/{record.guid}",
                organization=f"{base_url}/v3/organizations/{record.organization_guid}",
            ),
        )


class AppResponse(ResourceResponse):
    name: str
    state: str
    lifecycle: dict[str, object]
    relationships: dict[str, Relationship]

    @classmethod
    def from_record(cls, record: AppRecord, base_url: str) -> "AppResponse":
        app_url = f"{base_url}/v3/apps/{record.guid}"
        return cls(
            name=record.name,
            state=record.state.value,
            lifecycle=record.lifecycle,
            relationships={"space": _to_one(record.space_guid)},
            **_common(
                record,
                app_url,
                space=f"{base_url}/v3/spaces/{record.space_guid}",
                current_droplet=f"{app_url}/droplets/current",
                environment_variables=f"{app_url}/environment_variables",
                start=f"{app_url}/actions/start",
                stop=f"{app_url}/actions/stop",
            ),
        )


class AppEnvVarsResponse(BaseModel):
    var: dict[str, str]
    links: dict[str, Link]

    @classmethod
    def from_record(cls, record: AppEnvVarsRecord, base_url: str) -> "AppEnvVarsResponse":
        app_url = f"{base_url}/v3/apps/{record.app_guid}"
        return cls(
            var=record.environment_variables,
            links={
                "self": Link(href=f"{app_url}/environment_variables"),
                "app": Link(href=app_url),
            },
        )


class AppEnvResponse(BaseModel):
    staging_env_json: dict[str, object] = Field(default_factory=dict)
    running_env_json: dict[str, object] = Field(default_factory=dict)
    environment_variables: dict[str, str]
    system_env_json: dict[str, object]
    application_env_json: dict[str, object] = Field(default_factory=dict)

    @classmethod
    def from_record(cls, record: AppEnvRecord) -> "AppEnvResponse":
        return cls(
            environment_variables=record.environment_variables,
            system_env_json=record.system_env,
        )


class CurrentDropletResponse(BaseModel):
    data: GuidRef
    links: dict[str, Link]

    @classmethod
    def from_record(
        cls, record: CurrentDropletRecord, base_url: str
    ) -> "CurrentDropletResponse":
        app_url = f"{base_url}/v3/apps/{record.app_guid}"
        return cls(
            data=GuidRef(guid=record.droplet_guid),
            links={
                "self": Link(href=f"{app_url}/relationships/current_droplet"),
                "related": Link(href=f"{app_url}/droplets/current"),
            },
        )


class BuildResponse(ResourceResponse):
    state: BuildState
    staging_memory_in_mb: int
    staging_disk_in_mb: int
    error: str | None
    package: GuidRef
    droplet: GuidRef | None
    relationships: dict[str, Relationship]

    @classmethod
    def from_record(cls, record: BuildRecord, base_url: str) -> "BuildResponse":
        return cls(
            state=record.state,
            staging_memory_in_mb=record.staging_memory_mb,
            staging_disk_in_mb=record.staging_disk_mb,
            error=record.error,
            package=GuidRef(guid=record.package_guid),
            droplet=GuidRef(guid=record.droplet_guid) if record.droplet_guid else None,
            relationships={"app": _to_one(record.app_guid)},
            **_common(
                record,
                f"{base_url}/v3/builds/{record.guid}",
                app=f"{base_url}/v3/apps/{record.app_guid}",
            ),
        )


class RouteResponse(ResourceResponse):
    host: str
    path: str
    relationships: dict[str, Relationship]

    @classmethod
    def from_record(cls, record: RouteRecord, base_url: str) -> "RouteResponse":
        return cls(
            host=record.host,
            path=record.path,
            relationships={
                "space": _to_one(record.space_guid),
                "domain": _to_one(record.domain_guid),
            },
            **_common(
                record,
                f"{base_url}/v3/routes/{record.guid}",
                space=f"{base_url}/v3/spaces/{record.space_guid}",
                domain=f"{base_url}/v3/domains/{record.domain_guid}",
            ),
        )


class LastOperation(BaseModel):
    type: str = "create"
    state: str


class ServiceBindingResponse(ResourceResponse):
    type: str = "app"
    name: str | None
    last_operation: LastOperation
    relationships: dict[str, Relationship]

    @classmethod
    def from_record(
        cls, record: ServiceBindingRecord, base_url: str
    ) -> "ServiceBindingResponse":
        return cls(
            name=record.name,
            last_operation=LastOperation(
                state="succeeded" if record.ready else "in progress"
            ),
            relationships={
                "app": _to_one(record.app_guid),
                "service_instance": _to_one(record.service_instance_guid),
            },
            **_common(
                record,
                f"{base_url}/v3/service_credential_bindings/{record.guid}",
                app=f"{base_url}/v3/apps/{record.app_guid}",
                service_instance=(
                    f"{base_url}/v3/service_instances/{record.service_instance_guid}"
                ),
            ),
        )


class Pagination(BaseModel):
    total_results: int
    total_pages: int
    first: Link
    last: Link
    next: Link | None = None
    previous: Link | None = None


ResourceT = TypeVar("ResourceT", bound=BaseModel)


class ListResponse(BaseModel, Generic[ResourceT]):
    pagination: Pagination
    resources: list[ResourceT]

    @classmethod
    def single_page(
        cls, resources: Sequence[ResourceT], collection_url: str
    ) -> "ListResponse[ResourceT]":
        page = Link(href=f"{collection_url}?page=1")
        return cls(
            pagination=Pagination(
                total_results=len(resources),
                total_pages=1,
                first=page,
                last=page,
            ),
            resources=list(resources),
        )


class WhoAmIResponse(BaseModel):
    name: str
    kind: str
