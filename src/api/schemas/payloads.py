"""Request bodies accepted by the v3 endpoints."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid")


class RelationshipData(_Payload):
    guid: str = Field(..., min_length=1)


class ToOneRelationship(_Payload):
    data: RelationshipData


class Metadata(_Payload):
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)


class MetadataPatch(_Payload):
    """Labels and annotations to change. A null value removes the key."""

    labels: dict[str, str | None] = Field(default_factory=dict)
    annotations: dict[str, str | None] = Field(default_factory=dict)


class MetadataPatchPayload(_Payload):
    metadata: MetadataPatch


class OrgCreate(_Payload):
    name: str = Field(..., min_length=1, max_length=255, examples=["my-org"])
    metadata: Metadata = Field(default_factory=Metadata)


class SpaceRelationships(_Payload):
    organization: ToOneRelationship


class SpaceCreate(_Payload):
    name: str = Field(..., min_length=1, max_length=255, examples=["dev"])
    relationships: SpaceRelationships
    metadata: Metadata = Field(default_factory=Metadata)


class AppRelationships(_Payload):
    space: ToOneRelationship


class AppCreate(_Payload):
    name: str = Field(..., min_length=1, max_length=255, examples=["my-app"])
    relationships: AppRelationships
    lifecycle: dict[str, Any] | None = None
    environment_variables: dict[str, str] = Field(default_factory=dict)
    metadata: Metadata = Field(default_factory=Metadata)


class AppPatch(_Payload):
    lifecycle: dict[str, Any] | None = None
    environment_variables: dict[str, str] | None = None
    metadata: MetadataPatch = Field(default_factory=MetadataPatch)


class EnvironmentVariablesPatch(_Payload):
    """Variables to set. A null value removes the variable."""

    var: dict[str, str | None]


class CurrentDropletPatch(_Payload):
    data: RelationshipData


class BuildRelationships(_Payload):
    app: ToOneRelationship


class BuildCreate(_Payload):
    package: RelationshipData
    relationships: BuildRelationships
    staging_memory_in_mb: int = Field(default=1024, gt=0)
    staging_disk_in_mb: int = Field(default=1024, gt=0)


class RouteRelationships(_Payload):
    space: ToOneRelationship
    domain: ToOneRelationship


class RouteCreate(_Payload):
    host: str = Field(..., min_length=1, max_length=63)
    path: str = Field(default="", pattern=r"^(/.*)?$")
    relationships: RouteRelationships
    metadata: Metadata = Field(default_factory=Metadata)


class ServiceBindingRelationships(_Payload):
    app: ToOneRelationship
    service_instance: ToOneRelationship


class ServiceBindingCreate(_Payload):
    type: Literal["app"]
    name: str | None = None
    relationships: ServiceBindingRelationships
