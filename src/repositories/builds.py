"""Builds: CFBuild objects staging an app package into a droplet."""

from dataclasses import dataclass
from enum import StrEnum

from loguru import logger

from src.authorization.credentials import Credential
from src.core.types import Resource
from src.infrastructure.store.resources import (
    CF_APP,
    CF_BUILD,
    SUCCEEDED_CONDITION,
    find_condition,
    new_resource,
    object_name,
)
from src.repositories.base import NamespacedRepository, Record, new_guid, record_fields

DEFAULT_STAGING_MEMORY_MB = 1024
DEFAULT_STAGING_DISK_MB = 1024


class BuildState(StrEnum):
    STAGING = "STAGING"
    STAGED = "STAGED"
    FAILED = "FAILED"


@dataclass(frozen=True, kw_only=True)
class BuildRecord(Record):
    state: BuildState
    app_guid: str
    package_guid: str
    staging_memory_mb: int
    staging_disk_mb: int
    droplet_guid: str | None = None
    error: str | None = None


class BuildRepository(NamespacedRepository[BuildRecord]):
    kind = CF_BUILD
    resource_type = "Build"

    def to_record(self, obj: Resource) -> BuildRecord:
        spec = obj.get("spec") or {}
        succeeded = find_condition(obj, SUCCEEDED_CONDITION)

        state, error = BuildState.STAGING, None
        if succeeded is not None and succeeded.get("status") == "True":
            state = BuildState.STAGED
        elif succeeded is not None and succeeded.get("status") == "False":
            state = BuildState.FAILED
            error = f"{succeeded.get('reason', '')}: {succeeded.get('message', '')}"

        return BuildRecord(
            state=state,
            app_guid=(spec.get("appRef") or {}).get("name", ""),
            package_guid=(spec.get("packageRef") or {}).get("name", ""),
            staging_memory_mb=int(spec.get("stagingMemoryMB", DEFAULT_STAGING_MEMORY_MB)),
            staging_disk_mb=int(spec.get("stagingDiskMB", DEFAULT_STAGING_DISK_MB)),
            # a successful build produces a droplet with the build's guid
            droplet_guid=object_name(obj) if state is BuildState.STAGED else None,
            error=error,
            **record_fields(obj),
        )

    async def create_build(
        self,
        credential: Credential,
        app_guid: str,
        package_guid: str,
        staging_memory_mb: int = DEFAULT_STAGING_MEMORY_MB,
        staging_disk_mb: int = DEFAULT_STAGING_DISK_MB,
    ) -> BuildRecord:
        """Request staging of a package; the build starts in STAGING."""
        namespace = await self._context.namespace_retriever.namespace_for(
            CF_APP, app_guid, "App"
        )
        guid = new_guid()
        obj = new_resource(
            CF_BUILD,
            guid,
            namespace,
            spec={
                "appRef": {"name": app_guid},
                "packageRef": {"name": package_guid},
                "stagingMemoryMB": staging_memory_mb,
                "stagingDiskMB": staging_disk_mb,
            },
        )

        async with self.caller_store(credential) as store:
            created = await store.create(CF_BUILD, obj)

        logger.info("Created build {}", guid, app_guid=app_guid)
        return self.to_record(created)
