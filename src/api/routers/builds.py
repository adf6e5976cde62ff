"""/v3/builds endpoints."""

from fastapi import APIRouter, status

from src.api.dependencies import BaseUrl, Builds, CallerCredential
from src.api.schemas.payloads import BuildCreate
from src.api.schemas.resources import BuildResponse

router = APIRouter(prefix="/v3/builds", tags=["builds"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_build(
    payload: BuildCreate, credential: CallerCredential, builds: Builds, base_url: BaseUrl
) -> BuildResponse:
    record = await builds.create_build(
        credential,
        app_guid=payload.relationships.app.data.guid,
        package_guid=payload.package.guid,
        staging_memory_mb=payload.staging_memory_in_mb,
        staging_disk_mb=payload.staging_disk_in_mb,
    )
    return BuildResponse.from_record(record, base_url)


@router.get("/{guid}")
async def get_build(
    guid: str, credential: CallerCredential, builds: Builds, base_url: BaseUrl
) -> BuildResponse:
    return BuildResponse.from_record(await builds.get(credential, guid), base_url)
