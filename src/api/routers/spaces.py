"""/v3/spaces endpoints."""

from fastapi import APIRouter, Response, status

from src.api.dependencies import BaseUrl, CallerCredential, Spaces, parse_filter
from src.api.schemas.payloads import MetadataPatchPayload, SpaceCreate
from src.api.schemas.resources import ListResponse, SpaceResponse
from src.api.utils.responses import accepted

router = APIRouter(prefix="/v3/spaces", tags=["spaces"])


@router.get("")
async def list_spaces(
    credential: CallerCredential,
    spaces: Spaces,
    base_url: BaseUrl,
    names: str | None = None,
    organization_guids: str | None = None,
    guids: str | None = None,
) -> ListResponse[SpaceResponse]:
    records = await spaces.list_spaces(
        credential,
        names=parse_filter(names),
        organization_guids=parse_filter(organization_guids),
        guids=parse_filter(guids),
    )
    return ListResponse[SpaceResponse].single_page(
        [SpaceResponse.from_record(r, base_url) for r in records],
        f"{base_url}/v3/spaces",
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_space(
    payload: SpaceCreate, credential: CallerCredential, spaces: Spaces, base_url: BaseUrl
) -> SpaceResponse:
    record = await spaces.create_space(
        credential,
        payload.name,
        payload.relationships.organization.data.guid,
        labels=payload.metadata.labels,
        annotations=payload.metadata.annotations,
    )
    return SpaceResponse.from_record(record, base_url)


@router.get("/{guid}")
async def get_space(
    guid: str, credential: CallerCredential, spaces: Spaces, base_url: BaseUrl
) -> SpaceResponse:
    return SpaceResponse.from_record(await spaces.get(credential, guid), base_url)


@router.patch("/{guid}")
async def patch_space(
    guid: str,
    payload: MetadataPatchPayload,
    credential: CallerCredential,
    spaces: Spaces,
    base_url: BaseUrl,
) -> SpaceResponse:
    record = await spaces.patch_metadata(
        credential, guid, payload.metadata.labels, payload.metadata.annotations
    )
    return SpaceResponse.from_record(record, base_url)


@router.delete("/{guid}", status_code=status.HTTP_202_ACCEPTED)
async def delete_space(
    guid: str, credential: CallerCredential, spaces: Spaces, base_url: BaseUrl
) -> Response:
    await spaces.delete(credential, guid)
    return accepted(base_url, "space.delete", guid)
