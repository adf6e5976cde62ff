"""/v3/routes endpoints."""

from fastapi import APIRouter, Response, status

from src.api.dependencies import BaseUrl, CallerCredential, Routes, parse_filter
from src.api.schemas.payloads import RouteCreate
from src.api.schemas.resources import ListResponse, RouteResponse
from src.api.utils.responses import accepted

router = APIRouter(prefix="/v3/routes", tags=["routes"])


@router.get("")
async def list_routes(
    credential: CallerCredential,
    routes: Routes,
    base_url: BaseUrl,
    space_guids: str | None = None,
    hosts: str | None = None,
) -> ListResponse[RouteResponse]:
    records = await routes.list_routes(
        credential, space_guids=parse_filter(space_guids), hosts=parse_filter(hosts)
    )
    return ListResponse[RouteResponse].single_page(
        [RouteResponse.from_record(r, base_url) for r in records],
        f"{base_url}/v3/routes",
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_route(
    payload: RouteCreate, credential: CallerCredential, routes: Routes, base_url: BaseUrl
) -> RouteResponse:
    record = await routes.create_route(
        credential,
        host=payload.host,
        path=payload.path,
        space_guid=payload.relationships.space.data.guid,
        domain_guid=payload.relationships.domain.data.guid,
        labels=payload.metadata.labels,
        annotations=payload.metadata.annotations,
    )
    return RouteResponse.from_record(record, base_url)


@router.get("/{guid}")
async def get_route(
    guid: str, credential: CallerCredential, routes: Routes, base_url: BaseUrl
) -> RouteResponse:
    return RouteResponse.from_record(await routes.get(credential, guid), base_url)


@router.delete("/{guid}", status_code=status.HTTP_202_ACCEPTED)
async def delete_route(
    guid: str, credential: CallerCredential, routes: Routes, base_url: BaseUrl
) -> Response:
    await routes.delete(credential, guid)
    return accepted(base_url, "route.delete", guid)
