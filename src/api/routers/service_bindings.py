"""/v3/service_credential_bindings endpoints (app bindings only)."""

from fastapi import APIRouter, Response, status

from src.api.dependencies import BaseUrl, CallerCredential, ServiceBindings, parse_filter
from src.api.schemas.payloads import ServiceBindingCreate
from src.api.schemas.resources import ListResponse, ServiceBindingResponse
from src.api.utils.responses import accepted

router = APIRouter(prefix="/v3/service_credential_bindings", tags=["service bindings"])


@router.get("")
async def list_service_bindings(
    credential: CallerCredential,
    bindings: ServiceBindings,
    base_url: BaseUrl,
    app_guids: str | None = None,
    service_instance_guids: str | None = None,
) -> ListResponse[ServiceBindingResponse]:
    records = await bindings.list_service_bindings(
        credential,
        app_guids=parse_filter(app_guids),
        service_instance_guids=parse_filter(service_instance_guids),
    )
    return ListResponse[ServiceBindingResponse].single_page(
        [ServiceBindingResponse.from_record(r, base_url) for r in records],
        f"{base_url}/v3/service_credential_bindings",
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_service_binding(
    payload: ServiceBindingCreate,
    credential: CallerCredential,
    bindings: ServiceBindings,
    base_url: BaseUrl,
) -> ServiceBindingResponse:
    record = await bindings.create_service_binding(
        credential,
        app_guid=payload.relationships.app.data.guid,
        service_instance_guid=payload.relationships.service_instance.data.guid,
        name=payload.name,
    )
    return ServiceBindingResponse.from_record(record, base_url)


@router.get("/{guid}")
async def get_service_binding(
    guid: str, credential: CallerCredential, bindings: ServiceBindings, base_url: BaseUrl
) -> ServiceBindingResponse:
    return ServiceBindingResponse.from_record(await bindings.get(credential, guid), base_url)


@router.delete("/{guid}", status_code=status.HTTP_202_ACCEPTED)
async def delete_service_binding(
    guid: str, credential: CallerCredential, bindings: ServiceBindings, base_url: BaseUrl
) -> Response:
    await bindings.delete(credential, guid)
    return accepted(base_url, "service_credential_binding.delete", guid)
