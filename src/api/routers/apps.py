"""/v3/apps endpoints, including environment, droplet assignment and start/stop actions."""

from fastapi import APIRouter, Response, status

from src.api.dependencies import Apps, BaseUrl, CallerCredential, parse_filter
from src.api.schemas.payloads import (
    AppCreate,
    AppPatch,
    CurrentDropletPatch,
    EnvironmentVariablesPatch,
)
from src.api.schemas.resources import (
    AppEnvResponse,
    AppEnvVarsResponse,
    AppResponse,
    CurrentDropletResponse,
    ListResponse,
)
from src.api.utils.responses import accepted
from src.repositories.apps import DesiredState

router = APIRouter(prefix="/v3/apps", tags=["apps"])


@router.get("")
async def list_apps(
    credential: CallerCredential,
    apps: Apps,
    base_url: BaseUrl,
    names: str | None = None,
    guids: str | None = None,
    space_guids: str | None = None,
) -> ListResponse[AppResponse]:
    records = await apps.list_apps(
        credential,
        names=parse_filter(names),
        guids=parse_filter(guids),
        space_guids=parse_filter(space_guids),
    )
    return ListResponse[AppResponse].single_page(
        [AppResponse.from_record(r, base_url) for r in records],
        f"{base_url}/v3/apps",
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_app(
    payload: AppCreate, credential: CallerCredential, apps: Apps, base_url: BaseUrl
) -> AppResponse:
    record = await apps.create_app(
        credential,
        payload.name,
        payload.relationships.space.data.guid,
        lifecycle=payload.lifecycle,
        environment_variables=payload.environment_variables,
        labels=payload.metadata.labels,
        annotations=payload.metadata.annotations,
    )
    return AppResponse.from_record(record, base_url)


@router.get("/{guid}")
async def get_app(
    guid: str, credential: CallerCredential, apps: Apps, base_url: BaseUrl
) -> AppResponse:
    return AppResponse.from_record(await apps.get(credential, guid), base_url)


@router.patch("/{guid}")
async def patch_app(
    guid: str,
    payload: AppPatch,
    credential: CallerCredential,
    apps: Apps,
    base_url: BaseUrl,
) -> AppResponse:
    record = await apps.patch_app(
        credential,
        guid,
        lifecycle=payload.lifecycle,
        environment_variables=payload.environment_variables,
        labels=payload.metadata.labels,
        annotations=payload.metadata.annotations,
    )
    return AppResponse.from_record(record, base_url)


@router.get("/{guid}/env")
async def get_app_env(guid: str, credential: CallerCredential, apps: Apps) -> AppEnvResponse:
    return AppEnvResponse.from_record(await apps.get_env(credential, guid))


@router.patch("/{guid}/environment_variables")
async def patch_app_environment_variables(
    guid: str,
    payload: EnvironmentVariablesPatch,
    credential: CallerCredential,
    apps: Apps,
    base_url: BaseUrl,
) -> AppEnvVarsResponse:
    record = await apps.patch_env_vars(credential, guid, payload.var)
    return AppEnvVarsResponse.from_record(record, base_url)


@router.delete("/{guid}", status_code=status.HTTP_202_ACCEPTED)
async def delete_app(
    guid: str, credential: CallerCredential, apps: Apps, base_url: BaseUrl
) -> Response:
    await apps.delete(credential, guid)
    return accepted(base_url, "app.delete", guid)


@router.patch("/{guid}/relationships/current_droplet")
async def set_current_droplet(
    guid: str,
    payload: CurrentDropletPatch,
    credential: CallerCredential,
    apps: Apps,
    base_url: BaseUrl,
) -> CurrentDropletResponse:
    record = await apps.set_current_droplet(credential, guid, payload.data.guid)
    return CurrentDropletResponse.from_record(record, base_url)


@router.post("/{guid}/actions/start")
async def start_app(
    guid: str, credential: CallerCredential, apps: Apps, base_url: BaseUrl
) -> AppResponse:
    record = await apps.set_desired_state(credential, guid, DesiredState.STARTED)
    return AppResponse.from_record(record, base_url)


@router.post("/{guid}/actions/stop")
async def stop_app(
    guid: str, credential: CallerCredential, apps: Apps, base_url: BaseUrl
) -> AppResponse:
    record = await apps.set_desired_state(credential, guid, DesiredState.STOPPED)
    return AppResponse.from_record(record, base_url)
