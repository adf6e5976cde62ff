"""/v3/organizations endpoints."""

from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Response, status

from src.api.constants import WARNINGS_HEADER
from src.api.dependencies import BaseUrl, CallerCredential, Container, Orgs, parse_filter
from src.api.schemas.payloads import MetadataPatchPayload, OrgCreate
from src.api.schemas.resources import ListResponse, OrgResponse
from src.api.utils.responses import accepted
from src.authorization.credentials import ClientCertificate, Credential
from src.authorization.identity import load_client_certificate

router = APIRouter(prefix="/v3/organizations", tags=["organizations"])

CERTIFICATE_WARNING = (
    "Warning: The client certificate you provided for user authentication expires "
    "at {not_after}, which exceeds the recommended validity duration of {duration}. "
    "Ask your platform provider to issue you a short-lived certificate credential or "
    "to configure your authentication to generate short-lived credentials automatically."
)


def _format_duration(seconds: int) -> str:
    hours, rest = divmod(seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours}h{minutes}m{seconds}s"


def certificate_warning(
    credential: Credential, warning_seconds: int, now: datetime | None = None
) -> str | None:
    """Warning text for client certificates valid longer than recommended."""
    if not isinstance(credential, ClientCertificate):
        return None
    not_after = load_client_certificate(credential).not_valid_after_utc
    now = now or datetime.now(UTC)
    if not_after - now <= timedelta(seconds=warning_seconds):
        return None
    return CERTIFICATE_WARNING.format(
        not_after=not_after.strftime("%Y-%m-%dT%H:%M:%SZ"),
        duration=_format_duration(warning_seconds),
    )


@router.get("")
async def list_orgs(
    response: Response,
    credential: CallerCredential,
    orgs: Orgs,
    container: Container,
    base_url: BaseUrl,
    names: str | None = None,
    guids: str | None = None,
) -> ListResponse[OrgResponse]:
    records = await orgs.list_orgs(credential, parse_filter(names), parse_filter(guids))

    warning = certificate_warning(
        credential, container.settings.auth_config.certificate_expiration_warning_seconds
    )
    if warning:
        response.headers[WARNINGS_HEADER] = warning

    return ListResponse[OrgResponse].single_page(
        [OrgResponse.from_record(r, base_url) for r in records],
        f"{base_url}/v3/organizations",
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_org(
    payload: OrgCreate, credential: CallerCredential, orgs: Orgs, base_url: BaseUrl
) -> OrgResponse:
    record = await orgs.create_org(
        credential,
        payload.name,
        labels=payload.metadata.labels,
        annotations=payload.metadata.annotations,
    )
    return OrgResponse.from_record(record, base_url)


@router.get("/{guid}")
async def get_org(
    guid: str, credential: CallerCredential, orgs: Orgs, base_url: BaseUrl
) -> OrgResponse:
    return OrgResponse.from_record(await orgs.get(credential, guid), base_url)


@router.patch("/{guid}")
async def patch_org(
    guid: str,
    payload: MetadataPatchPayload,
    credential: CallerCredential,
    orgs: Orgs,
    base_url: BaseUrl,
) -> OrgResponse:
    record = await orgs.patch_metadata(
        credential, guid, payload.metadata.labels, payload.metadata.annotations
    )
    return OrgResponse.from_record(record, base_url)


@router.delete("/{guid}", status_code=status.HTTP_202_ACCEPTED)
async def delete_org(
    guid: str, credential: CallerCredential, orgs: Orgs, base_url: BaseUrl
) -> Response:
    await orgs.delete(credential, guid)
    return accepted(base_url, "org.delete", guid)
