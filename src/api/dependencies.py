"""FastAPI dependencies for the caller credential and the repositories.

The ``Annotated`` aliases at the bottom keep route signatures short:

    @router.get("/{guid}")
    async def get_app(guid: str, credential: CallerCredential, apps: Apps): ...
"""

from typing import Annotated

from fastapi import Depends, Request

from src.api.container import ServiceContainer
from src.authorization.credentials import Credential
from src.core.context import RequestContext
from src.core.exceptions import MalformedCredentialError
from src.repositories.apps import AppRepository
from src.repositories.builds import BuildRepository
from src.repositories.orgs import OrgRepository
from src.repositories.routes import RouteRepository
from src.repositories.service_bindings import ServiceBindingRepository
from src.repositories.spaces import SpaceRepository


def get_container(request: Request) -> ServiceContainer:
    # Created in src.api.main.create_app
    container: ServiceContainer = request.app.state.container
    return container


def get_credential(request: Request) -> Credential:
    """Credential parsed by the authentication middleware.

    Raises:
        MalformedCredentialError: If the route was reached without one, which
            only happens for paths registered as unauthenticated.
    """
    credential = getattr(request.state, "credential", None) or RequestContext.get_credential()
    if credential is None:
        raise MalformedCredentialError("Authorization header is required")
    return credential


Container = Annotated[ServiceContainer, Depends(get_container)]
CallerCredential = Annotated[Credential, Depends(get_credential)]


def get_org_repository(container: Container) -> OrgRepository:
    return container.orgs


def get_space_repository(container: Container) -> SpaceRepository:
    return container.spaces


def get_app_repository(container: Container) -> AppRepository:
    return container.apps


def get_build_repository(container: Container) -> BuildRepository:
    return container.builds


def get_route_repository(container: Container) -> RouteRepository:
    return container.routes


def get_service_binding_repository(container: Container) -> ServiceBindingRepository:
    return container.service_bindings


Orgs = Annotated[OrgRepository, Depends(get_org_repository)]
Spaces = Annotated[SpaceRepository, Depends(get_space_repository)]
Apps = Annotated[AppRepository, Depends(get_app_repository)]
Builds = Annotated[BuildRepository, Depends(get_build_repository)]
Routes = Annotated[RouteRepository, Depends(get_route_repository)]
ServiceBindings = Annotated[ServiceBindingRepository, Depends(get_service_binding_repository)]


def external_url(container: Container) -> str:
    return container.settings.external_url


BaseUrl = Annotated[str, Depends(external_url)]


def parse_filter(value: str | None) -> list[str] | None:
    """Split a comma separated query filter; None or empty means no filter."""
    if not value:
        return None
    return [item for item in value.split(",") if item]
