"""Service wiring for the HTTP application.

``ServiceContainer`` builds every long-lived collaborator once per
application: the identity resolver with its cache, the permission resolver,
the condition awaiter and one repository per entity. Routers reach it
through ``request.app.state.container``.
"""

from dataclasses import dataclass

from loguru import logger

from src.authorization.identity import (
    CachingIdentityResolver,
    CertificateInspector,
    CredentialIdentityResolver,
    TokenReviewer,
)
from src.authorization.permissions import NamespacePermissions
from src.core.config import Settings
from src.infrastructure.store.factory import StoreBackend
from src.repositories.apps import AppRepository
from src.repositories.base import NamespaceRetriever, RepositoryContext
from src.repositories.builds import BuildRepository
from src.repositories.conditions import ConditionAwaiter
from src.repositories.orgs import OrgRepository
from src.repositories.routes import RouteRepository
from src.repositories.service_bindings import ServiceBindingRepository
from src.repositories.spaces import SpaceRepository
from src.webhooks.uniqueness import UniquenessGuard


@dataclass
class ServiceContainer:
    """Long-lived services shared by all requests."""

    settings: Settings
    backend: StoreBackend
    certificate_inspector: CertificateInspector
    identity_resolver: CachingIdentityResolver
    permissions: NamespacePermissions
    uniqueness_guard: UniquenessGuard
    orgs: OrgRepository
    spaces: SpaceRepository
    apps: AppRepository
    builds: BuildRepository
    routes: RouteRepository
    service_bindings: ServiceBindingRepository

    async def aclose(self) -> None:
        await self.backend.aclose()


def build_container(settings: Settings, backend: StoreBackend) -> ServiceContainer:
    """Wire the services for ``backend`` according to ``settings``.

    When the backend is the in-process store, the uniqueness guard is
    installed as its admission hook. A real store calls the guard through
    the admission endpoint instead.
    """
    store_config = settings.store_config
    auth_config = settings.auth_config

    inspector = CertificateInspector.from_pem_file(auth_config.client_ca_cert_path)
    identity_resolver = CachingIdentityResolver(
        CredentialIdentityResolver(TokenReviewer(backend.privileged), inspector),
        ttl_seconds=auth_config.identity_cache_ttl_seconds,
    )
    permissions = NamespacePermissions(
        backend.privileged,
        backend.user_clients,
        identity_resolver,
        max_concurrent_checks=store_config.max_concurrent_permission_checks,
    )
    context = RepositoryContext(
        privileged_store=backend.privileged,
        user_clients=backend.user_clients,
        permissions=permissions,
        awaiter=ConditionAwaiter(store_config.create_timeout_seconds),
        namespace_retriever=NamespaceRetriever(backend.privileged),
    )

    guard = UniquenessGuard(backend.privileged)
    if backend.memory is not None:
        for kind in guard.kinds:
            backend.memory.register_admission_hook(kind, guard)
        logger.debug("Uniqueness guard installed on the in-memory store")

    orgs = OrgRepository(context, store_config.root_namespace)
    return ServiceContainer(
        settings=settings,
        backend=backend,
        certificate_inspector=inspector,
        identity_resolver=identity_resolver,
        permissions=permissions,
        uniqueness_guard=guard,
        orgs=orgs,
        spaces=SpaceRepository(context, orgs),
        apps=AppRepository(context),
        builds=BuildRepository(context),
        routes=RouteRepository(context),
        service_bindings=ServiceBindingRepository(context),
    )
