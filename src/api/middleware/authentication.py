"""Caller authentication for every request outside the public paths.

The ``Authorization`` header is parsed into a credential and resolved to an
identity through the cached resolver. Both are stored in ``RequestContext``
and on ``request.state`` for the routers; the identity is also attached to
every log line of the request. Credential failures are answered with 401
directly, since exceptions raised in middleware bypass the application's
exception handlers.
"""

from collections.abc import Callable, Iterable

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from src.api.constants import AUTHORIZATION_HEADER, UNAUTHENTICATED_PATHS
from src.api.middleware.error_handler import render_stratus_error
from src.authorization.credentials import parse_authorization_header
from src.authorization.identity import IdentityResolver
from src.core.context import RequestContext
from src.core.exceptions import StratusError


class UnauthenticatedPaths:
    """Registry of paths served without a credential.

    Entries ending in "/" (other than the root itself) match every path
    below them; all other entries match exactly.
    """

    def __init__(self, paths: Iterable[str] = UNAUTHENTICATED_PATHS) -> None:
        self._exact: set[str] = set()
        self._prefixes: list[str] = []
        for path in paths:
            self.register(path)

    def register(self, path: str) -> None:
        if path != "/" and path.endswith("/"):
            self._prefixes.append(path)
        else:
            self._exact.add(path)

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, str):
            return False
        return path in self._exact or any(path.startswith(p) for p in self._prefixes)


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Authenticates the caller before any protected route runs.

    Args:
        app: The ASGI application.
        resolver_provider: Returns the identity resolver; looked up per request
            so the resolver can be created during application startup.
        public_paths: Paths that skip authentication.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        resolver_provider: Callable[[], IdentityResolver],
        public_paths: UnauthenticatedPaths | None = None,
    ) -> None:
        super().__init__(app)
        self.resolver_provider = resolver_provider
        self.public_paths = public_paths or UnauthenticatedPaths()

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.public_paths:
            return await call_next(request)

        try:
            credential = parse_authorization_header(
                request.headers.get(AUTHORIZATION_HEADER)
            )
            identity = await self.resolver_provider().resolve(credential)
        except StratusError as e:
            return render_stratus_error(request, e)

        RequestContext.set_caller(credential, identity)
        request.state.credential = credential
        request.state.identity = identity

        with logger.contextualize(identity=str(identity)):
            return await call_next(request)
