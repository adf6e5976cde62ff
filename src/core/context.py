"""Request context management for correlation IDs and the authenticated caller."""

import uuid
from contextvars import ContextVar
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.authorization.credentials import Credential
    from src.authorization.identity import Identity

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_credential_var: ContextVar["Credential | None"] = ContextVar(
    "credential", default=None
)
_identity_var: ContextVar["Identity | None"] = ContextVar("identity", default=None)


class RequestContext:
    """Manages request context using contextvars for async-safe storage.

    Holds the request-scoped data that has to be reachable from anywhere in
    the call chain: the correlation ID used by logs and error responses, and
    the caller's credential and resolved identity set by the authentication
    middleware.
    """

    @staticmethod
    def set_correlation_id(correlation_id: str) -> None:
        """Set the correlation ID for the current context.

        Args:
            correlation_id: The correlation ID to store in the context.
        """
        _correlation_id_var.set(correlation_id)

    @staticmethod
    def get_correlation_id() -> str | None:
        """Get the correlation ID from the current context.

        Returns:
            str | None: The correlation ID if set, None otherwise.
        """
        return _correlation_id_var.get()

    @staticmethod
    def set_caller(credential: "Credential", identity: "Identity") -> None:
        """Record the authenticated caller for the current context.

        Args:
            credential: The credential presented by the caller.
            identity: The identity the credential resolved to.
        """
        _credential_var.set(credential)
        _identity_var.set(identity)

    @staticmethod
    def get_credential() -> "Credential | None":
        """Get the caller credential, if the request was authenticated."""
        return _credential_var.get()

    @staticmethod
    def get_identity() -> "Identity | None":
        """Get the caller identity, if the request was authenticated."""
        return _identity_var.get()

    @staticmethod
    def clear() -> None:
        """Clear all context variables.

        This should typically be called at the end of a request to ensure
        clean state for the next request.
        """
        _correlation_id_var.set(None)
        _credential_var.set(None)
        _identity_var.set(None)


def generate_correlation_id() -> str:
    """Generate a unique correlation ID for request tracking.

    Returns:
        str: A string representation of a UUID4.
    """
    return str(uuid.uuid4())


def generate_request_id() -> str:
    """Generate a unique request ID for individual request tracking.

    Request IDs are unique per request, while correlation IDs can span
    multiple services in a distributed system.

    Returns:
        str: A prefixed UUID4 string in format 'req-<uuid4>'.
    """
    return f"req-{uuid.uuid4()}"
