"""Store client contracts and the mapping from store failures to API errors.

``ResourceStore`` is the generic object API of the backing store, already
bound to one principal: either the privileged service identity of this
process, or a caller whose credential is presented on every request so the
store applies its own access control. ``UserClientFactory`` hands out the
latter as a scoped acquisition.
"""

from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from enum import StrEnum
from http import HTTPStatus
from typing import Any, Protocol

from loguru import logger

from src.authorization.credentials import Credential
from src.core.exceptions import (
    ForbiddenError,
    InvalidCredentialError,
    NotFoundError,
    StratusError,
    UnknownFailureError,
)
from src.core.types import Resource
from src.infrastructure.store.admission import decode_validation_error
from src.infrastructure.store.resources import ResourceKind


class WatchEventType(StrEnum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    BOOKMARK = "BOOKMARK"


@dataclass(frozen=True, slots=True)
class WatchEvent:
    """One change notification delivered on a watch stream."""

    type: WatchEventType
    object: Resource


class StoreError(Exception):
    """A request to the store failed.

    Args:
        status: HTTP status code reported by the store, 0 for transport failures
        reason: Machine readable reason (e.g. "Forbidden", "NotFound")
        message: Human readable message from the store
    """

    def __init__(self, status: int, reason: str, message: str) -> None:
        self.status = status
        self.reason = reason
        self.message = message
        super().__init__(f"{status} {reason}: {message}")

    @property
    def is_forbidden(self) -> bool:
        return self.status == HTTPStatus.FORBIDDEN

    @property
    def is_not_found(self) -> bool:
        return self.status == HTTPStatus.NOT_FOUND

    @property
    def is_unauthorized(self) -> bool:
        return self.status == HTTPStatus.UNAUTHORIZED


class ResourceStore(Protocol):
    """Generic object API of the store, bound to one principal."""

    async def get(
        self, kind: ResourceKind, name: str, namespace: str | None = None
    ) -> Resource: ...

    async def list(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        *,
        label_selector: str | None = None,
        field_selector: str | None = None,
        limit: int | None = None,
    ) -> list[Resource]: ...

    async def create(self, kind: ResourceKind, obj: Resource) -> Resource: ...

    async def patch(
        self,
        kind: ResourceKind,
        name: str,
        patch: dict[str, Any],
        namespace: str | None = None,
    ) -> Resource:
        """Apply a JSON merge patch and return the updated object."""
        ...

    async def delete(
        self, kind: ResourceKind, name: str, namespace: str | None = None
    ) -> None: ...

    def watch(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        *,
        field_selector: str | None = None,
        label_selector: str | None = None,
    ) -> AbstractAsyncContextManager[AsyncIterator[WatchEvent]]:
        """Open a watch subscription.

        The subscription is established when the context is entered (errors
        surface there as ``StoreError``) and released when it exits. The
        stream starts with an ADDED event for every object currently
        matching the selectors.
        """
        ...

    async def create_token_review(self, token: str) -> Resource: ...

    async def aclose(self) -> None: ...


class UserClientFactory(Protocol):
    """Builds store clients that act as the caller."""

    def client_for(
        self, credential: Credential
    ) -> AbstractAsyncContextManager[ResourceStore]: ...

    async def aclose(self) -> None: ...


def from_store_error(error: StoreError, resource_type: str) -> StratusError:
    """Translate a store failure into the API error taxonomy.

    Args:
        error: The failure reported by the store.
        resource_type: Human readable type of the resource being accessed.

    Returns:
        StratusError: The error to raise towards the caller.
    """
    if validation_error := decode_validation_error(error.message):
        validation_error.__cause__ = error
        return validation_error
    if error.is_unauthorized:
        return InvalidCredentialError("Invalid credential", cause=error)
    if error.is_forbidden:
        return ForbiddenError(resource_type, cause=error)
    if error.is_not_found:
        return NotFoundError(
            f"{resource_type} not found",
            context={"resource_type": resource_type},
            cause=error,
        )

    logger.error(
        "Unexpected store failure",
        resource_type=resource_type,
        status=error.status,
        reason=error.reason,
        store_message=error.message,
    )
    return UnknownFailureError(
        f"Store request for {resource_type} failed: {error.reason}",
        context={"status": error.status, "reason": error.reason},
        cause=error,
    )
