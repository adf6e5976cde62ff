"""Which tenant partitions (namespaces) a caller may see.

The store enforces access per object, never per query, so there is no way to
ask it directly which of N namespaces a caller can read. The answer is
computed in two phases:

1. enumerate every organization or space namespace with the privileged
   client, using the scope's namespace label;
2. for each candidate, check access with the caller's own credential by listing at
   most one role binding inside it.

A ``Forbidden`` answer excludes the namespace. Any other failure aborts
the whole computation, so callers never receive a partial answer. Results are
computed fresh for every call so role binding changes apply immediately.
"""

import asyncio
from enum import StrEnum
from typing import Final

from loguru import logger

from src.authorization.credentials import Credential
from src.authorization.identity import IdentityResolver
from src.core.observability import trace_operation
from src.infrastructure.store.client import (
    ResourceStore,
    StoreError,
    UserClientFactory,
    from_store_error,
)
from src.infrastructure.store.resources import (
    NAMESPACE,
    ORG_NAME_LABEL,
    ROLE_BINDING,
    SPACE_NAME_LABEL,
    object_name,
)

type PartitionSet = dict[str, bool]


class PartitionScope(StrEnum):
    ORGANIZATION = "organization"
    SPACE = "space"


SCOPE_LABELS: Final[dict[PartitionScope, str]] = {
    PartitionScope.ORGANIZATION: ORG_NAME_LABEL,
    PartitionScope.SPACE: SPACE_NAME_LABEL,
}


class NamespacePermissions:
    """Computes the partitions visible to a caller.

    Args:
        privileged_store: Store client acting as this service.
        user_client_factory: Builds store clients acting as the caller.
        identity_resolver: Resolves the caller identity, used to reject bad
            credentials before any enumeration starts.
        max_concurrent_checks: Upper bound on in-flight access checks per call.
    """

    def __init__(
        self,
        privileged_store: ResourceStore,
        user_client_factory: UserClientFactory,
        identity_resolver: IdentityResolver,
        max_concurrent_checks: int = 16,
    ) -> None:
        self._privileged_store = privileged_store
        self._user_client_factory = user_client_factory
        self._identity_resolver = identity_resolver
        self._max_concurrent_checks = max_concurrent_checks

    async def authorized_org_namespaces(self, credential: Credential) -> PartitionSet:
        return await self.authorized_partitions(
            credential, PartitionScope.ORGANIZATION
        )

    async def authorized_space_namespaces(
        self, credential: Credential
    ) -> PartitionSet:
        return await self.authorized_partitions(credential, PartitionScope.SPACE)

    async def authorized_partitions(
        self, credential: Credential, scope: PartitionScope
    ) -> PartitionSet:
        """Return the namespaces of ``scope`` the caller holds a role binding in.

        Every key of the result maps to True. Namespaces whose check was
        forbidden are absent, not mapped to False.

        Raises:
            StratusError: If the credential is rejected, the enumeration fails
                or any check fails for a reason other than Forbidden.
        """
        identity = await self._identity_resolver.resolve(credential)

        with trace_operation("authorized_partitions", scope=scope.value) as span:
            try:
                namespaces = await self._privileged_store.list(
                    NAMESPACE, label_selector=SCOPE_LABELS[scope]
                )
            except StoreError as e:
                raise from_store_error(e, "Namespace") from e

            candidates = [object_name(ns) for ns in namespaces]
            try:
                async with self._user_client_factory.client_for(credential) as store:
                    results = await self._check_all(store, candidates)
            except StoreError as e:
                raise from_store_error(e, "RoleBinding") from e

            authorized = {
                name: True for name, allowed in zip(candidates, results) if allowed
            }
            span.set_attribute("candidates", len(candidates))
            span.set_attribute("authorized", len(authorized))

        logger.debug(
            "Resolved authorized {} namespaces",
            scope.value,
            identity=str(identity),
            candidates=len(candidates),
            authorized=len(authorized),
        )
        return authorized

    async def _check_all(self, store: ResourceStore, namespaces: list[str]) -> list[bool]:
        semaphore = asyncio.Semaphore(self._max_concurrent_checks)

        async def check(namespace: str) -> bool:
            async with semaphore:
                return await self._has_access(store, namespace)

        try:
            async with asyncio.TaskGroup() as group:
                tasks = [group.create_task(check(ns)) for ns in namespaces]
        except ExceptionGroup as eg:
            # TaskGroup cancels the remaining checks after the first failure
            error = eg.exceptions[0]
            if isinstance(error, StoreError):
                raise from_store_error(error, "RoleBinding") from error
            raise error from eg

        return [task.result() for task in tasks]

    async def _has_access(self, store: ResourceStore, namespace: str) -> bool:
        try:
            await store.list(ROLE_BINDING, namespace, limit=1)
        except StoreError as e:
            if e.is_forbidden:
                return False
            raise
        return True
