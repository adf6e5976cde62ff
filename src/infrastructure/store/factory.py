"""Store backend construction and process-wide lifecycle.

A ``StoreBackend`` bundles the privileged client this process acts with and
the factory for caller-bound clients. The module keeps one backend per
process through ``_StoreManager`` so that the HTTP connection pool is shared
by every request.
"""

import threading
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from src.authorization.identity import CertificateInspector
from src.core.config import Settings, get_settings
from src.infrastructure.store.client import ResourceStore, StoreError, UserClientFactory
from src.infrastructure.store.http import (
    HttpResourceStore,
    HttpUserClientFactory,
    build_http_client,
)
from src.infrastructure.store.memory import (
    InMemoryResourceStore,
    InMemoryUserClientFactory,
)
from src.infrastructure.store.resources import NAMESPACE


@dataclass
class StoreBackend:
    """The two ways of talking to the store.

    Attributes:
        privileged: Client acting as this service.
        user_clients: Factory of clients acting as the caller.
        memory: The in-process store, when the memory backend is used.
    """

    privileged: ResourceStore
    user_clients: UserClientFactory
    memory: InMemoryResourceStore | None = None

    async def aclose(self) -> None:
        await self.user_clients.aclose()
        await self.privileged.aclose()


def _privileged_token(settings: Settings) -> str:
    config = settings.store_config
    if config.privileged_token:
        return config.privileged_token
    try:
        return Path(config.privileged_token_path).read_text().strip()
    except OSError as e:
        msg = f"Cannot read privileged token from {config.privileged_token_path}"
        raise RuntimeError(msg) from e


def create_memory_backend(
    settings: Settings, store: InMemoryResourceStore | None = None
) -> StoreBackend:
    """Backend over an in-process store, created empty unless one is given."""
    config = settings.store_config
    store = store or InMemoryResourceStore(
        config.root_namespace, auto_reconcile=config.auto_reconcile
    )
    inspector = CertificateInspector.from_pem_file(settings.auth_config.client_ca_cert_path)
    return StoreBackend(
        privileged=store.privileged(),
        user_clients=InMemoryUserClientFactory(store, inspector),
        memory=store,
    )


def create_store_backend(settings: Settings) -> StoreBackend:
    """Build the backend selected by ``store_config.backend``."""
    config = settings.store_config
    if config.backend == "memory":
        logger.warning("Using the in-memory store backend; state is not persisted")
        return create_memory_backend(settings)

    shared_client = build_http_client(config)
    privileged = HttpResourceStore(
        shared_client,
        {"Authorization": f"Bearer {_privileged_token(settings)}"},
    )
    logger.info("Using resource store at {}", config.api_server_url)
    return StoreBackend(
        privileged=privileged,
        user_clients=HttpUserClientFactory(config, shared_client),
    )


class _StoreManager:
    """Holds the process-wide store backend.

    Provides a singleton without global statements, created lazily with
    double-checked locking.
    """

    def __init__(self) -> None:
        self._backend: StoreBackend | None = None
        self._lock = threading.Lock()

    def get_backend(self) -> StoreBackend:
        if self._backend is None:
            with self._lock:
                if self._backend is None:
                    self._backend = create_store_backend(get_settings())
        return self._backend

    async def close(self) -> None:
        if self._backend is not None:
            await self._backend.aclose()
            logger.info("Store backend closed")
            self._backend = None

    def reset(self) -> None:
        """Forget the backend without closing it. Used by tests."""
        self._backend = None


_store_manager = _StoreManager()


def get_store_backend() -> StoreBackend:
    """Get or create the process-wide store backend."""
    return _store_manager.get_backend()


async def close_store_backend() -> None:
    """Close the process-wide store backend, if one was created."""
    await _store_manager.close()


async def check_store_connection(store: ResourceStore) -> tuple[bool, str | None]:
    """Check that the store answers privileged requests.

    Returns:
        tuple[bool, str | None]: Whether the store is reachable, and the error
            message when it is not.
    """
    try:
        await store.list(NAMESPACE, limit=1)
    except StoreError as e:
        return False, str(e)
    return True, None
