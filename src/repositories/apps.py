"""Applications: CFApp objects inside their space's namespace.

User environment variables live in a Secret named ``<app guid>-env`` next to
the app. Values are stored base64 encoded under ``data`` so that a merge
patch with a null value removes a variable on every store backend.
"""

import base64
from collections.abc import Collection
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import orjson
from loguru import logger

from src.authorization.credentials import Credential
from src.core.exceptions import NotFoundError, UnknownFailureError
from src.core.types import Resource
from src.infrastructure.store.client import ResourceStore, StoreError, from_store_error
from src.infrastructure.store.resources import (
    CF_APP,
    SECRET,
    STAGED_CONDITION,
    ObjectRef,
    display_name,
    metadata,
    new_resource,
    object_name,
    object_namespace,
)
from src.repositories.base import (
    NamespacedRepository,
    Record,
    matches,
    metadata_patch,
    new_guid,
    record_fields,
)

APP_ENV_RESOURCE_TYPE = "App Env"
VCAP_SERVICES_KEY = "VCAP_SERVICES"

DEFAULT_LIFECYCLE: dict[str, Any] = {
    "type": "buildpack",
    "data": {"buildpacks": [], "stack": "cflinuxfs3"},
}


class DesiredState(StrEnum):
    STARTED = "STARTED"
    STOPPED = "STOPPED"


@dataclass(frozen=True, kw_only=True)
class AppRecord(Record):
    name: str
    space_guid: str
    state: DesiredState
    droplet_guid: str | None = None
    lifecycle: dict[str, Any] = field(default_factory=dict)
    env_secret_name: str | None = None
    vcap_services_secret_name: str | None = None


@dataclass(frozen=True, slots=True)
class CurrentDropletRecord:
    app_guid: str
    droplet_guid: str


@dataclass(frozen=True, slots=True)
class AppEnvVarsRecord:
    app_guid: str
    space_guid: str
    environment_variables: dict[str, str]


@dataclass(frozen=True, slots=True)
class AppEnvRecord:
    app_guid: str
    space_guid: str
    environment_variables: dict[str, str]
    system_env: dict[str, Any]


def env_secret_name(app_guid: str) -> str:
    return f"{app_guid}-env"


def _encode(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


def _decode_secret(secret: Resource) -> dict[str, str]:
    return {
        key: base64.b64decode(value).decode()
        for key, value in (secret.get("data") or {}).items()
    }


class AppRepository(NamespacedRepository[AppRecord]):
    kind = CF_APP
    resource_type = "App"

    def to_record(self, obj: Resource) -> AppRecord:
        spec = obj.get("spec") or {}
        status = obj.get("status") or {}
        return AppRecord(
            name=display_name(obj),
            space_guid=object_namespace(obj) or "",
            state=DesiredState(spec.get("desiredState", DesiredState.STOPPED)),
            droplet_guid=(spec.get("currentDropletRef") or {}).get("name") or None,
            lifecycle=spec.get("lifecycle") or {},
            env_secret_name=spec.get("envSecretName") or None,
            vcap_services_secret_name=(
                (status.get("vcapServicesSecretRef") or {}).get("name") or None
            ),
            **record_fields(obj),
        )

    async def create_app(
        self,
        credential: Credential,
        name: str,
        space_guid: str,
        lifecycle: dict[str, Any] | None = None,
        environment_variables: dict[str, str] | None = None,
        labels: dict[str, str] | None = None,
        annotations: dict[str, str] | None = None,
    ) -> AppRecord:
        """Create a stopped app together with its environment secret.

        Name clashes within the space are rejected by admission and surface
        as ``DuplicateNameError``.
        """
        guid = new_guid()
        obj = new_resource(
            CF_APP,
            guid,
            space_guid,
            spec={
                "displayName": name,
                "desiredState": DesiredState.STOPPED.value,
                "lifecycle": lifecycle or DEFAULT_LIFECYCLE,
                "envSecretName": env_secret_name(guid),
            },
            labels=labels,
            annotations=annotations,
        )

        async with self.caller_store(credential) as store:
            created = await store.create(CF_APP, obj)
            await self._write_env_vars(store, created, environment_variables or {})

        logger.info("Created app {}", guid, app_name=name, space_guid=space_guid)
        return self.to_record(created)

    async def get_app_by_name_and_space(
        self, credential: Credential, name: str, space_guid: str
    ) -> AppRecord:
        """Find the app called ``name`` (exact match) in a space.

        Raises:
            NotFoundError: If the space holds no such app.
            UnknownFailureError: If several apps carry the name.
        """
        async with self.caller_store(credential) as store:
            try:
                apps = await store.list(CF_APP, space_guid)
            except StoreError as e:
                raise from_store_error(e, "Space") from e

        found = [app for app in apps if display_name(app) == name]
        if not found:
            raise NotFoundError(
                f"App '{name}' in space '{space_guid}' not found",
                context={"resource_type": self.resource_type, "space_guid": space_guid},
            )
        if len(found) > 1:
            raise UnknownFailureError(
                f"Duplicate instances of app '{name}' in space '{space_guid}'",
                context={"space_guid": space_guid, "count": len(found)},
            )
        return self.to_record(found[0])

    async def patch_app(
        self,
        credential: Credential,
        guid: str,
        lifecycle: dict[str, Any] | None = None,
        environment_variables: dict[str, str] | None = None,
        labels: dict[str, str | None] | None = None,
        annotations: dict[str, str | None] | None = None,
    ) -> AppRecord:
        """Update the lifecycle, metadata and environment of an app.

        The lifecycle is merged into the current one. Environment variables,
        when given, are added to or overwrite the stored ones.
        """
        namespace = await self.namespace_of(guid)
        patch = metadata_patch(labels, annotations)
        if lifecycle is not None:
            patch["spec"] = {"lifecycle": lifecycle}

        async with self.caller_store(credential, hide_forbidden=True) as store:
            patched = await store.patch(CF_APP, guid, patch, namespace)
            if environment_variables is not None:
                await self._write_env_vars(store, patched, environment_variables)

        logger.info("Updated app {}", guid)
        return self.to_record(patched)

    async def patch_env_vars(
        self,
        credential: Credential,
        guid: str,
        environment_variables: dict[str, str | None],
    ) -> AppEnvVarsRecord:
        """Set or remove (with a None value) user environment variables."""
        namespace = await self.namespace_of(guid)
        async with self.caller_store(credential, hide_forbidden=True) as store:
            app = await store.get(CF_APP, guid, namespace)
            secret = await self._write_env_vars(store, app, environment_variables)

        logger.info("Updated environment of app {}", guid, keys=sorted(environment_variables))
        return AppEnvVarsRecord(
            app_guid=guid,
            space_guid=namespace,
            environment_variables=_decode_secret(secret),
        )

    async def get_env(self, credential: Credential, guid: str) -> AppEnvRecord:
        """User and system environment of an app.

        ``VCAP_SERVICES`` is only reported when it holds user-provided
        services.
        """
        app = await self.get(credential, guid)

        env_vars: dict[str, str] = {}
        system_env: dict[str, Any] = {}
        async with self.caller_store(credential) as store:
            if app.env_secret_name:
                secret = await self._read_secret(store, app.env_secret_name, app)
                env_vars = _decode_secret(secret)
            if app.vcap_services_secret_name:
                secret = await self._read_secret(store, app.vcap_services_secret_name, app)
                raw = _decode_secret(secret).get(VCAP_SERVICES_KEY)
                if raw is not None:
                    try:
                        services = orjson.loads(raw)
                    except orjson.JSONDecodeError as e:
                        raise UnknownFailureError(
                            f"Cannot decode VCAP_SERVICES of app {guid}",
                            context={"secret": app.vcap_services_secret_name},
                            cause=e,
                        ) from e
                    if services.get("user-provided"):
                        system_env[VCAP_SERVICES_KEY] = services

        return AppEnvRecord(
            app_guid=guid,
            space_guid=app.space_guid,
            environment_variables=env_vars,
            system_env=system_env,
        )

    async def _read_secret(self, store: ResourceStore, name: str, app: AppRecord) -> Resource:
        try:
            return await store.get(SECRET, name, app.space_guid)
        except StoreError as e:
            logger.warning(
                "Cannot read secret {} of app {}", name, app.guid, reason=e.reason
            )
            raise from_store_error(e, APP_ENV_RESOURCE_TYPE) from e

    async def _write_env_vars(
        self,
        store: ResourceStore,
        app: Resource,
        environment_variables: dict[str, str | None],
    ) -> Resource:
        """Create or patch the app's environment secret."""
        guid, namespace = object_name(app), object_namespace(app)
        name = (app.get("spec") or {}).get("envSecretName") or env_secret_name(guid)
        data = {
            key: _encode(value) if value is not None else None
            for key, value in environment_variables.items()
        }

        try:
            try:
                return await store.patch(SECRET, name, {"data": data}, namespace)
            except StoreError as e:
                if not e.is_not_found:
                    raise
            secret = new_resource(SECRET, name, namespace)
            secret["metadata"]["ownerReferences"] = [
                {
                    "apiVersion": CF_APP.api_version,
                    "kind": CF_APP.kind,
                    "name": guid,
                    "uid": metadata(app).get("uid", ""),
                }
            ]
            secret["data"] = {k: v for k, v in data.items() if v is not None}
            return await store.create(SECRET, secret)
        except StoreError as e:
            raise from_store_error(e, APP_ENV_RESOURCE_TYPE) from e

    async def list_apps(
        self,
        credential: Credential,
        names: Collection[str] | None = None,
        guids: Collection[str] | None = None,
        space_guids: Collection[str] | None = None,
    ) -> list[AppRecord]:
        """Apps in the spaces visible to the caller, sorted by name."""
        authorized = await self._permissions.authorized_space_namespaces(credential)
        namespaces = [ns for ns in authorized if matches(ns, space_guids)]

        apps = await self.list_in_namespaces(credential, namespaces)
        records = [
            self.to_record(app)
            for app in apps
            if matches(display_name(app), names) and matches(object_name(app), guids)
        ]
        return sorted(records, key=lambda r: r.name)

    async def set_current_droplet(
        self, credential: Credential, app_guid: str, droplet_guid: str
    ) -> CurrentDropletRecord:
        """Point the app at a droplet and wait until the app reports Staged."""
        namespace = await self.namespace_of(app_guid)

        async with self.caller_store(credential, hide_forbidden=True) as store:
            await store.patch(
                CF_APP,
                app_guid,
                {"spec": {"currentDropletRef": {"name": droplet_guid}}},
                namespace,
            )
            await self._awaiter.await_condition(
                store, ObjectRef(CF_APP, app_guid, namespace), STAGED_CONDITION
            )

        logger.info("Set current droplet of app {}", app_guid, droplet_guid=droplet_guid)
        return CurrentDropletRecord(app_guid=app_guid, droplet_guid=droplet_guid)

    async def set_desired_state(
        self, credential: Credential, app_guid: str, state: DesiredState
    ) -> AppRecord:
        namespace = await self.namespace_of(app_guid)
        async with self.caller_store(credential, hide_forbidden=True) as store:
            patched = await store.patch(
                CF_APP, app_guid, {"spec": {"desiredState": state.value}}, namespace
            )
        logger.info("App {} desired state set to {}", app_guid, state.value)
        return self.to_record(patched)
