"""Resource kinds, labels and condition helpers for the backing store.

Store objects are plain JSON documents in the Kubernetes shape:
``apiVersion``, ``kind``, ``metadata`` (name, namespace, labels, uid,
generation, ...), ``spec`` and ``status``. The helpers here are the only
place that knows about that shape; repositories and the admission checks go
through them instead of indexing dictionaries directly.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Final

from src.core.types import Resource

CF_GROUP: Final[str] = "korifi.cloudfoundry.org"
CF_VERSION: Final[str] = "v1alpha1"

ORG_NAME_LABEL: Final[str] = "cloudfoundry.org/org-name"
SPACE_NAME_LABEL: Final[str] = "cloudfoundry.org/space-name"
ORG_GUID_LABEL: Final[str] = "korifi.cloudfoundry.org/org-guid"

READY_CONDITION: Final[str] = "Ready"
STAGED_CONDITION: Final[str] = "Staged"
SUCCEEDED_CONDITION: Final[str] = "Succeeded"
BINDING_SECRET_AVAILABLE_CONDITION: Final[str] = "BindingSecretAvailable"


@dataclass(frozen=True, slots=True)
class ResourceKind:
    """REST coordinates of one resource type."""

    kind: str
    plural: str
    group: str = ""
    version: str = "v1"
    namespaced: bool = True

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    def __str__(self) -> str:
        return self.kind


NAMESPACE = ResourceKind("Namespace", "namespaces", namespaced=False)
ROLE_BINDING = ResourceKind(
    "RoleBinding", "rolebindings", group="rbac.authorization.k8s.io"
)
SECRET = ResourceKind("Secret", "secrets")
TOKEN_REVIEW = ResourceKind(
    "TokenReview", "tokenreviews", group="authentication.k8s.io", namespaced=False
)
CF_ORG = ResourceKind("CFOrg", "cforgs", CF_GROUP, CF_VERSION)
CF_SPACE = ResourceKind("CFSpace", "cfspaces", CF_GROUP, CF_VERSION)
CF_APP = ResourceKind("CFApp", "cfapps", CF_GROUP, CF_VERSION)
CF_BUILD = ResourceKind("CFBuild", "cfbuilds", CF_GROUP, CF_VERSION)
CF_ROUTE = ResourceKind("CFRoute", "cfroutes", CF_GROUP, CF_VERSION)
CF_SERVICE_BINDING = ResourceKind(
    "CFServiceBinding", "cfservicebindings", CF_GROUP, CF_VERSION
)

RESOURCE_KINDS: Final[dict[str, ResourceKind]] = {
    kind.kind: kind
    for kind in (
        NAMESPACE,
        ROLE_BINDING,
        SECRET,
        TOKEN_REVIEW,
        CF_ORG,
        CF_SPACE,
        CF_APP,
        CF_BUILD,
        CF_ROUTE,
        CF_SERVICE_BINDING,
    )
}


@dataclass(frozen=True, slots=True)
class ObjectRef:
    """Identifies one object in the store."""

    kind: ResourceKind
    name: str
    namespace: str | None = None

    @classmethod
    def of(cls, kind: ResourceKind, obj: Resource) -> "ObjectRef":
        return cls(kind, object_name(obj), object_namespace(obj))

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"


def new_resource(
    kind: ResourceKind,
    name: str,
    namespace: str | None = None,
    *,
    spec: dict[str, Any] | None = None,
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
) -> Resource:
    """Build a resource document ready to be created in the store."""
    metadata: dict[str, Any] = {"name": name}
    if namespace is not None:
        metadata["namespace"] = namespace
    if labels:
        metadata["labels"] = dict(labels)
    if annotations:
        metadata["annotations"] = dict(annotations)

    resource: Resource = {
        "apiVersion": kind.api_version,
        "kind": kind.kind,
        "metadata": metadata,
    }
    if spec is not None:
        resource["spec"] = spec
    return resource


def metadata(obj: Resource) -> dict[str, Any]:
    return obj.get("metadata") or {}


def object_name(obj: Resource) -> str:
    return str(metadata(obj).get("name", ""))


def object_namespace(obj: Resource) -> str | None:
    return metadata(obj).get("namespace")


def object_labels(obj: Resource) -> dict[str, str]:
    return dict(metadata(obj).get("labels") or {})


def object_annotations(obj: Resource) -> dict[str, str]:
    return dict(metadata(obj).get("annotations") or {})


def object_generation(obj: Resource) -> int:
    return int(metadata(obj).get("generation") or 0)


def display_name(obj: Resource) -> str:
    """Return the user-facing name kept in ``spec.displayName``."""
    return str((obj.get("spec") or {}).get("displayName", ""))


def is_being_deleted(obj: Resource) -> bool:
    return bool(metadata(obj).get("deletionTimestamp"))


def find_condition(obj: Resource, condition_type: str) -> dict[str, Any] | None:
    """Return the status condition of the given type, if reported."""
    for condition in (obj.get("status") or {}).get("conditions") or []:
        if condition.get("type") == condition_type:
            return condition
    return None


def is_condition_true(obj: Resource, condition_type: str) -> bool:
    """Check that a condition is true for the object's current generation.

    A condition reported for an older generation describes a spec the
    reconciler has since been asked to replace, so it does not count.
    Conditions without an observedGeneration are taken at face value.
    """
    condition = find_condition(obj, condition_type)
    if condition is None or condition.get("status") != "True":
        return False

    observed = condition.get("observedGeneration")
    if observed is None:
        return True
    return int(observed) >= object_generation(obj)


def set_condition(
    obj: Resource,
    condition_type: str,
    status: bool,
    reason: str = "",
    message: str = "",
) -> None:
    """Set or replace a status condition on ``obj`` for its current generation."""
    conditions = obj.setdefault("status", {}).setdefault("conditions", [])
    conditions[:] = [c for c in conditions if c.get("type") != condition_type]
    conditions.append(
        {
            "type": condition_type,
            "status": "True" if status else "False",
            "reason": reason or condition_type,
            "message": message,
            "observedGeneration": object_generation(obj),
            "lastTransitionTime": format_timestamp(utc_now()),
        }
    )


def utc_now() -> datetime:
    return datetime.now(UTC)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an RFC 3339 store timestamp."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def creation_timestamp(obj: Resource) -> datetime | None:
    return parse_timestamp(metadata(obj).get("creationTimestamp"))


def last_updated(obj: Resource) -> datetime | None:
    """Latest managed-fields or condition transition time, if any."""
    times = [
        parse_timestamp(entry.get("time"))
        for entry in metadata(obj).get("managedFields") or []
    ]
    times.extend(
        parse_timestamp(condition.get("lastTransitionTime"))
        for condition in (obj.get("status") or {}).get("conditions") or []
    )
    known = [t for t in times if t is not None]
    return max(known) if known else None
