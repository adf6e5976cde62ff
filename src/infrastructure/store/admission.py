"""Admission request model and the validation-error wire format.

When an admission check rejects a write, the store returns the denial as a
plain error message. The rejection reason is embedded in that message as a
small JSON document so the API side can turn it back into the precise error
type instead of an opaque failure::

    admission webhook "stratus.validation" denied the request:
    {"validationErrorType":"DuplicateNameError","message":"Space 'dev' already exists."}
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Final

import orjson

from src.core.exceptions import (
    DuplicateNameError,
    ErrorCode,
    OrphanedReferenceError,
    StratusError,
    ValidationError,
)
from src.core.types import Resource

WEBHOOK_NAME: Final[str] = "stratus.validation"


class AdmissionOperation(StrEnum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True, slots=True)
class AdmissionRequest:
    """A pending write presented to the admission checks."""

    operation: AdmissionOperation
    kind: str
    obj: Resource | None
    old_obj: Resource | None = None


type AdmissionHook = Callable[[AdmissionRequest], Awaitable[None]]

_ERROR_TYPES: Final[dict[str, type[StratusError]]] = {
    "DuplicateNameError": DuplicateNameError,
    "OrphanedReferenceError": OrphanedReferenceError,
    "ValidationError": ValidationError,
}
_ERROR_CODE_TYPES: Final[dict[str, str]] = {
    ErrorCode.DUPLICATE_NAME.value: "DuplicateNameError",
    ErrorCode.ORPHANED_REFERENCE.value: "OrphanedReferenceError",
}


def encode_validation_error(error: StratusError) -> str:
    """Serialize an admission rejection into the denial message payload."""
    error_type = _ERROR_CODE_TYPES.get(error.error_code, "ValidationError")
    return orjson.dumps(
        {"validationErrorType": error_type, "message": error.message}
    ).decode()


def denial_message(error: StratusError) -> str:
    """Full denial message as the store reports it to the writer."""
    return (
        f'admission webhook "{WEBHOOK_NAME}" denied the request: '
        f"{encode_validation_error(error)}"
    )


def decode_validation_error(message: str) -> StratusError | None:
    """Recover the admission rejection from a store error message.

    Returns:
        StratusError | None: The rejection, or None when the message does not
            carry an encoded validation error.
    """
    start = message.find("{")
    if start < 0:
        return None
    try:
        payload = orjson.loads(message[start:])
    except orjson.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None

    error_type = _ERROR_TYPES.get(str(payload.get("validationErrorType")))
    if error_type is None:
        return None
    return error_type(str(payload.get("message", "")))
