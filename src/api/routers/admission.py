"""Validating admission endpoint called by the resource store.

Speaks ``admission.k8s.io/v1`` ``AdmissionReview``: the store posts the
pending write under ``request`` and expects the same document back with a
``response`` saying whether the write is allowed. Rejections carry the
encoded validation error as the status message, which the store relays to
the writer inside its denial message.
"""

from typing import Any

from fastapi import APIRouter
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from src.api.dependencies import Container
from src.core.exceptions import NotFoundError, StratusError, UnknownFailureError
from src.infrastructure.store.admission import (
    AdmissionOperation,
    AdmissionRequest,
    encode_validation_error,
)
from src.infrastructure.store.resources import RESOURCE_KINDS

router = APIRouter(prefix="/admission", tags=["admission"])

ADMISSION_API_VERSION = "admission.k8s.io/v1"
DENIED_STATUS_CODE = 400
FAILED_STATUS_CODE = 500


class GroupVersionKind(BaseModel):
    group: str = ""
    version: str = ""
    kind: str


class ReviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    uid: str
    kind: GroupVersionKind
    operation: AdmissionOperation
    object: dict[str, Any] | None = None
    old_object: dict[str, Any] | None = Field(default=None, alias="oldObject")


class ReviewStatus(BaseModel):
    code: int
    message: str


class ReviewResponse(BaseModel):
    uid: str
    allowed: bool
    status: ReviewStatus | None = None


class AdmissionReview(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_version: str = Field(default=ADMISSION_API_VERSION, alias="apiVersion")
    kind: str = "AdmissionReview"
    request: ReviewRequest | None = None
    response: ReviewResponse | None = None


def _review(uid: str, allowed: bool, status: ReviewStatus | None = None) -> dict[str, Any]:
    return AdmissionReview(
        response=ReviewResponse(uid=uid, allowed=allowed, status=status)
    ).model_dump(by_alias=True, exclude_none=True)


@router.post("/validate/{resource}")
async def validate(
    resource: str, review: AdmissionReview, container: Container
) -> dict[str, Any]:
    """Run the uniqueness checks for one pending write.

    Raises:
        NotFoundError: If ``resource`` names no known kind.
    """
    kinds = {kind.kind.lower(): kind for kind in RESOURCE_KINDS.values()}
    if resource.lower() not in kinds or review.request is None:
        raise NotFoundError(
            "Unknown admission resource", context={"resource": resource}
        )

    request = review.request
    admission = AdmissionRequest(
        operation=request.operation,
        kind=kinds[resource.lower()].kind,
        obj=request.object,
        old_obj=request.old_object,
    )

    try:
        await container.uniqueness_guard(admission)
    except UnknownFailureError as e:
        logger.error("Admission check failed", uid=request.uid, kind=admission.kind)
        return _review(
            request.uid,
            False,
            ReviewStatus(code=FAILED_STATUS_CODE, message=e.public_message),
        )
    except StratusError as e:
        logger.info(
            "Admission denied",
            uid=request.uid,
            kind=admission.kind,
            operation=admission.operation.value,
            reason=e.message,
        )
        return _review(
            request.uid,
            False,
            ReviewStatus(code=DENIED_STATUS_CODE, message=encode_validation_error(e)),
        )

    return _review(request.uid, True)
