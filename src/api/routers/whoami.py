"""/whoami: the identity the presented credential resolves to."""

from fastapi import APIRouter, Request

from src.api.schemas.resources import WhoAmIResponse
from src.authorization.identity import Identity

router = APIRouter(tags=["identity"])


@router.get("/whoami")
async def whoami(request: Request) -> WhoAmIResponse:
    identity: Identity = request.state.identity
    return WhoAmIResponse(name=identity.name, kind=identity.kind.value)
