# authsvc/api/token.py
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from authsvc.api.deps import get_tokens
from authsvc.core.errors import InvalidRequest
from authsvc.core.schemas import GrantRequest, GrantType, parse_scope
from authsvc.services.tokens import TokenService

router = APIRouter()


class TokenInput(BaseModel):
    grant_type: str
    client_id: str
    client_secret: str | None = None
    code: str | None = None
    redirect_uri: str | None = None
    refresh_token: str | None = None
    scope: str | None = None


@router.post("/token")
async def token(body: TokenInput, tokens: TokenService = Depends(get_tokens)):
    try:
        grant_type = GrantType(body.grant_type)
    except ValueError:
        raise InvalidRequest(f"unsupported grant_type {body.grant_type!r}")

    res = await tokens.issue(GrantRequest(
        grant_type=grant_type,
        client_id=body.client_id,
        client_secret=body.client_secret,
        code=body.code,
        redirect_uri=body.redirect_uri,
        refresh_token=body.refresh_token,
        scopes=parse_scope(body.scope),
    ))
    return res.to_wire()


class TokenValueInput(BaseModel):
    token: str


@router.post("/validate")
async def validate(body: TokenValueInput, tokens: TokenService = Depends(get_tokens)):
    # Hacia fuera sólo válido/no válido; el motivo queda en los logs
    res = await tokens.validate(body.token)
    return res.to_external()


@router.post("/revoke")
async def revoke(body: TokenValueInput, tokens: TokenService = Depends(get_tokens)):
    await tokens.revoke(body.token)
    return {"ok": True}
