# authsvc/api/authorize.py
from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from authsvc.api.deps import get_directory, get_tokens
from authsvc.core.schemas import parse_scope
from authsvc.integrations.users import UserDirectory
from authsvc.services.tokens import TokenService

router = APIRouter()


class AuthorizeInput(BaseModel):
    username: str
    password: str
    client_id: str
    redirect_uri: str
    scope: str | None = None
    state: str | None = None


@router.post("/authorize")
async def authorize(
    body: AuthorizeInput,
    tokens: TokenService = Depends(get_tokens),
    directory: UserDirectory = Depends(get_directory),
):
    # El directorio es HTTP bloqueante: fuera del event loop
    user = await run_in_threadpool(directory.authenticate, body.username, body.password)
    if user is None:
        return JSONResponse(status_code=401, content={"error": "access_denied"})

    grant = await tokens.authorize(
        body.client_id, body.redirect_uri, user.username, parse_scope(body.scope)
    )
    out = {"code": grant.code, "redirect_uri": grant.redirect_uri, "expires_in": grant.expires_in}
    if body.state is not None:
        out["state"] = body.state
    return out
