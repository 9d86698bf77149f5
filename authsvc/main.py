# authsvc/main.py
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import asyncio
import logging

from authsvc.api.token import router as token_router
from authsvc.api.authorize import router as authorize_router
from authsvc.api.keys import router as keys_router

from authsvc.core.config import settings
from authsvc.core.crypto import Signer
from authsvc.core.errors import AuthError, InvalidStateTransition
from authsvc.db.models import Base
from authsvc.db.seed import seed_from_file
from authsvc.db.session import build_engine, build_sessionmaker
from authsvc.integrations.users import UserDirectory
from authsvc.services.clients import ClientRegistry
from authsvc.services.grants import GrantEvaluator
from authsvc.services.records import AuthorizationStore
from authsvc.services.tokens import TokenService

logger = logging.getLogger("authsvc")


def build_token_service(sessionmaker, signer: Signer) -> TokenService:
    records = AuthorizationStore(sessionmaker, timeout=settings.db_timeout)
    evaluator = GrantEvaluator(ClientRegistry(sessionmaker), records)
    return TokenService(
        evaluator,
        signer,
        records,
        access_token_ttl=settings.access_token_ttl,
        refresh_token_ttl=settings.refresh_token_ttl,
        authorization_code_ttl=settings.authorization_code_ttl,
        record_retention=settings.record_retention,
    )


async def _purge_loop(tokens: TokenService, interval: int) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await tokens.purge_expired()
        except AuthError as e:
            logger.warning("purge skipped: %s", e.description)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # === STARTUP ===
    logging.basicConfig(level=settings.log_level.upper())
    engine = build_engine(settings.db_url, timeout=settings.db_timeout)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    sessionmaker = build_sessionmaker(engine)

    if settings.bootstrap_clients_path:
        created = await seed_from_file(sessionmaker, settings.bootstrap_clients_path)
        logger.info("bootstrap: %d new clients", created)

    # Claves cargadas una sola vez para toda la vida del proceso
    signer = Signer.from_pem_files(
        settings.priv_key_path, settings.pub_key_path,
        algorithm=settings.jwt_alg, issuer=settings.issuer,
    )
    app.state.signer = signer
    app.state.tokens = build_token_service(sessionmaker, signer)
    app.state.directory = UserDirectory(settings.user_directory_url, settings.user_directory_timeout)

    purge_task = None
    if settings.purge_interval > 0:
        purge_task = asyncio.create_task(_purge_loop(app.state.tokens, settings.purge_interval))
    yield
    # === SHUTDOWN ===
    if purge_task is not None:
        purge_task.cancel()
        try:
            await purge_task
        except asyncio.CancelledError:
            pass
    await engine.dispose()

app = FastAPI(title="authsvc token service", lifespan=lifespan)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    if isinstance(exc, InvalidStateTransition):
        logger.error("state transition violation on %s: %s", request.url.path, exc.description)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(token_router, prefix="/oauth", tags=["oauth"])
app.include_router(authorize_router, prefix="/oauth", tags=["oauth"])
app.include_router(keys_router, prefix="/.well-known", tags=["keys"])

@app.get("/")
def root():
    return {"ok": True}
