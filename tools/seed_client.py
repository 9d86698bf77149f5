"""
Registra un cliente si no existe.

    python tools/seed_client.py web-frontend s3cr3t authorization_code,refresh_token \
        "profile email" https://app.example.org/callback
"""
import asyncio, sys

from authsvc.core.config import settings
from authsvc.db.models import Base
from authsvc.db.seed import save_client_if_missing
from authsvc.db.session import build_engine, build_sessionmaker


async def main(argv: list[str]) -> int:
    if len(argv) < 4:
        print(__doc__)
        return 2
    client_id, secret, grants, scopes, *redirect_uris = argv
    engine = build_engine(settings.db_url, timeout=settings.db_timeout)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        created = await save_client_if_missing(
            build_sessionmaker(engine), client_id, secret,
            grants.split(","), scopes.split(), redirect_uris,
        )
    finally:
        await engine.dispose()
    print("created" if created else "already registered")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1:])))
