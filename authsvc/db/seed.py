"""
Alta de clientes registrados (proceso de administración, fuera del motor).

El motor sólo lee clientes; esto se usa desde tools/seed_client.py y al arrancar
con BOOTSTRAP_CLIENTS_PATH para registrar los clientes por defecto si no existen.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path

from sqlalchemy.ext.asyncio import async_sessionmaker

from authsvc.core.crypto import hash_secret
from authsvc.core.schemas import GrantType
from authsvc.db.models import Client

logger = logging.getLogger(__name__)


async def save_client_if_missing(
    sessionmaker: async_sessionmaker,
    client_id: str,
    secret: str,
    grant_types: list[str],
    scopes: list[str],
    redirect_uris: list[str] | None = None,
) -> bool:
    """Devuelve True si se ha creado, False si el client_id ya existía."""
    grants = [GrantType(g).value for g in grant_types]
    redirect_uris = list(redirect_uris or [])
    if not scopes:
        raise ValueError(f"client {client_id!r}: allowed scopes must not be empty")
    if GrantType.AUTHORIZATION_CODE.value in grants and not redirect_uris:
        raise ValueError(f"client {client_id!r}: authorization_code requires redirect URIs")

    async with sessionmaker() as s:
        if await s.get(Client, client_id) is not None:
            return False
        s.add(Client(
            client_id=client_id,
            secret_hash=hash_secret(secret),
            grant_types=grants,
            redirect_uris=redirect_uris,
            scopes=sorted(set(scopes)),
        ))
        await s.commit()
    logger.info("registered client %s (grants=%s)", client_id, ",".join(grants))
    return True


async def seed_from_file(sessionmaker: async_sessionmaker, path: str | Path) -> int:
    """
    Fichero JSON: lista de objetos
    {"client_id", "client_secret", "grant_types", "scopes", "redirect_uris"?}
    """
    entries = json.loads(Path(path).read_text(encoding="utf-8"))
    created = 0
    for e in entries:
        if await save_client_if_missing(
            sessionmaker,
            e["client_id"],
            e["client_secret"],
            e["grant_types"],
            e["scopes"],
            e.get("redirect_uris"),
        ):
            created += 1
    return created
