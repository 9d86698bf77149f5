from __future__ import annotations

from sqlalchemy.ext.asyncio import async_sessionmaker

from authsvc.core.crypto import burn_secret_check, verify_secret
from authsvc.core.errors import ClientNotFound
from authsvc.core.schemas import GrantType, RegisteredClient
from authsvc.db.models import Client


class ClientRegistry:
    """Consulta de clientes registrados. Sólo lectura."""

    def __init__(self, sessionmaker: async_sessionmaker) -> None:
        self._sessionmaker = sessionmaker

    async def find(self, client_id: str) -> RegisteredClient:
        async with self._sessionmaker() as s:
            row = await s.get(Client, client_id)
        if row is None:
            raise ClientNotFound(f"client {client_id!r} not registered")
        return RegisteredClient(
            client_id=row.client_id,
            secret_hash=row.secret_hash,
            allowed_grant_types=frozenset(row.grant_types),
            redirect_uris=frozenset(row.redirect_uris or ()),
            allowed_scopes=frozenset(row.scopes),
        )

    async def authenticate(self, client_id: str, presented_secret: str) -> bool:
        try:
            client = await self.find(client_id)
        except ClientNotFound:
            burn_secret_check(presented_secret)
            return False
        return self.check_secret(client, presented_secret)

    @staticmethod
    def check_secret(client: RegisteredClient | None, presented_secret: str) -> bool:
        if client is None:
            burn_secret_check(presented_secret)
            return False
        return verify_secret(presented_secret, client.secret_hash)

    @staticmethod
    def supports_grant(client: RegisteredClient, grant_type: GrantType) -> bool:
        return client.supports_grant(grant_type)
