from __future__ import annotations

import time

from authsvc.core.crypto import Clock
from authsvc.core.errors import (
    ClientNotFound,
    InvalidClient,
    InvalidGrant,
    InvalidRequest,
    InvalidScope,
    TokenNotFound,
    UnauthorizedClient,
)
from authsvc.core.schemas import GrantDecision, GrantRequest, GrantType, RegisteredClient
from authsvc.services.clients import ClientRegistry
from authsvc.services.records import AuthorizationStore


class GrantEvaluator:
    """
    Decide, por tipo de grant, si se emiten tokens y con qué sujeto y scopes.
    No escribe nada: el consumo del registro lo hace el TokenService vía store.
    """

    def __init__(self, clients: ClientRegistry, records: AuthorizationStore,
                 clock: Clock = time.time) -> None:
        self._clients = clients
        self._records = records
        self._clock = clock
        self._handlers = {
            GrantType.AUTHORIZATION_CODE: self._authorization_code,
            GrantType.REFRESH_TOKEN: self._refresh_token,
            GrantType.CLIENT_CREDENTIALS: self._client_credentials,
        }

    async def _load_client(self, client_id: str, presented_secret: str | None) -> RegisteredClient:
        try:
            return await self._clients.find(client_id)
        except ClientNotFound as e:
            if presented_secret is not None:
                self._clients.check_secret(None, presented_secret)
            raise InvalidClient(e.description) from e

    async def evaluate(self, request: GrantRequest) -> GrantDecision:
        client = await self._load_client(request.client_id, request.client_secret)
        if not client.supports_grant(request.grant_type):
            raise UnauthorizedClient(
                f"client {client.client_id} may not use {request.grant_type.value}"
            )
        # client_credentials exige secreto; en el resto se comprueba si se presenta
        if request.grant_type is GrantType.CLIENT_CREDENTIALS or request.client_secret is not None:
            if not self._clients.check_secret(client, request.client_secret or ""):
                raise InvalidClient(f"bad secret for client {client.client_id}")
        return await self._handlers[request.grant_type](client, request)

    async def _authorization_code(self, client: RegisteredClient, request: GrantRequest) -> GrantDecision:
        if not request.code or not request.redirect_uri:
            raise InvalidRequest("code and redirect_uri are required")
        try:
            record = await self._records.find_by_code(request.code)
        except TokenNotFound as e:
            raise InvalidGrant("authorization code unknown, consumed or revoked") from e

        if record.client_id != client.client_id:
            raise InvalidGrant(f"code was issued to {record.client_id}, not {client.client_id}")
        if record.code_expires_at is None or int(self._clock()) > record.code_expires_at:
            raise InvalidGrant("authorization code expired")
        # comparación exacta, nunca por prefijo
        if record.redirect_uri != request.redirect_uri:
            raise InvalidGrant("redirect_uri does not match the one bound to the code")

        return GrantDecision(
            client_id=client.client_id,
            subject=record.subject,
            scopes=frozenset(record.scopes) & client.allowed_scopes,
            issue_refresh=client.supports_grant(GrantType.REFRESH_TOKEN),
            consumes=record.id,
        )

    async def _refresh_token(self, client: RegisteredClient, request: GrantRequest) -> GrantDecision:
        if not request.refresh_token:
            raise InvalidRequest("refresh_token is required")
        try:
            record = await self._records.find_by_refresh_token(request.refresh_token)
        except TokenNotFound as e:
            raise InvalidGrant("refresh token unknown, consumed or revoked") from e

        if record.client_id != client.client_id:
            raise InvalidGrant(f"refresh token was issued to {record.client_id}")
        if record.refresh_expires_at is None or int(self._clock()) > record.refresh_expires_at:
            raise InvalidGrant("refresh token expired")

        granted = frozenset(record.scopes)
        scopes = granted
        if request.scopes is not None:
            if not request.scopes <= granted:
                raise InvalidScope(f"scopes {sorted(request.scopes - granted)} exceed the original grant")
            scopes = request.scopes

        return GrantDecision(
            client_id=client.client_id,
            subject=record.subject,
            scopes=scopes & client.allowed_scopes,
            issue_refresh=True,
            consumes=record.id,
        )

    async def _client_credentials(self, client: RegisteredClient, request: GrantRequest) -> GrantDecision:
        scopes = check_scopes(client, request.scopes)
        return GrantDecision(
            client_id=client.client_id,
            subject=client.client_id,
            scopes=scopes,
            issue_refresh=False,
        )

    async def authorize(self, client_id: str, redirect_uri: str,
                        scopes: frozenset[str] | None) -> tuple[RegisteredClient, frozenset[str]]:
        """Comprobaciones previas a emitir un código de autorización."""
        client = await self._load_client(client_id, None)
        if not client.supports_grant(GrantType.AUTHORIZATION_CODE):
            raise UnauthorizedClient(f"client {client_id} may not use authorization_code")
        if redirect_uri not in client.redirect_uris:
            raise InvalidRequest(f"redirect_uri {redirect_uri!r} not registered for {client_id}")
        return client, check_scopes(client, scopes)


def check_scopes(client: RegisteredClient, requested: frozenset[str] | None) -> frozenset[str]:
    """Sin petición explícita se conceden todos los scopes permitidos al cliente."""
    if requested is None:
        return client.allowed_scopes
    if not requested <= client.allowed_scopes:
        raise InvalidScope(
            f"scopes {sorted(requested - client.allowed_scopes)} not allowed for {client.client_id}"
        )
    return requested
