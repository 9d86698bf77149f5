"""
Orquestación del ciclo de vida de los tokens.

Flujo authorization_code:
    ISSUED_CODE -> EXCHANGED -> ACTIVE_SESSION -> (REFRESHED* | EXPIRED | REVOKED)
Cada refresco crea un registro nuevo (id nuevo) y consume el anterior.
"""
from __future__ import annotations

import logging
import time

from authsvc.core.crypto import Clock, Signer, digest, new_opaque_token
from authsvc.core.errors import (
    GrantError,
    InvalidStateTransition,
    TokenInvalid,
    TokenNotFound,
)
from authsvc.core.schemas import (
    AuthorizationCode,
    GrantRequest,
    GrantType,
    RecordStatus,
    TokenResponse,
    ValidationResult,
    format_scope,
)
from authsvc.db.models import Authorization
from authsvc.services.grants import GrantEvaluator
from authsvc.services.records import AuthorizationStore, new_record_id

logger = logging.getLogger(__name__)
audit = logging.getLogger("authsvc.audit")


class TokenService:
    def __init__(
        self,
        evaluator: GrantEvaluator,
        signer: Signer,
        records: AuthorizationStore,
        *,
        access_token_ttl: int = 3600,
        refresh_token_ttl: int = 30 * 24 * 3600,
        authorization_code_ttl: int = 600,
        record_retention: int = 24 * 3600,
        clock: Clock = time.time,
    ) -> None:
        self._evaluator = evaluator
        self._signer = signer
        self._records = records
        self.access_token_ttl = access_token_ttl
        self.refresh_token_ttl = refresh_token_ttl
        self.authorization_code_ttl = authorization_code_ttl
        self.record_retention = record_retention
        self._clock = clock

    async def authorize(self, client_id: str, redirect_uri: str, subject: str,
                        scopes: frozenset[str] | None = None) -> AuthorizationCode:
        """Emite un código de un solo uso para un usuario ya autenticado."""
        try:
            client, granted = await self._evaluator.authorize(client_id, redirect_uri, scopes)
        except GrantError as e:
            audit.info("authorize rejected client=%s error=%s reason=%s", client_id, e.error, e.description)
            raise

        code = new_opaque_token()
        record = Authorization(
            id=new_record_id(),
            client_id=client.client_id,
            subject=subject,
            scopes=sorted(granted),
            code_hash=digest(code),
            code_expires_at=int(self._clock()) + self.authorization_code_ttl,
            redirect_uri=redirect_uri,
        )
        await self._records.create(record)
        audit.info("code issued client=%s subject=%s record=%s", client_id, subject, record.id)
        return AuthorizationCode(code=code, redirect_uri=redirect_uri,
                                 expires_in=self.authorization_code_ttl)

    async def issue(self, request: GrantRequest) -> TokenResponse:
        try:
            decision = await self._evaluator.evaluate(request)
        except GrantError as e:
            audit.info("grant rejected type=%s client=%s error=%s reason=%s",
                       request.grant_type.value, request.client_id, e.error, e.description)
            raise

        access = self._signer.mint(decision.subject, decision.client_id,
                                   decision.scopes, self.access_token_ttl)
        refresh = new_opaque_token() if decision.issue_refresh else None

        record = Authorization(
            id=new_record_id(),
            client_id=decision.client_id,
            subject=decision.subject,
            scopes=sorted(decision.scopes),
            access_jti=access.claims.jti,
            access_token_hash=digest(access.value),
            access_expires_at=access.claims.expires_at,
        )
        if refresh is not None:
            record.refresh_token_hash = digest(refresh)
            record.refresh_expires_at = access.claims.issued_at + self.refresh_token_ttl

        if decision.consumes is None:
            await self._records.create(record)
        else:
            try:
                await self._records.consume(decision.consumes, record)
            except GrantError as e:
                # otra petición ganó la carrera por el mismo código/refresh token
                audit.info("grant rejected type=%s client=%s error=%s reason=%s",
                           request.grant_type.value, request.client_id, e.error, e.description)
                raise

        audit.info("tokens issued type=%s client=%s record=%s parent=%s",
                   request.grant_type.value, decision.client_id, record.id, decision.consumes)
        return TokenResponse(
            access_token=access.value,
            refresh_token=refresh,
            expires_in=self.access_token_ttl,
            scope=format_scope(decision.scopes),
        )

    async def refresh(self, client_id: str, refresh_token: str,
                      scopes: frozenset[str] | None = None,
                      client_secret: str | None = None) -> TokenResponse:
        return await self.issue(GrantRequest(
            grant_type=GrantType.REFRESH_TOKEN,
            client_id=client_id,
            client_secret=client_secret,
            refresh_token=refresh_token,
            scopes=scopes,
        ))

    async def validate(self, token: str) -> ValidationResult:
        """Sin efectos secundarios. El motivo del rechazo sólo va al log y a `reason`."""
        try:
            claims = self._signer.verify(token)
        except TokenInvalid as e:
            logger.info("token rejected reason=%s detail=%s", e.reason, e.description)
            return ValidationResult(valid=False, reason=e.reason)

        try:
            record = await self._records.find_by_access_token(token, active_only=False)
        except TokenNotFound:
            logger.warning("token rejected reason=unknown jti=%s", claims.jti)
            return ValidationResult(valid=False, reason="unknown")
        if record.status != RecordStatus.ACTIVE.value:
            # revocado, o sustituido por un refresco (consumed)
            logger.info("token rejected reason=%s jti=%s record=%s", record.status, claims.jti, record.id)
            return ValidationResult(valid=False, reason=record.status)
        if record.access_jti != claims.jti:
            logger.warning("token rejected reason=jti_mismatch jti=%s record=%s", claims.jti, record.id)
            return ValidationResult(valid=False, reason="unknown")
        return ValidationResult(valid=True, claims=claims)

    async def revoke(self, token: str) -> None:
        """Idempotente: revocar dos veces no falla. NotFound sólo si el token nunca existió."""
        record = await self._records.find_any(token)
        if record.status != RecordStatus.ACTIVE.value:
            logger.info("revoke no-op record=%s status=%s", record.id, record.status)
            return
        try:
            await self._records.transition(record.id, RecordStatus.REVOKED)
        except InvalidStateTransition:
            # carrera con un refresco o con otra revocación: ya es terminal
            current = await self._records.get(record.id)
            if current.status == RecordStatus.ACTIVE.value:
                raise
            logger.info("revoke raced record=%s status=%s", record.id, current.status)
            return
        audit.info("record revoked client=%s record=%s", record.client_id, record.id)

    async def purge_expired(self) -> int:
        return await self._records.purge_expired(self.record_retention)
