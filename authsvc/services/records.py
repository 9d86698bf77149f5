"""
Store de registros de autorización.

Única pieza con estado mutable compartido. Las transiciones son condicionales sobre
el estado actual (`UPDATE ... WHERE status = 'active'`), de modo que dos peticiones
concurrentes con el mismo código o refresh token no pueden ganar las dos: la que
llega segunda no encuentra filas que actualizar.
"""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from authsvc.core.crypto import Clock, digest
from authsvc.core.errors import (
    InvalidGrant,
    InvalidStateTransition,
    StoreUnavailable,
    TokenNotFound,
)
from authsvc.core.schemas import RecordStatus
from authsvc.db.models import Authorization

logger = logging.getLogger(__name__)

ACTIVE = RecordStatus.ACTIVE.value


def new_record_id() -> str:
    return uuid.uuid4().hex


class AuthorizationStore:
    def __init__(self, sessionmaker: async_sessionmaker, *, timeout: float = 5.0,
                 clock: Clock = time.time) -> None:
        self._sessionmaker = sessionmaker
        self._timeout = timeout
        self._clock = clock

    @asynccontextmanager
    async def _session(self):
        # Toda llamada al store tiene un tiempo acotado; al cancelar, la sesión hace rollback
        try:
            async with asyncio.timeout(self._timeout):
                async with self._sessionmaker() as s:
                    yield s
        except TimeoutError as e:
            raise StoreUnavailable(f"record store call exceeded {self._timeout}s") from e
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"record store failure: {e}") from e

    async def create(self, record: Authorization) -> str:
        if not record.id:
            record.id = new_record_id()
        record.status = ACTIVE
        async with self._session() as s:
            s.add(record)
            await s.commit()
        return record.id

    async def get(self, record_id: str) -> Authorization:
        async with self._session() as s:
            record = await s.get(Authorization, record_id)
        if record is None:
            raise TokenNotFound(f"record {record_id} not found")
        return record

    async def _find(self, column, value: str, *, active_only: bool = True) -> Authorization:
        stmt = select(Authorization).where(column == digest(value))
        if active_only:
            stmt = stmt.where(Authorization.status == ACTIVE)
        async with self._session() as s:
            record = (await s.execute(stmt)).scalar_one_or_none()
        if record is None:
            raise TokenNotFound(f"no {'active ' if active_only else ''}record for {column.key}")
        return record

    async def find_by_access_token(self, token: str, *, active_only: bool = True) -> Authorization:
        return await self._find(Authorization.access_token_hash, token, active_only=active_only)

    async def find_by_refresh_token(self, token: str) -> Authorization:
        return await self._find(Authorization.refresh_token_hash, token)

    async def find_by_code(self, code: str) -> Authorization:
        return await self._find(Authorization.code_hash, code)

    async def find_any(self, value: str) -> Authorization:
        """Busca un access token, refresh token o código en cualquier estado."""
        h = digest(value)
        stmt = select(Authorization).where(or_(
            Authorization.access_token_hash == h,
            Authorization.refresh_token_hash == h,
            Authorization.code_hash == h,
        ))
        async with self._session() as s:
            record = (await s.execute(stmt)).scalar_one_or_none()
        if record is None:
            raise TokenNotFound("token was never issued")
        return record

    async def transition(self, record_id: str, new_status: RecordStatus) -> None:
        """Sólo ACTIVE->CONSUMED y ACTIVE->REVOKED; CONSUMED y REVOKED son terminales."""
        if new_status is RecordStatus.ACTIVE:
            raise InvalidStateTransition(f"record {record_id}: cannot move back to active")
        async with self._session() as s:
            async with s.begin():
                res = await s.execute(
                    update(Authorization)
                    .where(Authorization.id == record_id, Authorization.status == ACTIVE)
                    .values(status=new_status.value)
                )
                if res.rowcount == 1:
                    return
                current = await s.scalar(
                    select(Authorization.status).where(Authorization.id == record_id)
                )
        if current is None:
            raise TokenNotFound(f"record {record_id} not found")
        raise InvalidStateTransition(f"record {record_id}: {current} -> {new_status.value}")

    async def consume(self, record_id: str, replacement: Authorization | None = None) -> None:
        """
        Consume un registro ACTIVE (código o refresh) y persiste su sustituto en la
        misma transacción. Si otro llamante lo consumió o revocó antes: InvalidGrant
        y no se escribe nada.
        """
        async with self._session() as s:
            async with s.begin():
                res = await s.execute(
                    update(Authorization)
                    .where(Authorization.id == record_id, Authorization.status == ACTIVE)
                    .values(status=RecordStatus.CONSUMED.value, code_hash=None)
                )
                if res.rowcount != 1:
                    raise InvalidGrant(f"record {record_id} is no longer active")
                if replacement is not None:
                    if not replacement.id:
                        replacement.id = new_record_id()
                    replacement.status = ACTIVE
                    replacement.parent_id = record_id
                    s.add(replacement)

    async def purge_expired(self, retention: int) -> int:
        """Borra registros cuyas caducidades (todas) quedan más atrás que `retention`."""
        cutoff = int(self._clock()) - retention
        stmt = delete(Authorization).where(and_(
            func.coalesce(Authorization.access_expires_at, 0) < cutoff,
            func.coalesce(Authorization.refresh_expires_at, 0) < cutoff,
            func.coalesce(Authorization.code_expires_at, 0) < cutoff,
        ))
        async with self._session() as s:
            async with s.begin():
                res = await s.execute(stmt)
        if res.rowcount:
            logger.info("purged %d expired authorization records", res.rowcount)
        return res.rowcount
