# authsvc/db/models.py
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import JSON, String, Integer, DateTime
from datetime import datetime, timezone

from authsvc.core.schemas import RecordStatus


class Base(DeclarativeBase):
    pass


class Client(Base):
    __tablename__ = "clients"

    client_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    secret_hash: Mapped[str] = mapped_column(String(255))
    grant_types: Mapped[list[str]] = mapped_column(JSON)
    redirect_uris: Mapped[list[str]] = mapped_column(JSON, default=list)
    scopes: Mapped[list[str]] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )


class Authorization(Base):
    """
    Un grant emitido y sus artefactos. Los valores opacos (code, refresh, access)
    se guardan como SHA-256; las caducidades como epoch en segundos.
    """
    __tablename__ = "authorizations"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    client_id: Mapped[str] = mapped_column(String(128), index=True)
    subject: Mapped[str] = mapped_column(String(255))
    scopes: Mapped[list[str]] = mapped_column(JSON)

    access_jti: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    access_token_hash: Mapped[str | None] = mapped_column(String(64), unique=True, index=True, nullable=True)
    access_expires_at: Mapped[int | None] = mapped_column(Integer, nullable=True)

    refresh_token_hash: Mapped[str | None] = mapped_column(String(64), unique=True, index=True, nullable=True)
    refresh_expires_at: Mapped[int | None] = mapped_column(Integer, nullable=True)

    code_hash: Mapped[str | None] = mapped_column(String(64), unique=True, index=True, nullable=True)
    code_expires_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    redirect_uri: Mapped[str | None] = mapped_column(String(2048), nullable=True)

    status: Mapped[str] = mapped_column(String(16), default=RecordStatus.ACTIVE.value)
    parent_id: Mapped[str | None] = mapped_column(String(32), nullable=True)

    issued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
