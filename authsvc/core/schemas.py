from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class GrantType(str, Enum):
    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"
    CLIENT_CREDENTIALS = "client_credentials"


class RecordStatus(str, Enum):
    ACTIVE = "active"
    CONSUMED = "consumed"
    REVOKED = "revoked"


def parse_scope(scope: str | None) -> frozenset[str] | None:
    """'a b c' -> {'a', 'b', 'c'}; None o vacío -> None (sin petición explícita)."""
    if not scope or not scope.strip():
        return None
    return frozenset(scope.split())


def format_scope(scopes) -> str:
    return " ".join(sorted(scopes))


class RegisteredClient(BaseModel):
    model_config = ConfigDict(frozen=True)

    client_id: str
    secret_hash: str
    allowed_grant_types: frozenset[GrantType]
    redirect_uris: frozenset[str] = frozenset()
    allowed_scopes: frozenset[str]

    def supports_grant(self, grant_type: GrantType) -> bool:
        return grant_type in self.allowed_grant_types


class TokenClaims(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject: str
    client_id: str
    scopes: frozenset[str]
    issued_at: int
    expires_at: int
    jti: str
    issuer: str | None = None

    def to_payload(self) -> dict:
        payload = {
            "sub": self.subject,
            "client_id": self.client_id,
            "scope": format_scope(self.scopes),
            "iat": self.issued_at,
            "exp": self.expires_at,
            "jti": self.jti,
        }
        if self.issuer:
            payload["iss"] = self.issuer
        return payload

    @classmethod
    def from_payload(cls, payload: dict) -> "TokenClaims":
        return cls(
            subject=payload["sub"],
            client_id=payload["client_id"],
            scopes=frozenset(payload["scope"].split()),
            issued_at=payload["iat"],
            expires_at=payload["exp"],
            jti=payload["jti"],
            issuer=payload.get("iss"),
        )


class SignedToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str
    claims: TokenClaims


class GrantRequest(BaseModel):
    grant_type: GrantType
    client_id: str
    client_secret: str | None = None
    code: str | None = None
    redirect_uri: str | None = None
    refresh_token: str | None = None
    scopes: frozenset[str] | None = None


class GrantDecision(BaseModel):
    """Resultado de evaluar un grant: qué se emite y qué registro se consume."""
    model_config = ConfigDict(frozen=True)

    client_id: str
    subject: str
    scopes: frozenset[str]
    issue_refresh: bool
    consumes: str | None = None


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int
    scope: str = ""

    def to_wire(self) -> dict:
        return self.model_dump(exclude_none=True)


class AuthorizationCode(BaseModel):
    code: str
    redirect_uri: str
    expires_in: int


class ValidationResult(BaseModel):
    valid: bool
    claims: TokenClaims | None = None
    # Motivo interno (malformed, expired, revoked...); no se expone al exterior
    reason: str | None = None

    def to_external(self) -> dict:
        if not self.valid:
            return {"valid": False}
        return {
            "valid": True,
            "claims": {
                "jti": self.claims.jti,
                "iss": self.claims.issuer,
                "sub": self.claims.subject,
                "client_id": self.claims.client_id,
                "scope": format_scope(self.claims.scopes),
                "exp": self.claims.expires_at,
            },
        }
