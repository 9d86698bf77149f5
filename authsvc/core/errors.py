"""
Taxonomía de errores del motor de tokens.

Cada error lleva un código estilo OAuth2 (`error`), una descripción interna para logs
y un status HTTP. Hacia fuera sólo se expone el código: la descripción nunca sale del
proceso (evita oráculos del tipo "cliente desconocido" vs "secreto incorrecto").
"""
from __future__ import annotations


class AuthError(Exception):
    error = "server_error"
    status_code = 500

    def __init__(self, description: str | None = None) -> None:
        self.description = description
        super().__init__(description or self.error)

    def to_dict(self) -> dict:
        return {"error": self.error}


# --- Referencias inexistentes ---

class NotFound(AuthError):
    error = "not_found"
    status_code = 404


class ClientNotFound(NotFound):
    pass


class TokenNotFound(NotFound):
    pass


# --- Errores de grant (recuperables, se devuelven al cliente) ---

class GrantError(AuthError):
    error = "invalid_request"
    status_code = 400


class InvalidRequest(GrantError):
    pass


class InvalidGrant(GrantError):
    error = "invalid_grant"


class InvalidScope(GrantError):
    error = "invalid_scope"


class UnauthorizedClient(GrantError):
    error = "unauthorized_client"


class InvalidClient(GrantError):
    error = "invalid_client"
    status_code = 401


# --- Verificación de tokens ---

class TokenInvalid(AuthError):
    error = "invalid_token"
    status_code = 401
    reason = "invalid"


class Malformed(TokenInvalid):
    reason = "malformed"


class InvalidSignature(TokenInvalid):
    reason = "invalid_signature"


class Expired(TokenInvalid):
    reason = "expired"


# --- Fallos internos ---

class InvalidStateTransition(AuthError):
    """Transición ilegal en el store: indica corrupción o un bug, nunca un error de usuario."""


class StoreUnavailable(AuthError):
    error = "temporarily_unavailable"
    status_code = 503


class DirectoryUnavailable(AuthError):
    error = "temporarily_unavailable"
    status_code = 503
