from __future__ import annotations

from functools import lru_cache
from pathlib import Path
import base64
import hashlib
import json
import secrets
import time
from typing import Callable

import jwt
from jwt import InvalidTokenError, InvalidSignatureError
from cryptography.hazmat.primitives import serialization
from passlib.context import CryptContext
from pydantic import ValidationError

from authsvc.core.errors import Malformed, InvalidSignature, Expired
from authsvc.core.schemas import SignedToken, TokenClaims

Clock = Callable[[], float]

# Hash de secretos de cliente y contraseñas de usuario (salado, verificación en tiempo constante)
secret_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_secret(secret: str) -> str:
    return secret_context.hash(secret)


def verify_secret(secret: str, secret_hash: str) -> bool:
    try:
        return secret_context.verify(secret, secret_hash)
    except (ValueError, TypeError):
        # hash corrupto o formato desconocido
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_secret(secrets.token_urlsafe(16))


def burn_secret_check(secret: str) -> None:
    """Verifica contra un hash ficticio para que 'no existe' tarde lo mismo que 'no coincide'."""
    verify_secret(secret, _dummy_hash())


def new_opaque_token() -> str:
    """Refresh tokens y códigos de autorización: 256 bits aleatorios, base64url."""
    return secrets.token_urlsafe(32)


def new_jti() -> str:
    return secrets.token_urlsafe(24)


def digest(value: str) -> str:
    """Sólo se persiste el SHA-256 de los valores opacos, nunca el valor en claro."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def _b64url_from_int(i: int) -> str:
    b = i.to_bytes((i.bit_length() + 7) // 8, "big")
    return base64.urlsafe_b64encode(b).decode().rstrip("=")


def public_jwk(public_key) -> dict:
    """JWK RSA de la clave pública, con kid = huella RFC 7638."""
    numbers = public_key.public_numbers()
    jwk = {"kty": "RSA", "n": _b64url_from_int(numbers.n), "e": _b64url_from_int(numbers.e)}
    canonical = json.dumps({k: jwk[k] for k in ("e", "kty", "n")}, separators=(",", ":"))
    kid = base64.urlsafe_b64encode(hashlib.sha256(canonical.encode()).digest()).decode().rstrip("=")
    return {**jwk, "kid": kid, "use": "sig"}


def load_private_key(path: str | Path):
    return serialization.load_pem_private_key(Path(path).read_bytes(), password=None)


def load_public_key(path: str | Path):
    return serialization.load_pem_public_key(Path(path).read_bytes())


class Signer:
    """
    Firma y verifica access tokens (JWT).

    Las claves se cargan una vez al arrancar y viven lo que el proceso; no hay rotación,
    el `kid` de la cabecera sólo identifica la clave publicada en el JWKS.
    """

    def __init__(self, private_key, public_key, *, algorithm: str = "RS256",
                 issuer: str | None = None, clock: Clock = time.time) -> None:
        self._private_key = private_key
        self._public_key = public_key
        self.algorithm = algorithm
        self.issuer = issuer
        self.jwk = public_jwk(public_key)
        self.kid = self.jwk["kid"]
        self._clock = clock

    @classmethod
    def from_pem_files(cls, priv_path: str | Path, pub_path: str | Path, **kwargs) -> "Signer":
        return cls(load_private_key(priv_path), load_public_key(pub_path), **kwargs)

    def jwks(self) -> dict:
        return {"keys": [{**self.jwk, "alg": self.algorithm}]}

    def mint(self, subject: str, client_id: str, scopes, ttl: int) -> SignedToken:
        now = int(self._clock())
        claims = TokenClaims(
            subject=subject,
            client_id=client_id,
            scopes=frozenset(scopes),
            issued_at=now,
            expires_at=now + ttl,
            jti=new_jti(),
            issuer=self.issuer,
        )
        token = jwt.encode(
            claims.to_payload(), self._private_key,
            algorithm=self.algorithm, headers={"kid": self.kid},
        )
        return SignedToken(value=token, claims=claims)

    def verify(self, token: str) -> TokenClaims:
        """
        Orden de comprobación: estructura, firma, caducidad.
        Un token caducado con firma válida da Expired, nunca se devuelven sus claims.
        """
        # 1) Estructura
        try:
            header = jwt.get_unverified_header(token)
        except InvalidTokenError as e:
            raise Malformed(f"unreadable header: {e}") from e

        # 2) Firma (algoritmo y clave esperados; el motivo exacto sólo va al log)
        if header.get("alg") != self.algorithm or header.get("kid", self.kid) != self.kid:
            raise InvalidSignature("unexpected alg/kid in header")
        try:
            payload = jwt.decode(
                token, self._public_key, algorithms=[self.algorithm],
                options={"verify_exp": False, "verify_iat": False, "verify_nbf": False},
            )
        except InvalidSignatureError as e:
            raise InvalidSignature(str(e)) from e
        except InvalidTokenError as e:
            raise Malformed(str(e)) from e

        try:
            claims = TokenClaims.from_payload(payload)
        except (KeyError, AttributeError, ValidationError) as e:
            raise Malformed(f"missing or invalid claims: {e}") from e
        if self.issuer and claims.issuer != self.issuer:
            raise InvalidSignature(f"foreign issuer {claims.issuer!r}")

        # 3) Caducidad
        if int(self._clock()) > claims.expires_at:
            raise Expired(f"expired at {claims.expires_at}")
        return claims
