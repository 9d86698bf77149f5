"""
Cliente del directorio de usuarios externo (user-management-service).

El motor nunca lo llama: lo usa el frontal de login (/oauth/authorize) para
autenticar al usuario final antes de pedir un código de autorización.
"""
from __future__ import annotations

from enum import Enum
import json
import logging
import urllib.error
import urllib.parse
import urllib.request

from pydantic import BaseModel, Field, ValidationError

from authsvc.core.crypto import burn_secret_check, verify_secret
from authsvc.core.errors import DirectoryUnavailable

logger = logging.getLogger(__name__)


class Role(str, Enum):
    ADMIN = "ADMIN"
    USER = "USER"


class DirectoryUser(BaseModel):
    id: int | None = None
    username: str
    password_hash: str = Field(alias="passwordHash")
    role: Role


class UserDirectory:
    def __init__(self, base_url: str, timeout: float = 5.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def lookup_by_username(self, username: str) -> DirectoryUser | None:
        """GET /users/search/findByUsername?username=... ; 404 -> None."""
        query = urllib.parse.urlencode({"username": username})
        url = f"{self.base_url}/users/search/findByUsername?{query}"
        try:
            with urllib.request.urlopen(url, timeout=self.timeout) as resp:
                doc = json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            if e.code == 404:
                return None
            raise DirectoryUnavailable(f"user directory answered {e.code}") from e
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            raise DirectoryUnavailable(f"user directory unreachable: {e}") from e
        except json.JSONDecodeError as e:
            raise DirectoryUnavailable(f"user directory sent invalid JSON: {e}") from e

        if not doc:
            return None
        try:
            return DirectoryUser.model_validate(doc)
        except ValidationError as e:
            raise DirectoryUnavailable(f"unexpected user document: {e}") from e

    def authenticate(self, username: str, password: str) -> DirectoryUser | None:
        """Usuario inexistente y contraseña errónea tardan y responden igual."""
        user = self.lookup_by_username(username)
        if user is None:
            burn_secret_check(password)
            return None
        if not verify_secret(password, user.password_hash):
            logger.info("login failed for %s", username)
            return None
        return user
