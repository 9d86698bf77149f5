# tests/conftest.py
import json
import os
import sys
import time
from pathlib import Path

import pytest
import pytest_asyncio

# --- Asegurar que podemos importar 'authsvc' desde la raíz del repo ---
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# --- Generación de claves efímeras (RSA 2048) ---
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

WEB_REDIRECT = "https://web.example/callback"

# Clientes registrados en todas las pruebas (secretos en claro sólo aquí)
TEST_CLIENTS = [
    {
        "client_id": "web",
        "client_secret": "web-secret",
        "grant_types": ["authorization_code", "refresh_token"],
        "scopes": ["profile", "email", "orders:read"],
        "redirect_uris": [WEB_REDIRECT],
    },
    {
        "client_id": "kiosk",
        "client_secret": "kiosk-secret",
        "grant_types": ["authorization_code"],
        "scopes": ["profile"],
        "redirect_uris": [WEB_REDIRECT],
    },
    {
        "client_id": "c1",
        "client_secret": "c1-secret",
        "grant_types": ["client_credentials"],
        "scopes": ["metrics:write", "devices:read"],
    },
]


def _generate_ephemeral_keys(keys_dir: Path) -> tuple[Path, Path]:
    keys_dir.mkdir(parents=True, exist_ok=True)

    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    pem_priv = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    (keys_dir / "issuer_private.pem").write_bytes(pem_priv)

    pem_pub = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    (keys_dir / "issuer_public.pem").write_bytes(pem_pub)

    return (keys_dir / "issuer_private.pem"), (keys_dir / "issuer_public.pem")


def _prepare_test_env() -> None:
    tmp = (ROOT / ".pytest_tmp").absolute()
    tmp.mkdir(exist_ok=True)

    # BD SQLite temporal para pruebas de la API (se recrea en cada ejecución)
    db_file = tmp / "test.sqlite3"
    db_file.unlink(missing_ok=True)
    os.environ["DB_URL"] = f"sqlite+aiosqlite:///{db_file.as_posix()}"

    os.environ["JWT_ALG"] = "RS256"
    os.environ["ISSUER"] = "https://issuer.test"
    os.environ["PURGE_INTERVAL"] = "0"
    os.environ["USER_DIRECTORY_URL"] = "http://users.test"

    clients_file = tmp / "clients.json"
    clients_file.write_text(json.dumps(TEST_CLIENTS), encoding="utf-8")
    os.environ["BOOTSTRAP_CLIENTS_PATH"] = clients_file.as_posix()

    priv_path, pub_path = _generate_ephemeral_keys(tmp)
    os.environ["ISSUER_PRIVATE_KEY_PATH"] = priv_path.as_posix()
    os.environ["ISSUER_PUBLIC_KEY_PATH"] = pub_path.as_posix()


# Antes de que ningún módulo de test importe authsvc.core.config
_prepare_test_env()


class FakeClock:
    """Reloj controlable: las caducidades se prueban sin dormir."""

    def __init__(self, start: float | None = None) -> None:
        self.now = float(int(start if start is not None else time.time()))

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def signer(rsa_key, clock):
    from authsvc.core.crypto import Signer
    return Signer(rsa_key, rsa_key.public_key(), issuer="https://issuer.test", clock=clock)


@pytest_asyncio.fixture
async def engine(tmp_path):
    from authsvc.db.models import Base
    from authsvc.db.session import build_engine

    engine = build_engine(f"sqlite+aiosqlite:///{(tmp_path / 'engine.sqlite3').as_posix()}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def sessionmaker(engine):
    from authsvc.db.seed import save_client_if_missing
    from authsvc.db.session import build_sessionmaker

    maker = build_sessionmaker(engine)
    for c in TEST_CLIENTS:
        await save_client_if_missing(
            maker, c["client_id"], c["client_secret"], c["grant_types"],
            c["scopes"], c.get("redirect_uris"),
        )
    return maker


@pytest.fixture
def registry(sessionmaker):
    from authsvc.services.clients import ClientRegistry
    return ClientRegistry(sessionmaker)


@pytest.fixture
def records(sessionmaker, clock):
    from authsvc.services.records import AuthorizationStore
    return AuthorizationStore(sessionmaker, timeout=5.0, clock=clock)


@pytest.fixture
def evaluator(registry, records, clock):
    from authsvc.services.grants import GrantEvaluator
    return GrantEvaluator(registry, records, clock=clock)


@pytest.fixture
def service(evaluator, signer, records, clock):
    from authsvc.services.tokens import TokenService
    return TokenService(
        evaluator, signer, records,
        access_token_ttl=300,
        refresh_token_ttl=3600,
        authorization_code_ttl=60,
        record_retention=100,
        clock=clock,
    )


@pytest.fixture(scope="session")
def client():
    """
    Cliente HTTP de pruebas con entorno efímero:
    - BD sqlite en .pytest_tmp/test.sqlite3
    - Claves RSA y clientes de arranque en .pytest_tmp/
    """
    from fastapi.testclient import TestClient
    from authsvc.main import app
    # Con 'with' forzamos lifespan: tablas, clientes y claves en startup
    with TestClient(app) as c:
        yield c
