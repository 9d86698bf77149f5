from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    # Base de datos
    db_url: str = Field("sqlite+aiosqlite:///./authsvc.sqlite3", alias="DB_URL")
    db_timeout: float = Field(5.0, alias="DB_TIMEOUT")

    # Cripto/JWT
    jwt_alg: str = Field("RS256", alias="JWT_ALG")
    issuer: str = Field("http://127.0.0.1:8000", alias="ISSUER")

    # Rutas de claves PEM
    priv_key_path: str = Field("keys/issuer_private.pem", alias="ISSUER_PRIVATE_KEY_PATH")
    pub_key_path: str = Field("keys/issuer_public.pem", alias="ISSUER_PUBLIC_KEY_PATH")

    # Vida de los artefactos (segundos)
    access_token_ttl: int = Field(3600, alias="ACCESS_TOKEN_TTL")
    refresh_token_ttl: int = Field(30 * 24 * 3600, alias="REFRESH_TOKEN_TTL")
    authorization_code_ttl: int = Field(600, alias="AUTHORIZATION_CODE_TTL")

    # Limpieza de registros caducados
    record_retention: int = Field(24 * 3600, alias="RECORD_RETENTION")
    purge_interval: int = Field(300, alias="PURGE_INTERVAL")  # 0 = desactivado

    # Clientes que se registran al arrancar (JSON)
    bootstrap_clients_path: str | None = Field(None, alias="BOOTSTRAP_CLIENTS_PATH")

    # Directorio de usuarios externo
    user_directory_url: str = Field("http://user-management-service:8080", alias="USER_DIRECTORY_URL")
    user_directory_timeout: float = Field(5.0, alias="USER_DIRECTORY_TIMEOUT")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,  # permite defaults si no hay variable de entorno
    )


settings = Settings()
