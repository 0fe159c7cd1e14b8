"""Carga y validación de la configuración del servicio desde variables de entorno (.env)."""

import os
import logging
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.engine import URL

from summary_service import __version__

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Variables sin valor por defecto: sin ellas el servicio no puede arrancar
REQUIRED_VARS = ["MONGODB_URI", "PG_USER", "PG_PASSWORD", "PG_HOST", "PG_DATABASE"]


class Settings(BaseModel):
    PROJECT_NAME: str = "Call Summary Service"
    SERVICE_NAME: str = "summary_service"
    VERSION: str = __version__

    # --- MongoDB (usuarios) ---
    mongodb_uri: str
    mongodb_database: str = "callsummary"

    # --- PostgreSQL (call summary) ---
    pg_user: str
    pg_password: str
    pg_host: str
    pg_database: str
    pg_port: int = 5432
    pg_ssl: bool = True

    # --- Seguridad ---
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # --- HTTP ---
    request_timeout_seconds: float = Field(default=15.0, gt=0)
    # Límite de cada operación contra MongoDB/PostgreSQL; debe ser menor que request_timeout_seconds
    store_timeout_seconds: float = Field(default=5.0, gt=0)
    cors_origins: List[str] = ["http://localhost:8080"]
    port: int = 5000
    log_level: str = "INFO"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):
        if isinstance(v, str):
            return [i.strip() for i in v.split(",") if i.strip()]
        if isinstance(v, list):
            return v
        return []

    @model_validator(mode="after")
    def check_timeouts(self):
        if self.store_timeout_seconds >= self.request_timeout_seconds:
            raise ValueError("STORE_TIMEOUT_SECONDS must be lower than REQUEST_TIMEOUT_SECONDS")
        return self

    @property
    def postgres_url(self) -> URL:
        # URL.create escapa caracteres especiales en usuario y contraseña
        return URL.create(
            "postgresql+asyncpg",
            username=self.pg_user,
            password=self.pg_password,
            host=self.pg_host,
            port=self.pg_port,
            database=self.pg_database,
        )


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def load_settings() -> Settings:
    """
    Lee el entorno (cargando .env si existe) y construye Settings.

    Raises:
        EnvironmentError: si falta alguna variable obligatoria.
    """
    load_dotenv()

    values = {
        # MongoDBURI es el nombre que usaba el despliegue anterior
        "MONGODB_URI": _env("MONGODB_URI") or _env("MongoDBURI"),
        # user/password/host/database/port: nombres del despliegue anterior
        "PG_USER": _env("PG_USER") or _env("user"),
        "PG_PASSWORD": _env("PG_PASSWORD") or _env("password"),
        "PG_HOST": _env("PG_HOST") or _env("host"),
        "PG_DATABASE": _env("PG_DATABASE") or _env("database"),
    }
    missing = [var for var in REQUIRED_VARS if not values.get(var)]
    if missing:
        msg = f"Missing environment variables: {', '.join(missing)}"
        logger.critical(msg)
        raise EnvironmentError(msg)

    optional = {
        "mongodb_database": _env("MONGODB_DATABASE"),
        "pg_port": _env("PG_PORT") or _env("port"),
        "pg_ssl": _env("PG_SSL"),
        "bcrypt_rounds": _env("BCRYPT_ROUNDS"),
        "request_timeout_seconds": _env("REQUEST_TIMEOUT_SECONDS"),
        "store_timeout_seconds": _env("STORE_TIMEOUT_SECONDS"),
        "cors_origins": _env("CORS_ORIGINS"),
        "port": _env("PORT"),
        "log_level": _env("LOG_LEVEL"),
    }

    return Settings(
        mongodb_uri=values["MONGODB_URI"],
        pg_user=values["PG_USER"],
        pg_password=values["PG_PASSWORD"],
        pg_host=values["PG_HOST"],
        pg_database=values["PG_DATABASE"],
        **{k: v for k, v in optional.items() if v is not None},
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
