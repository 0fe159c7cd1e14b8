"""Conexión a PostgreSQL (tabla "call summary") usando el motor asíncrono de SQLAlchemy."""

import ssl
import asyncio
import logging
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import exc, text
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from summary_service.errors import InternalError, StoreUnavailableError

logger = logging.getLogger(__name__)

CALL_SUMMARY_QUERY = text('SELECT * FROM "call summary"')


def _insecure_ssl_context() -> ssl.SSLContext:
    # TLS sin verificar certificado (equivalente a rejectUnauthorized: false)
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


class CallSummaryReader:
    """Lector de la tabla "call summary". Devuelve las filas tal cual, sin paginar ni filtrar."""

    def __init__(self, url: Union[str, URL], use_ssl: bool = True, timeout_seconds: float = 5.0):
        self.url = url
        self.use_ssl = use_ssl
        self.timeout_seconds = timeout_seconds
        self.engine: Optional[AsyncEngine] = None

    async def open(self) -> None:
        self.engine = self.create_engine()
        try:
            async with self.engine.connect() as connection:
                await connection.execute(text("SELECT 1"))
            logger.info("Conexión a PostgreSQL establecida exitosamente.")
        except (exc.SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            logger.critical(f"Error al conectar con PostgreSQL: {e}", exc_info=True)
            await self.close()
            raise StoreUnavailableError("PostgreSQL unavailable") from e

    def create_engine(self) -> AsyncEngine:
        # timeout: conexión de asyncpg; pool_timeout: espera por una conexión libre del pool
        connect_args = {"timeout": self.timeout_seconds}
        if self.use_ssl:
            connect_args["ssl"] = _insecure_ssl_context()
        # pool_pre_ping=True ayuda a manejar conexiones inactivas en el pool.
        return create_async_engine(
            self.url,
            pool_pre_ping=True,
            pool_timeout=self.timeout_seconds,
            connect_args=connect_args,
        )

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            logger.info("Pool de PostgreSQL cerrado.")

    async def ping(self) -> bool:
        if self.engine is None:
            return False
        try:
            async with self.engine.connect() as connection:
                await connection.execute(text("SELECT 1"))
            return True
        except (exc.SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            logger.warning(f"PostgreSQL ping failed: {e}")
            return False

    async def fetch_call_summary(self) -> List[Dict[str, Any]]:
        """
        Ejecuta SELECT * FROM "call summary".

        Raises:
            InternalError: ante cualquier fallo del driver; el mensaje real solo se registra en el log.
        """
        if self.engine is None:
            raise StoreUnavailableError("PostgreSQL unavailable")
        try:
            async with self.engine.connect() as connection:
                result = await connection.execute(CALL_SUMMARY_QUERY)
                rows = [dict(row) for row in result.mappings().all()]
        except (exc.SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            logger.error(f"Error al consultar 'call summary': {e}", exc_info=True)
            raise InternalError("Failed to fetch call summary data") from e
        logger.info(f"Consulta 'call summary' devolvió {len(rows)} filas.")
        return rows
