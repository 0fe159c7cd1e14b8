"""Acceso a la colección de usuarios en MongoDB (credential store)."""

import logging
from typing import Any, Dict, Optional

from pymongo import AsyncMongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from summary_service.errors import ConflictError, StoreUnavailableError

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
DEFAULT_TIMEOUT_SECONDS = 5.0


class MongoCredentialStore:
    """
    Lee y escribe documentos de usuario por email.

    El cliente (y su pool de conexiones) se crea en open() al arrancar el
    servicio y se cierra en close() al apagarlo.
    """

    def __init__(
        self,
        uri: str,
        database: str,
        collection_name: str = USERS_COLLECTION,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.uri = uri
        self.timeout_seconds = timeout_seconds
        self.database_name = database
        self.collection_name = collection_name
        self.client: Optional[AsyncMongoClient] = None
        self.collection = None

    async def open(self) -> None:
        """Conecta, verifica con ping y garantiza el índice único sobre 'email'."""
        self.client = self.create_client()
        try:
            db = self.client.get_default_database(default=self.database_name)
            self.collection = db[self.collection_name]
            await self.client.admin.command("ping")
            # El índice único es la defensa real contra registros concurrentes
            await self.collection.create_index("email", unique=True)
            logger.info(f"Conexión a MongoDB establecida (base '{db.name}', colección '{self.collection_name}').")
        except PyMongoError as e:
            logger.critical(f"No se pudo conectar a MongoDB: {e}", exc_info=True)
            await self.close()
            raise StoreUnavailableError("MongoDB unavailable") from e

    def create_client(self) -> AsyncMongoClient:
        # Sin estos límites pymongo espera 30s por un servidor caído
        timeout_ms = int(self.timeout_seconds * 1000)
        return AsyncMongoClient(
            self.uri,
            serverSelectionTimeoutMS=timeout_ms,
            connectTimeoutMS=timeout_ms,
        )

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
            self.client = None
            logger.info("Conexión a MongoDB cerrada.")

    async def ping(self) -> bool:
        if self.client is None:
            return False
        try:
            await self.client.admin.command("ping")
            return True
        except PyMongoError as e:
            logger.warning(f"MongoDB ping failed: {e}")
            return False

    async def find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one({"email": email})

    async def insert_user(self, document: Dict[str, Any]) -> Dict[str, Any]:
        """
        Inserta un nuevo documento de usuario y lo devuelve con su '_id'.

        Raises:
            ConflictError: si el índice único rechaza el email.
        """
        to_insert = dict(document)
        try:
            result = await self.collection.insert_one(to_insert)
        except DuplicateKeyError as e:
            logger.warning(f"Duplicate key on insert for email {document.get('email')}: {e}")
            raise ConflictError() from e
        to_insert["_id"] = result.inserted_id
        return to_insert
