"""
Flujos de registro y login de usuarios.

Cada flujo valida la entrada antes de tocar la base de datos, delega en el
credential store y en utils (bcrypt) y lanza un error de errors.py cuando algo
falla. La traducción a códigos HTTP se hace en main.py.
"""

import logging
from typing import Any, Dict, List

from summary_service import models
from summary_service.errors import (
    ConflictError,
    InternalError,
    InvalidCredentialsError,
    ServiceError,
    ValidationError,
)
from summary_service.schemas import LoginRequest, RegisterRequest
from summary_service.utils import (
    DEFAULT_BCRYPT_ROUNDS,
    dummy_hash_async,
    hash_password_async,
    password_too_long,
    verify_password_async,
)

logger = logging.getLogger(__name__)


def _missing_fields(values: Dict[str, Any]) -> List[str]:
    return [name for name, value in values.items() if value is None or not str(value).strip()]


def _check_extra_keys(extra: Dict[str, Any]) -> None:
    # Claves tipo "$set" o "a.b" no son válidas como campos de primer nivel en Mongo
    bad = [key for key in extra if key.startswith("$") or "." in key]
    if bad:
        raise ValidationError(f"Invalid field names: {', '.join(sorted(bad))}")


async def register_user(store, payload: RegisterRequest, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> Dict[str, Any]:
    """
    Registra un usuario nuevo y devuelve el documento guardado sin 'password'.

    Raises:
        ValidationError: faltan email/password/firstname, o la entrada es inválida.
        ConflictError: el email ya está registrado.
        InternalError: fallo de base de datos o de hashing.
    """
    missing = _missing_fields({"email": payload.email, "password": payload.password, "firstname": payload.firstname})
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    if password_too_long(payload.password):
        raise ValidationError("Password must be at most 72 bytes")
    extra = payload.extra_fields()
    _check_extra_keys(extra)

    email = models.normalize_email(payload.email)
    logger.info(f"Registration attempt for email: {email}")

    try:
        if await store.find_by_email(email) is not None:
            logger.warning(f"Registration failed: Email {email} already exists.")
            raise ConflictError()

        hashed_password = await hash_password_async(payload.password, rounds)
        document = models.build_user_document(email, hashed_password, payload.firstname, extra)
        saved = await store.insert_user(document)
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"Database error during user creation for email {email}: {e}", exc_info=True)
        raise InternalError("Could not save user") from e

    logger.info(f"User created with ID: {saved.get(models.ID_FIELD)} for email: {email}")
    return models.sanitize_user(saved)


async def authenticate_user(store, payload: LoginRequest, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> Dict[str, str]:
    """
    Verifica email y contraseña. Devuelve solo {email, firstname}.

    Email inexistente y contraseña incorrecta producen exactamente el mismo
    InvalidCredentialsError.
    """
    missing = _missing_fields({"email": payload.email, "password": payload.password})
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    email = models.normalize_email(payload.email)
    logger.info(f"Login attempt for user: {email}")

    try:
        user = await store.find_by_email(email)
    except Exception as e:
        logger.error(f"Database error during login for {email}: {e}", exc_info=True)
        raise InternalError() from e

    if user is None:
        # Se verifica contra un hash ficticio para no revelar por tiempo si el email existe
        await verify_password_async(payload.password, await dummy_hash_async(rounds))
        logger.warning(f"Login failed for user: {email}")
        raise InvalidCredentialsError()

    if not await verify_password_async(payload.password, user.get(models.PASSWORD_FIELD, "")):
        logger.warning(f"Login failed for user: {email}")
        raise InvalidCredentialsError()

    logger.info(f"Login successful for user: {email}")
    return {"email": user[models.EMAIL_FIELD], "firstname": user.get(models.FIRSTNAME_FIELD, "")}
