"""Funciones de utilidad para el manejo de contraseñas (hash bcrypt y verificación)."""

import logging
from functools import lru_cache

import bcrypt
from fastapi.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)

# bcrypt solo considera los primeros 72 bytes de la contraseña
BCRYPT_MAX_PASSWORD_BYTES = 72
DEFAULT_BCRYPT_ROUNDS = 12


def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > BCRYPT_MAX_PASSWORD_BYTES


def get_password_hash(password: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """Genera el hash de una contraseña plana usando bcrypt con sal aleatoria."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verifica una contraseña plana contra un hash almacenado.

    bcrypt.checkpw compara en tiempo constante. Un hash corrupto o una
    contraseña por encima del límite de bcrypt se consideran "no coincide".
    """
    if not plain_password or not hashed_password or password_too_long(plain_password):
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError as e:
        logger.warning(f"Stored password hash could not be checked: {e}")
        return False


@lru_cache(maxsize=8)
def dummy_hash(rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """Hash fijo usado cuando el email no existe, para igualar el tiempo de respuesta."""
    return get_password_hash("dummy-password-never-matches", rounds)


async def dummy_hash_async(rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    # La primera llamada por cada costo ejecuta bcrypt: también fuera del event loop
    return await run_in_threadpool(dummy_hash, rounds)


async def hash_password_async(password: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    # bcrypt es CPU-bound: se ejecuta fuera del event loop
    return await run_in_threadpool(get_password_hash, password, rounds)


async def verify_password_async(plain_password: str, hashed_password: str) -> bool:
    return await run_in_threadpool(verify_password, plain_password, hashed_password)
