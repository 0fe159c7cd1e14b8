"""Taxonomía de errores del servicio. Cada error conoce su código HTTP y un mensaje seguro para el cliente."""

from fastapi import status


class ServiceError(Exception):
    """Error base: el manejador de excepciones de main.py lo traduce a JSON."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ServiceError):
    """Entrada faltante o mal formada (culpa del cliente)."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class InvalidCredentialsError(ServiceError):
    # Mismo error para "email no existe" y "contraseña incorrecta"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid email or password"


class ConflictError(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Email already registered"


class InternalError(ServiceError):
    """Fallo de base de datos o excepción inesperada. El detalle real solo va al log."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"


class StoreUnavailableError(ServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Database service unavailable"
