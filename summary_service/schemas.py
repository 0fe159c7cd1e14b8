"""Modelos Pydantic (schemas) para validación de datos de entrada/salida del servicio."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# --- Schemas de Usuario ---

class LoginRequest(BaseModel):
    """Credenciales de login. Los campos faltantes se rechazan en el flujo con 400."""
    email: Optional[str] = None
    password: Optional[str] = None


class RegisterRequest(BaseModel):
    """Datos para crear un usuario. Se aceptan campos adicionales y se guardan tal cual."""
    email: Optional[str] = None
    password: Optional[str] = None
    firstname: Optional[str] = None

    model_config = ConfigDict(extra="allow")

    def extra_fields(self) -> dict:
        return dict(self.model_extra or {})


class UserResponse(BaseModel):
    """Usuario sanitizado: el documento almacenado sin el campo 'password'."""
    id: str = Field(alias="_id")
    email: str
    firstname: str

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class AuthenticatedUser(BaseModel):
    email: str
    firstname: str


class LoginResponse(BaseModel):
    success: bool = True
    message: str = "User authenticated"
    user: AuthenticatedUser


# --- Schemas de Monitoreo ---

class HealthResponse(BaseModel):
    status: str
    service: str
    databases: dict[str, str]


class ErrorResponse(BaseModel):
    error: str
