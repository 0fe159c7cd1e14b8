"""Forma del documento 'users' en MongoDB y su representación sanitizada."""

from typing import Any, Dict

# Campos que el flujo de registro interpreta; el resto se guarda sin tocar
EMAIL_FIELD = "email"
PASSWORD_FIELD = "password"
FIRSTNAME_FIELD = "firstname"
ID_FIELD = "_id"


def normalize_email(email: str) -> str:
    """Los emails se comparan y se guardan en minúsculas y sin espacios alrededor."""
    return email.strip().lower()


def build_user_document(email: str, hashed_password: str, firstname: str, extra: Dict[str, Any]) -> Dict[str, Any]:
    document = {k: v for k, v in extra.items() if k not in (ID_FIELD, EMAIL_FIELD, PASSWORD_FIELD, FIRSTNAME_FIELD)}
    document.update({
        EMAIL_FIELD: email,
        # Nota: nunca se almacena la contraseña en texto plano.
        PASSWORD_FIELD: hashed_password,
        FIRSTNAME_FIELD: firstname,
    })
    return document


def sanitize_user(document: Dict[str, Any]) -> Dict[str, Any]:
    """Copia del documento sin 'password' y con '_id' como string."""
    sanitized = {k: v for k, v in document.items() if k != PASSWORD_FIELD}
    if ID_FIELD in sanitized:
        sanitized[ID_FIELD] = str(sanitized[ID_FIELD])
    return sanitized
