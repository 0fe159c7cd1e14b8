"""Backend de Call Summary: datos tabulares de llamadas y autenticación de usuarios."""

__version__ = "1.0.0"
