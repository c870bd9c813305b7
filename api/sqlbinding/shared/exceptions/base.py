"""
Excepción raíz de la aplicación.

Cada excepción lleva su propio status HTTP y código de error, de modo que la
API, el CLI y los logs la reportan igual sin conocer la subclase concreta.
"""
from typing import Optional, Dict, Any


class AppException(Exception):
    """
    Excepción base de la aplicación.
    Todas las excepciones del motor de upsert heredan de esta clase.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Args:
            message: Mensaje legible para el caller
            status_code: Status HTTP con el que se expone (400 entrada, 422 esquema, 502 servidor SQL)
            error_code: Código estable para clientes (p.ej. NO_PRIMARY_KEY_FOUND)
            details: Contexto estructurado (tabla, lote, columnas faltantes...)
        """
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Cuerpo de respuesta: `{"error", "message", "details"}`."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.error_code}, status={self.status_code})"
