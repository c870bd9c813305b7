"""
Configuracion del motor de upsert.

Este modulo no realiza I/O: solo define y valida configuracion.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlbinding.shared.constants.sql_constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_SCHEMA_CACHE_TTL_MINUTES,
)
from sqlbinding.shared.exceptions.sql_binding import InvalidBindingConfigException


@dataclass(frozen=True)
class SqlBindingConfig:
    """
    Parametros expuestos a la capa externa.

    - batch_size: filas por sentencia MERGE
    - schema_cache_ttl_seconds: vida de un esquema cacheado
    - transactional: si True, un flush es todo-o-nada
    """

    batch_size: int = DEFAULT_BATCH_SIZE
    schema_cache_ttl_seconds: float = DEFAULT_SCHEMA_CACHE_TTL_MINUTES * 60.0
    transactional: bool = True

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise InvalidBindingConfigException("batch_size", self.batch_size, "debe ser >= 1")
        if self.schema_cache_ttl_seconds <= 0:
            raise InvalidBindingConfigException(
                "schema_cache_ttl_seconds", self.schema_cache_ttl_seconds, "debe ser > 0"
            )

    @classmethod
    def from_settings(cls, settings=None) -> "SqlBindingConfig":
        """Construye la configuracion desde `Settings` (variables de entorno)."""
        if settings is None:
            from sqlbinding.core.config import settings
        return cls(
            batch_size=settings.SQL_BATCH_SIZE,
            schema_cache_ttl_seconds=settings.SQL_SCHEMA_CACHE_TTL_MINUTES * 60.0,
            transactional=settings.SQL_TRANSACTIONAL_FLUSH,
        )
