"""
Constantes del SQL binding.
Define los tipos semanticos de campo y los valores por defecto del motor de upsert.
"""
from enum import Enum


# Tamano maximo de lote por sentencia MERGE
DEFAULT_BATCH_SIZE = 1000

# Tiempo de vida del esquema cacheado (las PK no deberian cambiar seguido)
DEFAULT_SCHEMA_CACHE_TTL_MINUTES = 10


class SemanticType(str, Enum):
    """Tipos semanticos reconocidos para los campos de una fila."""
    INTEGER = "integer"
    BOOLEAN = "boolean"
    FLOAT = "float"
    DECIMAL = "decimal"
    TEXT = "text"
    DATETIME = "datetime"
    OTHER = "other"
