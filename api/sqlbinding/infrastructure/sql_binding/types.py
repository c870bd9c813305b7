"""
Tipos puros del motor de upsert.

Se mantienen libres de I/O para poder testearlos facilmente.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Union

from sqlbinding.shared.constants.sql_constants import SemanticType
from sqlbinding.shared.exceptions.sql_binding import (
    InvalidRowException,
    InvalidRowTypeException,
    InvalidTableIdentifierException,
    NoPrimaryKeyFoundException,
)


def quote_identifier(name: str) -> str:
    """Delimita un identificador T-SQL con corchetes (escapando ']')."""
    return "[" + name.replace("]", "]]") + "]"


def _split_identifier(raw: str) -> list[str]:
    """
    Separa un nombre multiparte respetando los corchetes.

    `[dbo].[My.Table]` -> ["dbo", "My.Table"]; `]]` dentro de corchetes es un ']' literal.
    """
    parts: list[str] = []
    current: list[str] = []
    in_brackets = False
    i = 0
    while i < len(raw):
        ch = raw[i]
        if in_brackets:
            if ch == "]":
                if raw[i + 1:i + 2] == "]":
                    current.append("]")
                    i += 2
                    continue
                in_brackets = False
            else:
                current.append(ch)
        elif ch == "[":
            in_brackets = True
        elif ch == ".":
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        i += 1

    if in_brackets:
        raise InvalidTableIdentifierException(raw, "corchete sin cerrar")
    parts.append("".join(current).strip())
    return parts


@dataclass(frozen=True)
class TableIdentifier:
    """
    Identifica la tabla destino: base de datos + (schema opcional) + tabla.

    Es la clave del cache de esquemas y el destino literal del MERGE.
    """

    table: str
    schema: Optional[str] = None
    database: str = ""

    @classmethod
    def parse(cls, name: str, database: str = "") -> "TableIdentifier":
        """
        Interpreta `tabla`, `schema.tabla` o sus variantes con corchetes.
        """
        if not name or not name.strip():
            raise InvalidTableIdentifierException(name or "", "el nombre esta vacio")

        parts = _split_identifier(name.strip())
        if len(parts) > 2:
            raise InvalidTableIdentifierException(name, "se esperaba 'tabla' o 'schema.tabla'")
        if any(not p for p in parts):
            raise InvalidTableIdentifierException(name, "contiene partes vacias")

        if len(parts) == 2:
            return cls(table=parts[1], schema=parts[0], database=database)
        return cls(table=parts[0], database=database)

    @property
    def quoted_name(self) -> str:
        """Nombre delimitado para usar en T-SQL, p.ej. `[dbo].[Products]`."""
        if self.schema:
            return f"{quote_identifier(self.schema)}.{quote_identifier(self.table)}"
        return quote_identifier(self.table)

    @property
    def cache_key(self) -> str:
        return f"{self.database}.{self.schema or ''}.{self.table}"

    def __str__(self) -> str:
        return f"{self.schema}.{self.table}" if self.schema else self.table


@dataclass(frozen=True)
class FieldDescriptor:
    """Campo de un tipo de fila: nombre de columna + tipo semantico."""

    name: str
    semantic_type: SemanticType = SemanticType.OTHER


FieldSpec = Union[FieldDescriptor, tuple]


@dataclass(frozen=True)
class RowTypeDescriptor:
    """
    Descripcion estatica de la forma de las filas del caller.

    Se construye una vez por tipo de fila (no por fila). El orden de los campos
    define el orden de columnas del MERGE y de cada tupla VALUES.

    Las filas pueden ser Mappings (`row[campo]`) u objetos con atributos.
    """

    name: str
    fields: tuple[FieldDescriptor, ...]

    def __post_init__(self) -> None:
        if not self.fields:
            raise InvalidRowTypeException(self.name, "no tiene campos")
        seen: set[str] = set()
        for f in self.fields:
            key = f.name.lower()
            if key in seen:
                raise InvalidRowTypeException(self.name, f"campo duplicado '{f.name}'")
            seen.add(key)

    @classmethod
    def of(cls, name: str, fields: Iterable[FieldSpec]) -> "RowTypeDescriptor":
        """
        Construye un descriptor desde pares (nombre, tipo).

        Ejemplo:
            RowTypeDescriptor.of("Product", [
                ("ProductID", SemanticType.INTEGER),
                ("Name", "text"),
                ("Cost", SemanticType.DECIMAL),
            ])
        """
        built: list[FieldDescriptor] = []
        for spec in fields:
            if isinstance(spec, FieldDescriptor):
                built.append(spec)
            else:
                field_name, semantic_type = spec
                try:
                    built.append(FieldDescriptor(field_name, SemanticType(semantic_type)))
                except ValueError:
                    raise InvalidRowTypeException(
                        name, f"tipo semantico desconocido '{semantic_type}' en '{field_name}'"
                    ) from None
        return cls(name=name, fields=tuple(built))

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    @property
    def semantic_types(self) -> list[SemanticType]:
        return [f.semantic_type for f in self.fields]

    def find_field(self, column_name: str) -> Optional[FieldDescriptor]:
        """Busca un campo por nombre de columna (sin distinguir mayusculas)."""
        lowered = column_name.lower()
        for f in self.fields:
            if f.name.lower() == lowered:
                return f
        return None

    def value_of(self, row: Any, field_name: str) -> Any:
        try:
            if isinstance(row, Mapping):
                return row[field_name]
            return getattr(row, field_name)
        except (KeyError, AttributeError):
            raise InvalidRowException(self.name, field_name) from None

    def values_of(self, row: Any) -> tuple[Any, ...]:
        """Valores de la fila en el orden del descriptor."""
        return tuple(self.value_of(row, f.name) for f in self.fields)


@dataclass(frozen=True)
class TableSchema:
    """
    Esquema descubierto para un par (tabla, tipo de fila).

    - primary_keys: campos del tipo de fila que forman la PK, en orden de catalogo
    - columns: todas las columnas a upsertear (orden del descriptor)
    - merge_query: sentencia MERGE parametrizada solo por la CTE de valores
    """

    table: TableIdentifier
    primary_keys: tuple[str, ...]
    columns: tuple[str, ...]
    merge_query: str

    def __post_init__(self) -> None:
        if not self.primary_keys:
            raise NoPrimaryKeyFoundException(str(self.table))


@dataclass(frozen=True)
class CacheEntry:
    """Esquema cacheado + instante de creacion (reloj monotono, segundos)."""

    schema: TableSchema
    created_at: float

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        return now - self.created_at >= ttl_seconds


@dataclass
class MergeResult:
    """
    Progreso/resultado de la ejecucion de los lotes de un flush.

    Se actualiza en sitio mientras se ejecutan los lotes para que el caller
    sepa cuanto se aplico si el flush falla o se cancela.
    """

    batches_total: int = 0
    batches_executed: int = 0
    rows_executed: int = 0
    transactional: bool = True
    committed: bool = False

    @property
    def partially_applied(self) -> bool:
        """True si hay lotes confirmados y el flush no termino."""
        if self.transactional:
            return False
        return 0 < self.batches_executed < self.batches_total


@dataclass(frozen=True)
class FlushResult:
    """Resultado de un flush exitoso."""

    table: str
    rows_received: int
    rows_upserted: int
    batches: int
