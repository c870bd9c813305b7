"""
Formateo de literales T-SQL para la lista VALUES del MERGE.

Reglas por tipo semantico:
- integer, boolean, float, decimal: sin comillas, representacion invariante
- text, other: N'...' con comillas simples duplicadas
- datetime: '...' en ISO-8601 con la precision minima (columnas `datetime` legacy no aceptan microsegundos ni offset)
- None: NULL para cualquier tipo
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from enum import Enum
from numbers import Integral, Real
from typing import Any, Iterable, Sequence

from sqlbinding.shared.constants.sql_constants import SemanticType
from sqlbinding.shared.exceptions.sql_binding import LiteralFormatException


NULL_LITERAL = "NULL"

_QUOTED_RE = re.compile(r"^(N?)'(.*)'$", re.DOTALL)


def _quote(text: str, unicode: bool = True) -> str:
    escaped = text.replace("'", "''")
    return f"N'{escaped}'" if unicode else f"'{escaped}'"


def _format_integer(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise LiteralFormatException(value, SemanticType.INTEGER.value, "se esperaba un entero")
    return str(int(value))


def _format_boolean(value: Any) -> str:
    # T-SQL no tiene literales true/false: bit 1/0
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, Integral) and value in (0, 1):
        return str(int(value))
    raise LiteralFormatException(value, SemanticType.BOOLEAN.value, "se esperaba un booleano")


def _format_float(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise LiteralFormatException(value, SemanticType.FLOAT.value, "se esperaba un numero")
    number = float(value)
    if math.isnan(number) or math.isinf(number):
        raise LiteralFormatException(value, SemanticType.FLOAT.value, "NaN/Infinity no existen en T-SQL")
    return repr(number)


def _format_decimal(value: Any) -> str:
    if isinstance(value, bool):
        raise LiteralFormatException(value, SemanticType.DECIMAL.value, "se esperaba un numero")
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise LiteralFormatException(value, SemanticType.DECIMAL.value, "valor no finito")
        return format(value, "f")
    if isinstance(value, Integral):
        return str(int(value))
    if isinstance(value, Real):
        return _format_float(value)
    raise LiteralFormatException(value, SemanticType.DECIMAL.value, "se esperaba un numero")


def _timespec(value: Any) -> str:
    """Precision minima que conserva el valor: segundos, milisegundos o microsegundos."""
    if value.microsecond == 0:
        return "seconds"
    if value.microsecond % 1000 == 0:
        return "milliseconds"
    return "microseconds"


def _format_datetime(value: Any) -> str:
    # Con 3 decimales (o ninguno) el literal convierte tambien a columnas `datetime`;
    # microsegundos u offset solo convierten a datetime2/datetimeoffset
    # datetime es subclase de date: se revisa primero
    if isinstance(value, datetime):
        return _quote(value.isoformat(sep="T", timespec=_timespec(value)), unicode=False)
    if isinstance(value, time):
        return _quote(value.isoformat(timespec=_timespec(value)), unicode=False)
    if isinstance(value, date):
        return _quote(value.isoformat(), unicode=False)
    if isinstance(value, str):
        return _quote(value, unicode=False)
    raise LiteralFormatException(value, SemanticType.DATETIME.value, "se esperaba fecha/hora")


def _format_text(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    return _quote(str(value))


_FORMATTERS = {
    SemanticType.INTEGER: _format_integer,
    SemanticType.BOOLEAN: _format_boolean,
    SemanticType.FLOAT: _format_float,
    SemanticType.DECIMAL: _format_decimal,
    SemanticType.DATETIME: _format_datetime,
    SemanticType.TEXT: _format_text,
    SemanticType.OTHER: _format_text,
}


def format_literal(value: Any, semantic_type: SemanticType) -> str:
    """
    Convierte un valor tipado en su literal T-SQL.

    Args:
        value: Valor del campo (None se emite como NULL)
        semantic_type: Tipo semantico del campo

    Returns:
        Texto del literal, listo para la lista VALUES

    Raises:
        LiteralFormatException: si el valor no es compatible con el tipo
    """
    if value is None:
        return NULL_LITERAL
    return _FORMATTERS[SemanticType(semantic_type)](value)


def format_values_row(values: Sequence[Any], semantic_types: Sequence[SemanticType]) -> str:
    """Tupla VALUES de una fila, p.ej. `(1, N'Widget', 15)`."""
    if len(values) != len(semantic_types):
        raise ValueError("values y semantic_types deben tener el mismo largo")
    return "(" + ", ".join(format_literal(v, t) for v, t in zip(values, semantic_types)) + ")"


def format_values_rows(rows: Iterable[Sequence[Any]], semantic_types: Sequence[SemanticType]) -> str:
    return ", ".join(format_values_row(values, semantic_types) for values in rows)


def parse_literal(literal: str, semantic_type: SemanticType) -> Any:
    """
    Inverso de `format_literal`.

    Los datetime se reconstruyen como datetime/date/time segun la forma del texto.
    """
    literal = literal.strip()
    if literal.upper() == NULL_LITERAL:
        return None

    semantic_type = SemanticType(semantic_type)
    if semantic_type is SemanticType.INTEGER:
        return int(literal)
    if semantic_type is SemanticType.BOOLEAN:
        if literal not in ("0", "1"):
            raise ValueError(f"Literal bit invalido: {literal}")
        return literal == "1"
    if semantic_type is SemanticType.FLOAT:
        return float(literal)
    if semantic_type is SemanticType.DECIMAL:
        try:
            return Decimal(literal)
        except InvalidOperation as e:
            raise ValueError(f"Literal decimal invalido: {literal}") from e

    match = _QUOTED_RE.match(literal)
    if not match:
        raise ValueError(f"Literal sin comillas para tipo {semantic_type.value}: {literal}")
    text = match.group(2).replace("''", "'")

    if semantic_type is SemanticType.DATETIME:
        if "T" in text or (" " in text and ":" in text):
            return datetime.fromisoformat(text)
        if ":" in text:
            return time.fromisoformat(text)
        return date.fromisoformat(text)
    return text
