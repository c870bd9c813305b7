"""
Deduplicacion por primary key y particion en lotes.

Funciones puras (sin I/O).
"""

from __future__ import annotations

from itertools import islice
from typing import Any, Iterable, Iterator, Sequence, TypeVar

from .types import RowTypeDescriptor

T = TypeVar("T")


def primary_key_of(row: Any, row_type: RowTypeDescriptor, primary_keys: Sequence[str]) -> tuple[str, ...]:
    """
    Clave de PK de una fila: representacion textual de cada campo de la PK,
    en orden de catalogo. Se usa una tupla para que (1, 23) y (12, 3) no colisionen.
    """
    return tuple(str(row_type.value_of(row, pk)) for pk in primary_keys)


def dedupe_rows(
    rows: Sequence[T],
    row_type: RowTypeDescriptor,
    primary_keys: Sequence[str],
) -> list[T]:
    """
    Colapsa las filas a una por valor de PK; gana la ultima ocurrencia.

    El recorrido es de atras hacia adelante (la primera vista es la mas reciente)
    y el resultado conserva el orden original ascendente entre las sobrevivientes.

    Ejemplo:
        [{id:1, cost:10}, {id:2, cost:5}, {id:1, cost:15}]
        -> [{id:2, cost:5}, {id:1, cost:15}]
    """
    seen: set[tuple[str, ...]] = set()
    kept: list[T] = []
    for row in reversed(rows):
        key = primary_key_of(row, row_type, primary_keys)
        if key in seen:
            continue
        seen.add(key)
        kept.append(row)
    kept.reverse()
    return kept


def partition_rows(rows: Iterable[T], batch_size: int) -> Iterator[list[T]]:
    """
    Divide las filas en lotes consecutivos de a lo mas `batch_size`.
    El ultimo lote puede ser menor; el orden se conserva.
    """
    if batch_size < 1:
        raise ValueError("batch_size debe ser >= 1")
    iterator = iter(rows)
    while True:
        chunk = list(islice(iterator, batch_size))
        if not chunk:
            return
        yield chunk
