"""
Ejecucion de los lotes MERGE contra una conexion.

Cada lote es un round trip: `WITH cte AS (SELECT * FROM (VALUES ...) AS s(cols)) MERGE ...`.
Los lotes se ejecutan en estricto orden y nunca en paralelo (una conexion
acepta un comando a la vez).

Transaccionalidad:
- transactional=True (default): todos los lotes de un flush en una transaccion
  (o savepoint si la conexion ya tiene una abierta). Un fallo o una cancelacion
  hace rollback de todo el flush.
- transactional=False: cada lote se confirma por separado; un fallo deja
  aplicados los lotes anteriores.
"""

from __future__ import annotations

import asyncio
import re
import time
from typing import Any, Optional, Sequence

from loguru import logger
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from sqlbinding.shared.exceptions.sql_binding import (
    MergeExecutionException,
    UnsupportedColumnTypeException,
)

from .literals import format_values_rows
from .schema_discovery import SOURCE_CTE_NAME
from .types import MergeResult, RowTypeDescriptor, TableSchema, quote_identifier


# Mensajes de SQL Server para columnas text/ntext/image (p.ej. Msg 402 y 306)
_LOB_TYPE_ERROR_RE = re.compile(
    r"\b(?:n?text|image)\b[^.]*\bdata types?\b|\bdata types?\b[^.]*\b(?:n?text|image)\b",
    re.IGNORECASE,
)


def build_merge_statement(schema: TableSchema, row_type: RowTypeDescriptor, rows: Sequence[Any]) -> str:
    """Combina la CTE de valores del lote con la plantilla MERGE cacheada."""
    values = format_values_rows((row_type.values_of(row) for row in rows), row_type.semantic_types)
    column_names = ", ".join(quote_identifier(col) for col in schema.columns)
    return (
        f"WITH {SOURCE_CTE_NAME} AS (SELECT * FROM (VALUES {values}) AS s({column_names})) "
        f"{schema.merge_query}"
    )


def is_unsupported_column_type_error(error: Any) -> bool:
    """Detecta errores del servidor causados por columnas text/ntext/image."""
    return bool(_LOB_TYPE_ERROR_RE.search(str(error)))


class MergeExecutor:
    """Ejecuta los lotes de un flush sobre una conexion abierta."""

    def __init__(self, transactional: bool = True) -> None:
        self._transactional = transactional

    @property
    def transactional(self) -> bool:
        return self._transactional

    async def execute(
        self,
        conn: AsyncConnection,
        schema: TableSchema,
        row_type: RowTypeDescriptor,
        batches: Sequence[Sequence[Any]],
        *,
        progress: Optional[MergeResult] = None,
    ) -> MergeResult:
        """
        Ejecuta todos los lotes en orden.

        Args:
            conn: Conexion abierta (exclusiva de este flush)
            schema: Esquema cacheado de la tabla
            row_type: Descriptor del tipo de fila
            batches: Lotes ya deduplicados y particionados
            progress: Objeto de progreso a actualizar en sitio (opcional)

        Returns:
            MergeResult con los lotes/filas ejecutados

        Raises:
            LiteralFormatException, InvalidRowException: antes de cualquier round trip
            MergeExecutionException: el MERGE (o el commit) de un lote fallo; se abortan los restantes
            asyncio.CancelledError: se propaga tal cual
        """
        result = progress if progress is not None else MergeResult()
        result.batches_total = len(batches)
        result.transactional = self._transactional
        table_name = str(schema.table)
        started = time.perf_counter()

        # Todos los literales se generan antes del primer round trip: un valor
        # invalido en el ultimo lote no puede dejar lotes anteriores confirmados
        statements = [build_merge_statement(schema, row_type, batch) for batch in batches]

        try:
            if self._transactional:
                await self._execute_in_transaction(conn, schema, batches, statements, result)
            else:
                await self._execute_per_batch(conn, schema, batches, statements, result)
        except asyncio.CancelledError:
            logger.warning(
                f"Flush cancelado en '{table_name}' tras {result.batches_executed}/"
                f"{result.batches_total} lotes (rollback={'si' if self._transactional else 'no'})"
            )
            raise

        result.committed = True
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"Upsert en '{table_name}': {result.rows_executed} filas en "
            f"{result.batches_executed} lote(s), {elapsed_ms:.0f} ms"
        )
        return result

    async def _execute_in_transaction(
        self,
        conn: AsyncConnection,
        schema: TableSchema,
        batches: Sequence[Sequence[Any]],
        statements: Sequence[str],
        result: MergeResult,
    ) -> None:
        # Savepoint si el caller ya abrio una transaccion en la conexion
        scope = conn.begin_nested() if conn.in_transaction() else conn.begin()
        try:
            async with scope:
                for index, (batch, statement) in enumerate(zip(batches, statements)):
                    await self._execute_batch(conn, schema, statement, index, result)
                    result.batches_executed += 1
                    result.rows_executed += len(batch)
        except SQLAlchemyError as e:
            # Fallo el commit (o el release del savepoint): no quedo nada aplicado
            raise self._wrap_error(schema, len(batches) - 1, result, e) from e

    async def _execute_per_batch(
        self,
        conn: AsyncConnection,
        schema: TableSchema,
        batches: Sequence[Sequence[Any]],
        statements: Sequence[str],
        result: MergeResult,
    ) -> None:
        for index, (batch, statement) in enumerate(zip(batches, statements)):
            try:
                if conn.in_transaction():
                    await self._execute_batch(conn, schema, statement, index, result)
                else:
                    async with conn.begin():
                        await self._execute_batch(conn, schema, statement, index, result)
            except SQLAlchemyError as e:
                # Fallo el commit del lote
                raise self._wrap_error(schema, index, result, e) from e
            # Solo cuenta como aplicado despues del commit
            result.batches_executed += 1
            result.rows_executed += len(batch)

    async def _execute_batch(
        self,
        conn: AsyncConnection,
        schema: TableSchema,
        statement: str,
        index: int,
        result: MergeResult,
    ) -> None:
        started = time.perf_counter()
        try:
            # exec_driver_sql: el texto no pasa por el parser de binds de text()
            await conn.exec_driver_sql(statement)
        except SQLAlchemyError as e:
            raise self._wrap_error(schema, index, result, e) from e

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(f"Lote {index} en '{schema.table}': {elapsed_ms:.0f} ms")

    def _wrap_error(
        self,
        schema: TableSchema,
        index: int,
        result: MergeResult,
        error: SQLAlchemyError,
    ) -> MergeExecutionException:
        reason = str(error.orig) if isinstance(error, DBAPIError) and error.orig is not None else str(error)
        partially_applied = not self._transactional and result.batches_executed > 0
        logger.error(
            f"Fallo el lote {index} de {result.batches_total} en '{schema.table}' "
            f"(aplicados={result.batches_executed}, parcial={partially_applied}): {reason}"
        )
        exc_class = (
            UnsupportedColumnTypeException
            if is_unsupported_column_type_error(reason)
            else MergeExecutionException
        )
        return exc_class(
            table_name=str(schema.table),
            batch_index=index,
            batches_executed=result.batches_executed,
            partially_applied=partially_applied,
            reason=reason,
        )
