"""
Collector de filas para upsert (buffer del lado del caller).

Uso:
    collector = SqlAsyncCollector("dbo.Products", product_type)
    await collector.add(row)        # repetido
    await collector.flush()         # cache -> dedupe -> lotes -> MERGE

Contrato:
- Un collector por unidad de trabajo; se acumula, se hace flush y se descarta.
- `add` y `flush` se serializan con un lock por instancia.
- Sin transaccion envolvente, un flush aplicado a medias deja el collector
  inutilizable; en cualquier otro fallo el buffer queda intacto para reintentar.
- Dos collectors distintos sobre la misma tabla no tienen orden garantizado:
  si sus flush compiten por la misma PK, cualquiera de los dos puede quedar.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import AbstractAsyncContextManager
from typing import Any, Callable, Generic, Iterable, Optional, TypeVar, Union

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from sqlbinding.shared.exceptions.sql_binding import CollectorUnusableException, StoreConnectionException

from .batching import dedupe_rows, partition_rows
from .binding_config import SqlBindingConfig
from .merge_executor import MergeExecutor
from .schema_cache import SchemaCache, get_schema_cache
from .types import FlushResult, MergeResult, RowTypeDescriptor, TableIdentifier

T = TypeVar("T")

ConnectionFactory = Callable[[], AbstractAsyncContextManager[AsyncConnection]]


def _default_connection_factory() -> AbstractAsyncContextManager[AsyncConnection]:
    from sqlbinding.infrastructure.database.session import connect

    return connect()


class SqlAsyncCollector(Generic[T]):
    """
    Acumula filas de un tipo y las upsertea en la tabla destino al hacer flush.
    """

    def __init__(
        self,
        table: Union[TableIdentifier, str],
        row_type: RowTypeDescriptor,
        *,
        connection_factory: Optional[ConnectionFactory] = None,
        schema_cache: Optional[SchemaCache] = None,
        config: Optional[SqlBindingConfig] = None,
        executor: Optional[MergeExecutor] = None,
    ) -> None:
        """
        Args:
            table: Tabla destino (`TableIdentifier` o nombre `schema.tabla`)
            row_type: Descriptor estatico del tipo de fila
            connection_factory: Abre una conexion por flush (default: engine del proceso)
            schema_cache: Cache de esquemas compartido (default: cache del proceso)
            config: Tamano de lote y transaccionalidad (default: desde settings)
            executor: Ejecutor de MERGE (default: segun config.transactional)
        """
        if isinstance(table, str):
            from sqlbinding.infrastructure.database.session import get_database_name

            table = TableIdentifier.parse(table, database=get_database_name())
        self._table = table
        self._row_type = row_type
        self._connection_factory = connection_factory or _default_connection_factory
        self._schema_cache = schema_cache or get_schema_cache()
        self._config = config or SqlBindingConfig.from_settings()
        self._executor = executor or MergeExecutor(transactional=self._config.transactional)
        self._rows: list[T] = []
        self._lock = asyncio.Lock()
        self._unusable_reason: Optional[str] = None

    @property
    def table(self) -> TableIdentifier:
        return self._table

    @property
    def row_type(self) -> RowTypeDescriptor:
        return self._row_type

    @property
    def pending_count(self) -> int:
        """Filas en el buffer pendientes de flush."""
        return len(self._rows)

    @property
    def is_usable(self) -> bool:
        return self._unusable_reason is None

    def _ensure_usable(self) -> None:
        if self._unusable_reason is not None:
            raise CollectorUnusableException(str(self._table), self._unusable_reason)

    async def add(self, row: Optional[T]) -> None:
        """Agrega una fila al buffer. `None` se ignora."""
        if row is None:
            return
        async with self._lock:
            self._ensure_usable()
            self._rows.append(row)

    async def add_many(self, rows: Iterable[Optional[T]]) -> None:
        """Agrega varias filas conservando su orden (los `None` se ignoran)."""
        async with self._lock:
            self._ensure_usable()
            self._rows.extend(row for row in rows if row is not None)

    async def flush(self) -> FlushResult:
        """
        Upsertea todas las filas acumuladas y vacia el buffer.

        Returns:
            FlushResult (con rows_received=0 si el buffer estaba vacio)

        Raises:
            CollectorUnusableException: un flush previo quedo aplicado a medias
            SqlBindingException: fallos de descubrimiento, formato o ejecucion
            asyncio.CancelledError: cancelacion del caller (se propaga)
        """
        async with self._lock:
            self._ensure_usable()
            if not self._rows:
                return FlushResult(table=str(self._table), rows_received=0, rows_upserted=0, batches=0)

            progress = MergeResult(transactional=self._executor.transactional)
            try:
                result = await self._upsert(list(self._rows), progress)
            except BaseException as e:
                if progress.partially_applied:
                    self._unusable_reason = f"{type(e).__name__}: {e}"
                    logger.error(
                        f"Flush parcial en '{self._table}': {progress.batches_executed}/"
                        f"{progress.batches_total} lotes aplicados; collector inutilizable"
                    )
                raise

            self._rows.clear()
            return result

    async def _upsert(self, rows: list[T], progress: MergeResult) -> FlushResult:
        started = time.perf_counter()
        try:
            async with self._connection_factory() as conn:
                schema = await self._schema_cache.get_or_discover(conn, self._table, self._row_type)
                unique_rows = dedupe_rows(rows, self._row_type, schema.primary_keys)
                batches = list(partition_rows(unique_rows, self._config.batch_size))
                if len(unique_rows) < len(rows):
                    logger.debug(
                        f"'{self._table}': {len(rows) - len(unique_rows)} fila(s) duplicadas por PK descartadas"
                    )
                await self._executor.execute(conn, schema, self._row_type, batches, progress=progress)
        except SQLAlchemyError as e:
            # Discovery y executor ya tipan sus errores: lo que llega aqui es abrir/cerrar la conexion
            logger.error(f"Error de conexion para '{self._table}': {e}")
            raise StoreConnectionException(str(self._table), str(e)) from e

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"Flush de '{self._table}': recibidas={len(rows)}, upserteadas={len(unique_rows)}, "
            f"lotes={len(batches)}, batch_size={self._config.batch_size}, {elapsed_ms:.0f} ms"
        )
        return FlushResult(
            table=str(self._table),
            rows_received=len(rows),
            rows_upserted=len(unique_rows),
            batches=len(batches),
        )
