"""
Casos de uso para upsert de filas en tablas SQL.
"""
from typing import Optional

from loguru import logger

from sqlbinding.application.dto.upsert_dto import UpsertRequestDTO, UpsertResultDTO
from sqlbinding.infrastructure.sql_binding.binding_config import SqlBindingConfig
from sqlbinding.infrastructure.sql_binding.collector import ConnectionFactory, SqlAsyncCollector
from sqlbinding.infrastructure.sql_binding.schema_cache import SchemaCache, get_schema_cache
from sqlbinding.infrastructure.sql_binding.types import RowTypeDescriptor, TableIdentifier


class UpsertUseCases:
    """
    Orquesta un upsert completo: construye el descriptor de fila, crea un
    collector para la invocacion, agrega las filas y hace flush.
    """

    def __init__(
        self,
        connection_factory: Optional[ConnectionFactory] = None,
        schema_cache: Optional[SchemaCache] = None,
        config: Optional[SqlBindingConfig] = None,
        database_name: Optional[str] = None,
    ):
        self.connection_factory = connection_factory
        self.schema_cache = schema_cache or get_schema_cache()
        self.config = config or SqlBindingConfig.from_settings()
        if database_name is None:
            from sqlbinding.infrastructure.database.session import get_database_name

            database_name = get_database_name()
        self.database_name = database_name

    @staticmethod
    def build_row_type(table: TableIdentifier, request: UpsertRequestDTO) -> RowTypeDescriptor:
        """Construye el descriptor del tipo de fila desde las columnas del request."""
        return RowTypeDescriptor.of(
            request.row_type_name or str(table),
            [(column.name, column.type) for column in request.columns],
        )

    async def upsert_rows(self, table_name: str, request: UpsertRequestDTO) -> UpsertResultDTO:
        """
        Upsertea las filas del request en la tabla indicada.
        
        Args:
            table_name: `tabla` o `schema.tabla`
            request: Columnas tipadas y filas
            
        Returns:
            UpsertResultDTO con el conteo de filas y lotes
        """
        table = TableIdentifier.parse(table_name, database=self.database_name)
        row_type = self.build_row_type(table, request)

        collector = SqlAsyncCollector(
            table,
            row_type,
            connection_factory=self.connection_factory,
            schema_cache=self.schema_cache,
            config=self.config,
        )
        await collector.add_many(request.rows)
        logger.info(f"Upsert solicitado en '{table}': {collector.pending_count} fila(s)")

        result = await collector.flush()

        message = (
            f"{result.rows_upserted} fila(s) upserteada(s) en {result.batches} lote(s)"
            if result.rows_received > 0
            else "Sin filas para upsertear"
        )
        return UpsertResultDTO(
            success=True,
            table=result.table,
            rows_received=result.rows_received,
            rows_upserted=result.rows_upserted,
            batches=result.batches,
            message=message,
        )
