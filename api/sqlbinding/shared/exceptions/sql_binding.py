"""
Excepciones del motor de upsert (SQL binding).

Taxonomia:
- Errores de entrada (configuracion, identificador de tabla, filas, literales)
- Errores de conexion y de descubrimiento de esquema (sin PK, PK fuera del tipo de fila, query fallida)
- Errores de ejecucion del MERGE por lote
- Collector inutilizable tras una aplicacion parcial

La cancelacion no tiene excepcion propia: se propaga `asyncio.CancelledError`.
"""
from typing import Any, Optional

from sqlbinding.shared.exceptions.base import AppException


class SqlBindingException(AppException):
    """Excepcion base para errores del SQL binding."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "SQL_BINDING_ERROR",
        details=None
    ):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code=error_code,
            details=details
        )


class InvalidBindingConfigException(SqlBindingException):
    """Excepcion cuando la configuracion del binding no es valida."""

    def __init__(self, setting: str, value: Any, reason: str):
        super().__init__(
            message=f"Configuracion invalida para '{setting}' ({value!r}): {reason}",
            status_code=400,
            error_code="INVALID_BINDING_CONFIG",
            details={"setting": setting, "value": str(value)}
        )


class InvalidTableIdentifierException(SqlBindingException):
    """Excepcion cuando el nombre de tabla no se puede interpretar."""

    def __init__(self, table_name: str, reason: str):
        super().__init__(
            message=f"Nombre de tabla invalido '{table_name}': {reason}",
            status_code=400,
            error_code="INVALID_TABLE_IDENTIFIER",
            details={"table": table_name}
        )


class InvalidRowException(SqlBindingException):
    """Excepcion cuando una fila no tiene la forma descrita por su tipo."""

    def __init__(self, row_type: str, field: str):
        super().__init__(
            message=f"La fila de tipo '{row_type}' no contiene el campo '{field}'",
            status_code=400,
            error_code="INVALID_ROW",
            details={"row_type": row_type, "field": field}
        )


class LiteralFormatException(SqlBindingException):
    """Excepcion cuando un valor no se puede representar como literal T-SQL."""

    def __init__(self, value: Any, semantic_type: str, reason: str):
        super().__init__(
            message=f"No se puede formatear {value!r} como '{semantic_type}': {reason}",
            status_code=400,
            error_code="LITERAL_FORMAT_ERROR",
            details={"value": repr(value), "semantic_type": semantic_type}
        )


class NoPrimaryKeyFoundException(SqlBindingException):
    """
    Excepcion cuando el catalogo no devuelve columnas de primary key.
    No se cachea: el siguiente flush vuelve a intentar el descubrimiento.
    """

    def __init__(self, table_name: str):
        super().__init__(
            message=(
                f"No se encontraron primary keys para '{table_name}'. "
                "No se puede generar el comando de upsert sin ellas."
            ),
            status_code=422,
            error_code="NO_PRIMARY_KEY_FOUND",
            details={"table": table_name}
        )


class PrimaryKeyNotInRowTypeException(SqlBindingException):
    """Excepcion cuando una columna de la PK no existe en el tipo de fila."""

    def __init__(self, table_name: str, row_type: str, missing: list[str]):
        super().__init__(
            message=(
                f"El tipo de fila '{row_type}' no incluye las columnas de primary key "
                f"{missing} de la tabla '{table_name}'"
            ),
            status_code=422,
            error_code="PRIMARY_KEY_NOT_IN_ROW_TYPE",
            details={"table": table_name, "row_type": row_type, "missing": missing}
        )


class SchemaDiscoveryQueryFailedException(SqlBindingException):
    """Excepcion cuando la consulta al catalogo falla (conectividad, permisos)."""

    def __init__(
        self,
        table_name: str,
        reason: str,
        message: Optional[str] = None,
        error_code: str = "SCHEMA_DISCOVERY_FAILED",
    ):
        super().__init__(
            message=message or (
                f"Error consultando las primary keys de la tabla '{table_name}'. "
                f"No se puede generar el comando de upsert sin ellas: {reason}"
            ),
            status_code=502,
            error_code=error_code,
            details={"table": table_name}
        )


class StoreConnectionException(SchemaDiscoveryQueryFailedException):
    """
    Excepcion cuando no se puede abrir (o cerrar) la conexion a SQL Server:
    login fallido, timeout, servidor inalcanzable.
    """

    def __init__(self, table_name: str, reason: str):
        super().__init__(
            table_name=table_name,
            reason=reason,
            message=f"No se pudo conectar a la base de datos para '{table_name}': {reason}",
            error_code="STORE_CONNECTION_FAILED",
        )


class MergeExecutionException(SqlBindingException):
    """
    Excepcion cuando el MERGE de un lote falla en el servidor.

    `partially_applied` indica si lotes anteriores del mismo flush quedaron
    confirmados (solo posible sin transaccion envolvente).
    """

    def __init__(
        self,
        table_name: str,
        batch_index: int,
        batches_executed: int,
        partially_applied: bool,
        reason: str,
        error_code: str = "MERGE_EXECUTION_FAILED",
    ):
        self.table_name = table_name
        self.batch_index = batch_index
        self.batches_executed = batches_executed
        self.partially_applied = partially_applied
        super().__init__(
            message=f"Fallo el MERGE del lote {batch_index} en '{table_name}': {reason}",
            status_code=502,
            error_code=error_code,
            details={
                "table": table_name,
                "batch_index": batch_index,
                "batches_executed": batches_executed,
                "partially_applied": partially_applied,
            }
        )


class UnsupportedColumnTypeException(MergeExecutionException):
    """Excepcion cuando el servidor rechaza el MERGE por columnas text/ntext/image."""

    def __init__(
        self,
        table_name: str,
        batch_index: int,
        batches_executed: int,
        partially_applied: bool,
        reason: str,
    ):
        super().__init__(
            table_name=table_name,
            batch_index=batch_index,
            batches_executed=batches_executed,
            partially_applied=partially_applied,
            reason=reason,
            error_code="UNSUPPORTED_COLUMN_TYPE",
        )


class CollectorUnusableException(SqlBindingException):
    """Excepcion cuando se usa un collector que quedo con un flush aplicado a medias."""

    def __init__(self, table_name: str, cause: Optional[str] = None):
        super().__init__(
            message=(
                f"El collector de '{table_name}' no se puede reutilizar: "
                "un flush anterior se aplico parcialmente"
            ),
            status_code=409,
            error_code="COLLECTOR_UNUSABLE",
            details={"table": table_name, "cause": cause}
        )


class InvalidRowTypeException(SqlBindingException):
    """Excepcion cuando el descriptor del tipo de fila no es valido (vacio, campos duplicados)."""

    def __init__(self, row_type: str, reason: str):
        super().__init__(
            message=f"Tipo de fila invalido '{row_type}': {reason}",
            status_code=400,
            error_code="INVALID_ROW_TYPE",
            details={"row_type": row_type}
        )
