"""
Descubrimiento de esquema via catalogo de SQL Server.

- Consulta las columnas de la primary key (INFORMATION_SCHEMA)
- Cruza las PK con el descriptor del tipo de fila
- Genera la plantilla MERGE (parametrizada solo por la CTE de valores)

Las columnas del MERGE salen del descriptor, no del catalogo: si el descriptor
nombra columnas inexistentes, el error aparece al ejecutar el lote.
"""

from __future__ import annotations

import time

from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from sqlbinding.shared.exceptions.sql_binding import (
    NoPrimaryKeyFoundException,
    PrimaryKeyNotInRowTypeException,
    SchemaDiscoveryQueryFailedException,
)

from .types import RowTypeDescriptor, TableIdentifier, TableSchema, quote_identifier


SOURCE_CTE_NAME = "cte"
TARGET_ALIAS = "ExistingData"
SOURCE_ALIAS = "NewData"

PRIMARY_KEY_QUERY = """
    SELECT kcu.COLUMN_NAME
    FROM INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc
    JOIN INFORMATION_SCHEMA.KEY_COLUMN_USAGE kcu
      ON kcu.CONSTRAINT_NAME = tc.CONSTRAINT_NAME
     AND kcu.CONSTRAINT_SCHEMA = tc.CONSTRAINT_SCHEMA
     AND kcu.TABLE_NAME = tc.TABLE_NAME
    WHERE tc.CONSTRAINT_TYPE = 'PRIMARY KEY'
      AND tc.TABLE_NAME = :table_name
"""

SCHEMA_FILTER = "      AND tc.TABLE_SCHEMA = :schema_name\n"

# Nombre sin schema: el schema por defecto del usuario, como resuelve SQL Server `[tabla]`
DEFAULT_SCHEMA_FILTER = "      AND tc.TABLE_SCHEMA = SCHEMA_NAME()\n"

ORDER_BY_ORDINAL = "    ORDER BY kcu.ORDINAL_POSITION"


def build_primary_key_query(table: TableIdentifier) -> tuple[str, dict[str, str]]:
    """Construye la consulta de PK y sus parametros (nada se interpola)."""
    sql = PRIMARY_KEY_QUERY
    params = {"table_name": table.table}
    if table.schema:
        sql += SCHEMA_FILTER
        params["schema_name"] = table.schema
    else:
        sql += DEFAULT_SCHEMA_FILTER
    return sql + ORDER_BY_ORDINAL, params


async def fetch_primary_keys(conn: AsyncConnection, table: TableIdentifier) -> list[str]:
    """
    Retorna las columnas de la PK de la tabla, en orden ordinal.

    Raises:
        SchemaDiscoveryQueryFailedException: si la consulta al catalogo falla
    """
    sql, params = build_primary_key_query(table)
    try:
        if conn.in_transaction():
            result = await conn.execute(text(sql), params)
        else:
            async with conn.begin():
                result = await conn.execute(text(sql), params)
        return [str(name) for name in result.scalars().all()]
    except SQLAlchemyError as e:
        logger.error(f"Error consultando primary keys de '{table}': {e}")
        raise SchemaDiscoveryQueryFailedException(str(table), str(e)) from e


def build_merge_query(table: TableIdentifier, primary_keys: list[str], columns: list[str]) -> str:
    """
    Genera la sentencia MERGE contra la CTE de valores nuevos.

    - ON: igualdad en todas las columnas de la PK
    - WHEN MATCHED: actualiza las columnas que no son PK (se omite si no hay)
    - WHEN NOT MATCHED: inserta la fila completa
    """
    pk_set = {pk.lower() for pk in primary_keys}

    matching = " AND ".join(
        f"{TARGET_ALIAS}.{quote_identifier(pk)} = {SOURCE_ALIAS}.{quote_identifier(pk)}"
        for pk in primary_keys
    )
    updates = ", ".join(
        f"{TARGET_ALIAS}.{quote_identifier(col)} = {SOURCE_ALIAS}.{quote_identifier(col)}"
        for col in columns
        if col.lower() not in pk_set
    )
    insert_columns = ", ".join(quote_identifier(col) for col in columns)
    insert_values = ", ".join(f"{SOURCE_ALIAS}.{quote_identifier(col)}" for col in columns)

    query = (
        f"MERGE INTO {table.quoted_name} WITH (HOLDLOCK) AS {TARGET_ALIAS} "
        f"USING {SOURCE_CTE_NAME} AS {SOURCE_ALIAS} "
        f"ON {matching}"
    )
    if updates:
        query += f" WHEN MATCHED THEN UPDATE SET {updates}"
    query += f" WHEN NOT MATCHED THEN INSERT ({insert_columns}) VALUES ({insert_values});"
    return query


async def discover_table_schema(
    conn: AsyncConnection,
    table: TableIdentifier,
    row_type: RowTypeDescriptor,
) -> TableSchema:
    """
    Descubre el esquema de la tabla para un tipo de fila.

    Raises:
        SchemaDiscoveryQueryFailedException: la consulta al catalogo fallo
        NoPrimaryKeyFoundException: la tabla no tiene primary key
        PrimaryKeyNotInRowTypeException: el descriptor no incluye alguna columna de la PK
    """
    started = time.perf_counter()
    catalog_keys = await fetch_primary_keys(conn, table)

    if not catalog_keys:
        logger.warning(f"No se encontraron primary keys para '{table}'")
        raise NoPrimaryKeyFoundException(str(table))

    # Nombres SQL -> nombres de campo del descriptor
    primary_keys: list[str] = []
    missing: list[str] = []
    for column in catalog_keys:
        field = row_type.find_field(column)
        if field is None:
            missing.append(column)
        else:
            primary_keys.append(field.name)
    if missing:
        raise PrimaryKeyNotInRowTypeException(str(table), row_type.name, missing)

    columns = row_type.field_names
    schema = TableSchema(
        table=table,
        primary_keys=tuple(primary_keys),
        columns=tuple(columns),
        merge_query=build_merge_query(table, primary_keys, columns),
    )

    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(f"Esquema descubierto para '{table}': pk={primary_keys} ({elapsed_ms:.0f} ms)")
    return schema
