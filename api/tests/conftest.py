"""
Configuración de fixtures para pytest.

No hay SQL Server en los tests: `FakeSqlServer` imita la superficie de
`AsyncConnection` que usa el motor (execute, exec_driver_sql, begin,
begin_nested, in_transaction, commit, rollback) y aplica los MERGE generados
sobre tablas en memoria.
"""
from __future__ import annotations

import asyncio
import copy
import re
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy.exc import InvalidRequestError, OperationalError, ProgrammingError

from sqlbinding.infrastructure.sql_binding.schema_cache import SchemaCache
from sqlbinding.infrastructure.sql_binding.types import RowTypeDescriptor, TableIdentifier
from sqlbinding.shared.constants.sql_constants import SemanticType


_MERGE_RE = re.compile(
    r"WITH cte AS \(SELECT \* FROM \(VALUES (?P<values>.*)\) AS s\((?P<cols>[^)]*)\)\) "
    r"MERGE INTO (?P<target>\S+) WITH \(HOLDLOCK\) AS ExistingData USING cte AS NewData "
    r"ON (?P<on>.*?)(?: WHEN MATCHED THEN UPDATE SET (?P<set>.*?))? "
    r"WHEN NOT MATCHED THEN INSERT",
    re.DOTALL,
)
_TOKEN_RE = re.compile(r"N?'(?:[^']|'')*'|NULL|-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?|[(),]")
_BRACKETED_RE = re.compile(r"\[((?:[^\]]|\]\])+)\]")


def _names(text: str) -> List[str]:
    return [m.replace("]]", "]") for m in _BRACKETED_RE.findall(text)]


def _parse_token(token: str) -> Any:
    if token == "NULL":
        return None
    if token.startswith("N'") or token.startswith("'"):
        return token[token.index("'") + 1:-1].replace("''", "'")
    if any(c in token for c in ".eE"):
        return Decimal(token)
    return int(token)


def parse_values(values: str) -> List[tuple]:
    """Convierte el texto de VALUES en tuplas de Python."""
    rows: List[tuple] = []
    current: Optional[list] = None
    for token in _TOKEN_RE.findall(values):
        if token == "(":
            current = []
        elif token == ")":
            rows.append(tuple(current))
            current = None
        elif token == ",":
            continue
        else:
            current.append(_parse_token(token))
    return rows


class FakeScalarResult:
    def __init__(self, values: List[Any]):
        self._values = values

    def all(self) -> List[Any]:
        return list(self._values)


class FakeResult:
    def __init__(self, values: List[Any]):
        self._values = values

    def scalars(self) -> FakeScalarResult:
        return FakeScalarResult(self._values)


class FakeTransaction:
    """Context manager async de begin()/begin_nested()."""

    def __init__(self, conn: "FakeConnection", nested: bool):
        self._conn = conn
        self._nested = nested

    async def __aenter__(self) -> "FakeTransaction":
        self._conn._push(nested=self._nested)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self._conn._pop_rollback()
            return False
        if not self._nested:
            server = self._conn.server
            attempt = server.commit_attempts
            server.commit_attempts += 1
            if server.fail_on_commit == attempt:
                self._conn._pop_rollback()
                raise OperationalError("COMMIT", None, Exception("Transaction log is full"))
        self._conn._pop_commit()
        return False


class FakeConnection:
    """Conexion falsa: un comando a la vez, transacciones via snapshots."""

    def __init__(self, server: "FakeSqlServer"):
        self.server = server
        self._snapshots: List[Dict[str, Dict[tuple, dict]]] = []
        self.closed = False

    async def __aenter__(self) -> "FakeConnection":
        self.server.connections_opened += 1
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        # Cerrar la conexion descarta la transaccion abierta (rollback)
        while self._snapshots:
            self._pop_rollback()
        self.closed = True
        return False

    # -- transacciones ------------------------------------------------------

    def in_transaction(self) -> bool:
        return bool(self._snapshots)

    def begin(self) -> FakeTransaction:
        if self._snapshots:
            raise InvalidRequestError("a transaction is already begun on this connection")
        return FakeTransaction(self, nested=False)

    def begin_nested(self) -> FakeTransaction:
        return FakeTransaction(self, nested=True)

    def _push(self, nested: bool) -> None:
        self._snapshots.append(copy.deepcopy(self.server.tables))
        if not nested:
            self.server.transactions_begun += 1

    def _pop_commit(self) -> None:
        self._snapshots.pop()
        if not self._snapshots:
            self.server.commits += 1

    def _pop_rollback(self) -> None:
        self.server.tables = self._snapshots.pop()
        self.server.rollbacks += 1

    async def commit(self) -> None:
        self._snapshots.clear()
        self.server.commits += 1

    async def rollback(self) -> None:
        if self._snapshots:
            self.server.tables = self._snapshots[0]
            self._snapshots.clear()
            self.server.rollbacks += 1

    def _autobegin(self) -> None:
        if not self._snapshots:
            self._push(nested=False)

    # -- comandos -----------------------------------------------------------

    async def execute(self, statement: Any, params: Optional[dict] = None) -> FakeResult:
        sql = str(statement)
        self._autobegin()
        self.server.catalog_queries.append((sql, dict(params or {})))
        if self.server.discovery_error is not None:
            raise OperationalError(sql, params, self.server.discovery_error)
        if "INFORMATION_SCHEMA" not in sql:
            raise ProgrammingError(sql, params, Exception("consulta no soportada por el fake"))

        params = params or {}
        table_name = params["table_name"]
        # Sin schema explicito la consulta filtra por SCHEMA_NAME()
        schema_name = params.get("schema_name", self.server.default_schema)
        for (schema, table), keys in self.server.primary_keys.items():
            if table == table_name and schema == schema_name:
                return FakeResult(list(keys))
        return FakeResult([])

    async def exec_driver_sql(self, statement: str) -> None:
        self._autobegin()
        index = len(self.server.merge_statements)
        self.server.merge_statements.append(statement)

        if self.server.block_on_statement == index:
            await self.server.unblock.wait()
        if self.server.fail_on_statement == index:
            raise ProgrammingError(statement, None, Exception(self.server.failure_message))

        self._apply_merge(statement)

    def _apply_merge(self, statement: str) -> None:
        match = _MERGE_RE.match(statement)
        if not match:
            raise ProgrammingError(statement, None, Exception("Incorrect syntax near 'MERGE'"))

        target = match.group("target")
        if target not in self.server.tables:
            raise ProgrammingError(statement, None, Exception(f"Invalid object name '{target}'"))

        columns = _names(match.group("cols"))
        key_columns = _names(match.group("on"))[::2]
        update_columns = _names(match.group("set") or "")[::2]
        table = self.server.tables[target]

        seen: set = set()
        for values in parse_values(match.group("values")):
            row = dict(zip(columns, values))
            key = tuple(row[k] for k in key_columns)
            if key in seen:
                raise ProgrammingError(
                    statement, None,
                    Exception("The MERGE statement attempted to UPDATE or DELETE the same row more than once."),
                )
            seen.add(key)
            if key in table:
                for col in update_columns:
                    table[key][col] = row[col]
            else:
                table[key] = row


class FakeSqlServer:
    """Estado compartido entre conexiones (tablas, PK del catalogo, contadores)."""

    def __init__(self) -> None:
        self.tables: Dict[str, Dict[tuple, dict]] = {}
        self.primary_keys: Dict[tuple, List[str]] = {}
        self.default_schema = "dbo"
        self.catalog_queries: List[tuple] = []
        self.merge_statements: List[str] = []
        self.discovery_error: Optional[Exception] = None
        self.fail_on_statement: Optional[int] = None
        self.failure_message = "Conversion failed when converting the nvarchar value to data type int."
        self.block_on_statement: Optional[int] = None
        self.fail_on_commit: Optional[int] = None
        self.commit_attempts = 0
        self.unblock = asyncio.Event()
        self.connections_opened = 0
        self.transactions_begun = 0
        self.commits = 0
        self.rollbacks = 0

    def create_table(self, schema: str, table: str, primary_keys: List[str]) -> str:
        name = TableIdentifier(table=table, schema=schema).quoted_name
        self.tables[name] = {}
        if primary_keys:
            self.primary_keys[(schema, table)] = list(primary_keys)
        return name

    def rows(self, schema: str, table: str) -> List[dict]:
        name = TableIdentifier(table=table, schema=schema).quoted_name
        return [self.tables[name][k] for k in sorted(self.tables[name])]

    def connect(self) -> FakeConnection:
        return FakeConnection(self)


@pytest.fixture
def fake_server() -> FakeSqlServer:
    """SQL Server en memoria con la tabla dbo.Products(ProductID PK, Name, Cost)."""
    server = FakeSqlServer()
    server.create_table("dbo", "Products", primary_keys=["ProductID"])
    return server


@pytest.fixture
def product_type() -> RowTypeDescriptor:
    return RowTypeDescriptor.of(
        "Product",
        [
            ("ProductID", SemanticType.INTEGER),
            ("Name", SemanticType.TEXT),
            ("Cost", SemanticType.INTEGER),
        ],
    )


@pytest.fixture
def products_table() -> TableIdentifier:
    return TableIdentifier(table="Products", schema="dbo", database="TestDB")


@pytest.fixture
def schema_cache() -> SchemaCache:
    return SchemaCache()
