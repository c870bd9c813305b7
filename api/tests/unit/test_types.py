"""
Tests unitarios para los tipos puros del motor de upsert.
"""
from __future__ import annotations

from types import SimpleNamespace

import pytest

from sqlbinding.infrastructure.sql_binding.types import (
    CacheEntry,
    FieldDescriptor,
    MergeResult,
    RowTypeDescriptor,
    TableIdentifier,
    TableSchema,
    quote_identifier,
)
from sqlbinding.shared.constants.sql_constants import SemanticType
from sqlbinding.shared.exceptions.sql_binding import (
    InvalidRowException,
    InvalidRowTypeException,
    InvalidTableIdentifierException,
    NoPrimaryKeyFoundException,
)


class TestTableIdentifier:
    """Tests para TableIdentifier.parse() y el nombre delimitado."""

    def test_parse_plain_table(self) -> None:
        table = TableIdentifier.parse("Products", database="TestDB")

        assert table.table == "Products"
        assert table.schema is None
        assert table.database == "TestDB"
        assert table.quoted_name == "[Products]"

    def test_parse_schema_and_table(self) -> None:
        table = TableIdentifier.parse("dbo.Products")

        assert table.schema == "dbo"
        assert table.table == "Products"
        assert table.quoted_name == "[dbo].[Products]"
        assert str(table) == "dbo.Products"

    def test_parse_bracketed_names_with_dots(self) -> None:
        table = TableIdentifier.parse("[sales].[Order.Lines]")

        assert table.schema == "sales"
        assert table.table == "Order.Lines"
        assert table.quoted_name == "[sales].[Order.Lines]"

    def test_closing_bracket_is_escaped(self) -> None:
        assert quote_identifier("weird]name") == "[weird]]name]"
        assert TableIdentifier.parse("[weird]]name]").table == "weird]name"

    @pytest.mark.parametrize("name", ["", "   ", "a.b.c", "dbo.", ".Products", "[dbo.Products"])
    def test_invalid_names_raise(self, name: str) -> None:
        with pytest.raises(InvalidTableIdentifierException):
            TableIdentifier.parse(name)

    def test_cache_key_distinguishes_databases(self) -> None:
        a = TableIdentifier("Products", "dbo", "DB1")
        b = TableIdentifier("Products", "dbo", "DB2")

        assert a.cache_key != b.cache_key
        assert a == TableIdentifier("Products", "dbo", "DB1")


class TestRowTypeDescriptor:
    """Tests para RowTypeDescriptor."""

    def test_of_accepts_pairs_and_descriptors(self) -> None:
        row_type = RowTypeDescriptor.of(
            "Product",
            [
                ("ProductID", SemanticType.INTEGER),
                ("Name", "text"),
                FieldDescriptor("Cost", SemanticType.DECIMAL),
            ],
        )

        assert row_type.field_names == ["ProductID", "Name", "Cost"]
        assert row_type.semantic_types == [
            SemanticType.INTEGER,
            SemanticType.TEXT,
            SemanticType.DECIMAL,
        ]

    def test_unknown_type_raises(self) -> None:
        with pytest.raises(InvalidRowTypeException):
            RowTypeDescriptor.of("Product", [("ProductID", "uuid-ish")])

    def test_empty_or_duplicate_fields_raise(self) -> None:
        with pytest.raises(InvalidRowTypeException):
            RowTypeDescriptor.of("Empty", [])
        with pytest.raises(InvalidRowTypeException):
            RowTypeDescriptor.of("Dup", [("Id", "integer"), ("ID", "integer")])

    def test_find_field_is_case_insensitive(self, product_type: RowTypeDescriptor) -> None:
        assert product_type.find_field("productid").name == "ProductID"
        assert product_type.find_field("missing") is None

    def test_values_from_mapping_and_object(self, product_type: RowTypeDescriptor) -> None:
        as_dict = {"ProductID": 1, "Name": "Widget", "Cost": 10, "Extra": "ignored"}
        as_obj = SimpleNamespace(ProductID=1, Name="Widget", Cost=10)

        assert product_type.values_of(as_dict) == (1, "Widget", 10)
        assert product_type.values_of(as_obj) == (1, "Widget", 10)

    def test_missing_field_raises(self, product_type: RowTypeDescriptor) -> None:
        with pytest.raises(InvalidRowException) as exc_info:
            product_type.values_of({"ProductID": 1, "Name": "Widget"})

        assert exc_info.value.status_code == 400
        assert "Cost" in exc_info.value.message


class TestSchemaAndResults:
    """Tests para TableSchema, CacheEntry y MergeResult."""

    def test_schema_without_primary_key_raises(self) -> None:
        with pytest.raises(NoPrimaryKeyFoundException):
            TableSchema(
                table=TableIdentifier("Products", "dbo"),
                primary_keys=(),
                columns=("ProductID",),
                merge_query="",
            )

    def test_cache_entry_expires_at_ttl(self) -> None:
        entry = CacheEntry(schema=None, created_at=100.0)  # type: ignore[arg-type]

        assert not entry.is_expired(now=159.9, ttl_seconds=60)
        assert entry.is_expired(now=160.0, ttl_seconds=60)

    def test_partially_applied_only_without_transaction(self) -> None:
        progress = MergeResult(batches_total=3, batches_executed=1, transactional=False)

        assert progress.partially_applied

        progress.transactional = True
        assert not progress.partially_applied

        progress.transactional = False
        progress.batches_executed = 3
        assert not progress.partially_applied


class TestExceptions:
    """Tests para el cuerpo de error de las excepciones."""

    def test_to_dict_carries_code_and_details(self) -> None:
        error = NoPrimaryKeyFoundException("dbo.Heap")

        body = error.to_dict()

        assert body["error"] == "NO_PRIMARY_KEY_FOUND"
        assert body["details"] == {"table": "dbo.Heap"}
        assert "dbo.Heap" in body["message"]
        assert error.status_code == 422
