"""
Tests unitarios para la deduplicacion por PK y la particion en lotes.
"""
from __future__ import annotations

import pytest

from sqlbinding.infrastructure.sql_binding.batching import (
    dedupe_rows,
    partition_rows,
    primary_key_of,
)
from sqlbinding.infrastructure.sql_binding.types import RowTypeDescriptor


@pytest.fixture
def order_line_type() -> RowTypeDescriptor:
    return RowTypeDescriptor.of(
        "OrderLine",
        [("OrderID", "integer"), ("LineNo", "integer"), ("Qty", "integer")],
    )


class TestDedupeRows:
    """Tests para dedupe_rows()."""

    def test_last_occurrence_wins(self, product_type: RowTypeDescriptor) -> None:
        rows = [
            {"ProductID": 1, "Name": "Widget", "Cost": 10},
            {"ProductID": 2, "Name": "Gadget", "Cost": 5},
            {"ProductID": 1, "Name": "Widget", "Cost": 15},
        ]

        result = dedupe_rows(rows, product_type, ["ProductID"])

        assert result == [
            {"ProductID": 2, "Name": "Gadget", "Cost": 5},
            {"ProductID": 1, "Name": "Widget", "Cost": 15},
        ]

    def test_unique_rows_keep_their_order(self, product_type: RowTypeDescriptor) -> None:
        rows = [{"ProductID": i, "Name": f"P{i}", "Cost": i} for i in (3, 1, 2)]

        assert dedupe_rows(rows, product_type, ["ProductID"]) == rows

    def test_composite_key_does_not_collide(self, order_line_type: RowTypeDescriptor) -> None:
        rows = [
            {"OrderID": 1, "LineNo": 23, "Qty": 1},
            {"OrderID": 12, "LineNo": 3, "Qty": 2},
        ]

        assert primary_key_of(rows[0], order_line_type, ["OrderID", "LineNo"]) == ("1", "23")
        assert len(dedupe_rows(rows, order_line_type, ["OrderID", "LineNo"])) == 2

    def test_composite_key_duplicates_collapse(self, order_line_type: RowTypeDescriptor) -> None:
        rows = [
            {"OrderID": 7, "LineNo": 1, "Qty": 1},
            {"OrderID": 7, "LineNo": 2, "Qty": 1},
            {"OrderID": 7, "LineNo": 1, "Qty": 9},
        ]

        result = dedupe_rows(rows, order_line_type, ["OrderID", "LineNo"])

        assert [(r["LineNo"], r["Qty"]) for r in result] == [(2, 1), (1, 9)]

    def test_empty_input(self, product_type: RowTypeDescriptor) -> None:
        assert dedupe_rows([], product_type, ["ProductID"]) == []


class TestPartitionRows:
    """Tests para partition_rows()."""

    def test_last_batch_may_be_smaller(self) -> None:
        batches = list(partition_rows([1, 2, 3, 4, 5], 2))

        assert batches == [[1, 2], [3, 4], [5]]

    def test_exact_multiple(self) -> None:
        assert [len(b) for b in partition_rows(range(6), 3)] == [3, 3]

    def test_batch_larger_than_input(self) -> None:
        assert list(partition_rows([1, 2], 1000)) == [[1, 2]]

    def test_empty_input_yields_nothing(self) -> None:
        assert list(partition_rows([], 10)) == []

    def test_invalid_batch_size(self) -> None:
        with pytest.raises(ValueError):
            list(partition_rows([1], 0))
