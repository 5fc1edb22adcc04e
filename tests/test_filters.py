"""Tests for filter expressions and column proxies."""

from __future__ import annotations

import pytest

from litemap.filters import (
    NULL_NE_ERROR,
    Conjunction,
    Disjunction,
    FieldProxy,
    Negation,
    OrderBy,
    Predicate,
    col,
    column_name_of,
)
from tests.models import Stock


class TestFilterExpression:
    def test_predicate_creation(self):
        expr = Predicate("Symbol", "==", "AAPL")
        assert (expr.column, expr.op, expr.value) == ("Symbol", "==", "AAPL")

    def test_and_flattens(self):
        a, b, c = Predicate("x", ">", 1), Predicate("x", "<", 9), Predicate("y", "==", 2)
        combined = a & b & c
        assert isinstance(combined, Conjunction)
        assert combined.children == (a, b, c)

    def test_or_flattens(self):
        a, b, c = Predicate("x", "==", 1), Predicate("x", "==", 2), Predicate("x", "==", 3)
        combined = a | b | c
        assert isinstance(combined, Disjunction)
        assert len(combined.children) == 3

    def test_mixed_nesting_is_kept(self):
        a, b, c = Predicate("x", "==", 1), Predicate("x", "==", 2), Predicate("y", "==", 3)
        expr = (a | b) & c
        assert isinstance(expr, Conjunction)
        assert isinstance(expr.children[0], Disjunction)

    def test_not(self):
        a = Predicate("x", "==", 1)
        assert ~a == Negation(a)

    def test_combining_does_not_mutate(self):
        a, b = Predicate("x", "==", 1), Predicate("x", "==", 2)
        first = a & b
        first & Predicate("x", "==", 3)
        assert first.children == (a, b)


class TestFieldProxy:
    def test_class_access_returns_proxy(self):
        assert isinstance(Stock.Symbol, FieldProxy)
        assert Stock.Symbol.column == "Symbol"

    def test_instance_access_returns_value(self):
        assert Stock(Symbol="AAPL").Symbol == "AAPL"

    @pytest.mark.parametrize(
        "build,op",
        [
            (lambda f: f == 1, "=="),
            (lambda f: f != 1, "!="),
            (lambda f: f > 1, ">"),
            (lambda f: f >= 1, ">="),
            (lambda f: f < 1, "<"),
            (lambda f: f <= 1, "<="),
        ],
    )
    def test_comparisons(self, build, op):
        expr = build(Stock.Id)
        assert expr == Predicate("Id", op, 1)

    def test_text_operators(self):
        assert Stock.Symbol.startswith("A") == Predicate("Symbol", "STARTSWITH", "A")
        assert Stock.Symbol.endswith("L") == Predicate("Symbol", "ENDSWITH", "L")
        assert Stock.Symbol.contains("AP") == Predicate("Symbol", "CONTAINS", "AP")

    def test_in_collects_values(self):
        assert Stock.Id.in_(x for x in (1, 2)) == Predicate("Id", "IN", (1, 2))

    def test_null_checks(self):
        assert Stock.Symbol.is_null() == Predicate("Symbol", "IS_NULL")
        assert Stock.Symbol.is_not_null() == Predicate("Symbol", "IS_NOT_NULL")

    def test_eq_none_points_at_is_null(self):
        with pytest.raises(TypeError, match="is_null"):
            Stock.Symbol == None  # noqa: E711
        with pytest.raises(TypeError) as exc:
            Stock.Symbol != None  # noqa: E711
        assert str(exc.value) == NULL_NE_ERROR

    def test_orderings(self):
        assert Stock.Symbol.asc() == OrderBy("Symbol")
        assert Stock.Symbol.desc() == OrderBy("Symbol", descending=True)

    def test_proxy_is_unhashable(self):
        with pytest.raises(TypeError):
            hash(Stock.Symbol)


class TestColumnReferences:
    def test_col(self):
        assert (col("price") > 3) == Predicate("price", ">", 3)

    def test_column_name_of(self):
        assert column_name_of(Stock.Symbol) == "Symbol"
        assert column_name_of("Symbol") == "Symbol"
        with pytest.raises(TypeError):
            column_name_of(42)
