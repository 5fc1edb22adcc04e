"""Tests for the statement executor: DDL, CRUD, materialization, errors and transactions."""

from __future__ import annotations

import dataclasses
import uuid
from datetime import date, datetime, time, timedelta
from decimal import Decimal

import pytest
from pydantic import BaseModel
from pydantic import Field as PydanticField

from litemap.errors import (
    ConstraintError,
    EngineError,
    MappingError,
    RecordNotFoundError,
    SchemaError,
)
from litemap.executor import CreateTableResult
from tests.models import Customer, Priority, Sample, Stock, Tag, Tier, Valuation


def _columns(executor, table: str) -> list[str]:
    return [row[1] for row in executor.query(tuple, f'PRAGMA table_info("{table}")')]


def _symbols(executor) -> list[str]:
    return [s.Symbol for s in executor.table(Stock).order_by(Stock.Id)]


class TestCreateTable:
    def test_create_then_unchanged(self, executor):
        assert executor.create_table(Stock) is CreateTableResult.CREATED
        assert executor.create_table(Stock) is CreateTableResult.UNCHANGED
        assert _columns(executor, "Stock") == ["Id", "Symbol"]

    def test_migrates_missing_columns(self, executor):
        executor.execute(
            'CREATE TABLE "Valuation" ("Id" INTEGER PRIMARY KEY AUTOINCREMENT, "StockId" INTEGER)'
        )
        assert executor.create_table(Valuation) is CreateTableResult.MIGRATED
        assert _columns(executor, "Valuation") == ["Id", "StockId", "Time", "Price"]
        assert executor.create_table(Valuation) is CreateTableResult.UNCHANGED

    def test_creates_indices(self, executor):
        executor.create_table(Valuation)
        sql = "SELECT name FROM sqlite_master WHERE type = 'index' AND tbl_name = ?"
        names = [row[0] for row in executor.query(tuple, sql, "Valuation")]
        assert "Valuation_StockId" in names

    def test_indices_not_duplicated_on_repeat(self, executor):
        sql = "SELECT name FROM sqlite_master WHERE type = 'index' AND tbl_name = ? ORDER BY name"
        executor.create_table(Valuation)
        first = [row[0] for row in executor.query(tuple, sql, "Valuation")]
        assert executor.create_table(Valuation) is CreateTableResult.UNCHANGED
        second = [row[0] for row in executor.query(tuple, sql, "Valuation")]
        assert second == first
        assert len(second) == len(set(second))

    def test_drop_table(self, executor):
        executor.create_table(Stock)
        executor.drop_table(Stock)
        assert _columns(executor, "Stock") == []
        executor.drop_table(Stock)


class TestInsertAndRead:
    def test_insert_assigns_key(self, executor):
        executor.create_table(Stock)
        stock = Stock(Symbol="TSLA")
        assert stock.Id is None
        assert executor.insert(stock) == 1
        assert stock.Id == 1
        assert executor.get(Stock, 1) == Stock(Id=1, Symbol="TSLA")

    def test_explicit_key_kept(self, executor):
        executor.create_table(Stock)
        executor.insert(Stock(Id=10, Symbol="X"))
        assert executor.find(Stock, 10).Symbol == "X"

    def test_every_kind_round_trips(self, executor):
        executor.create_table(Sample)
        sample = Sample(
            flag=True,
            count=-7,
            ratio=0.5,
            label="naïve",
            payload=b"\x00\x01",
            amount=Decimal("12345.6789"),
            stamp=datetime(2024, 3, 1, 9, 30, 15, 250),
            day=date(2000, 1, 1),
            clock=time(6, 0, 1),
            span=timedelta(hours=-1, microseconds=3),
            token=uuid.uuid4(),
            priority=Priority.HIGH,
            tier=Tier.GOLD,
        )
        executor.insert(sample)
        assert executor.get(Sample, sample.Id) == sample

    def test_all_null_row(self, executor):
        executor.create_table(Sample)
        sample = Sample()
        executor.insert(sample)
        loaded = executor.get(Sample, sample.Id)
        assert loaded.amount is None and loaded.tier is None

    def test_table_without_primary_key(self, executor):
        executor.create_table(Tag)
        executor.insert_all([Tag(name="a"), Tag(name="b", weight=2)])
        assert [t.weight for t in executor.table(Tag).order_by("name")] == [0, 2]
        with pytest.raises(SchemaError):
            executor.update(Tag(name="a"))
        with pytest.raises(SchemaError):
            executor.find(Tag, "a")

    def test_get_missing(self, executor):
        executor.create_table(Stock)
        assert executor.find(Stock, 99) is None
        with pytest.raises(RecordNotFoundError) as exc:
            executor.get(Stock, 99)
        assert exc.value.key == 99
        assert isinstance(exc.value, LookupError)


class TestUpdateDelete:
    @pytest.fixture
    def customers(self, executor):
        executor.create_table(Customer)
        executor.insert_all(
            [
                Customer(email="a@x", name="Ann", age=30),
                Customer(email="b@x", name="Bob", tier=Tier.GOLD),
            ]
        )
        return executor

    def test_update(self, customers):
        ann = customers.get(Customer, "a@x")
        ann.age = 31
        assert customers.update(ann) == 1
        assert customers.get(Customer, "a@x").age == 31

    def test_update_all(self, customers):
        people = customers.table(Customer).to_list()
        for p in people:
            p.active = False
        assert customers.update_all(people) == 2
        assert customers.table(Customer).where(Customer.active == True).count() == 0  # noqa: E712

    def test_insert_or_replace(self, customers):
        customers.insert_or_replace(Customer(email="a@x", name="Annie"))
        assert customers.table(Customer).count() == 2
        assert customers.get(Customer, "a@x").name == "Annie"

    def test_delete(self, customers):
        assert customers.delete(customers.get(Customer, "a@x")) == 1
        assert customers.delete_by_key(Customer, "b@x") == 1
        assert customers.delete_by_key(Customer, "b@x") == 0
        assert customers.table(Customer).count() == 0

    def test_delete_all(self, customers):
        assert customers.delete_all(Customer) == 2

    def test_enum_column_filter(self, customers):
        gold = customers.table(Customer).where(Customer.tier == Tier.GOLD).to_list()
        assert [c.email for c in gold] == ["b@x"]


class TestMaterialization:
    @pytest.fixture
    def seeded(self, executor):
        executor.create_table(Stock)
        executor.insert_all(Stock(Symbol=s) for s in ("AAPL", "MSFT"))
        return executor

    def test_dict_and_tuple_targets(self, seeded):
        sql = 'SELECT "Id", "Symbol" FROM "Stock" ORDER BY "Id"'
        assert list(seeded.query(dict, sql)) == [
            {"Id": 1, "Symbol": "AAPL"},
            {"Id": 2, "Symbol": "MSFT"},
        ]
        assert list(seeded.query(tuple, sql)) == [(1, "AAPL"), (2, "MSFT")]

    def test_dataclass_target_case_insensitive(self, seeded):
        @dataclasses.dataclass
        class Row:
            symbol: str
            id: int = 0

        rows = list(seeded.query(Row, 'SELECT * FROM "Stock" WHERE "Symbol" = ?', "MSFT"))
        assert rows == [Row(symbol="MSFT", id=2)]

    def test_pydantic_target_by_alias(self, seeded):
        class Row(BaseModel):
            ident: int = PydanticField(alias="Id")
            ticker: str = PydanticField(alias="Symbol")

        (row,) = seeded.query(Row, 'SELECT * FROM "Stock" WHERE "Id" = ?', 1)
        assert (row.ident, row.ticker) == (1, "AAPL")

    def test_missing_required_column(self, seeded):
        with pytest.raises(MappingError, match="Symbol"):
            seeded.query(Stock, 'SELECT "Id" FROM "Stock"')

    def test_extra_columns_ignored(self, seeded):
        rows = list(seeded.query(Stock, 'SELECT *, 1 AS extra FROM "Stock"'))
        assert [r.Symbol for r in rows] == ["AAPL", "MSFT"]

    def test_query_is_lazy_and_closable(self, seeded):
        rows = seeded.query(Stock, 'SELECT * FROM "Stock" ORDER BY "Id"')
        assert next(rows).Symbol == "AAPL"
        rows.close()
        assert seeded.execute('DELETE FROM "Stock"') == 2

    def test_scalar(self, seeded):
        assert seeded.scalar('SELECT COUNT(*) FROM "Stock"') == 2
        assert seeded.scalar('SELECT "Symbol" FROM "Stock" WHERE "Id" = ?', 42) is None
        assert seeded.scalar("SELECT '1.50'", as_type=Decimal) == Decimal("1.50")

    def test_manual_parameters_are_encoded(self, executor):
        executor.create_table(Valuation)
        executor.execute(
            'INSERT INTO "Valuation" ("StockId", "Time", "Price") VALUES (?, ?, ?)',
            1,
            datetime(2024, 1, 2, 3, 4, 5),
            Decimal("2.50"),
        )
        (v,) = executor.table(Valuation).to_list()
        assert v.Time == datetime(2024, 1, 2, 3, 4, 5)
        assert v.Price == Decimal("2.50")

    def test_unsupported_parameter(self, executor):
        with pytest.raises(MappingError):
            executor.execute("SELECT ?", [1, 2])


class TestErrors:
    def test_not_null_checked_before_engine(self, executor):
        executor.create_table(Customer)
        c = Customer(email="a@x", name="Ann")
        c.name = None
        with pytest.raises(ConstraintError, match="NOT NULL") as exc:
            executor.insert(c)
        assert exc.value.sql.startswith('INSERT INTO "customers"')
        assert executor.table(Customer).count() == 0

    def test_unique_violation_hides_values(self, executor):
        executor.create_table(Customer)
        executor.insert(Customer(email="secret@x", name="Ann"))
        with pytest.raises(ConstraintError) as exc:
            executor.insert(Customer(email="secret@x", name="Bob"))
        assert exc.value.param_count == 5
        assert "secret" not in str(exc.value)
        assert "Bob" not in str(exc.value)

    def test_engine_error(self, executor):
        with pytest.raises(EngineError) as exc:
            executor.execute("SELECT * FROM missing WHERE a = ?", "hidden")
        assert exc.value.sql == "SELECT * FROM missing WHERE a = ?"
        assert exc.value.param_count == 1
        assert "hidden" not in str(exc.value)

    def test_insert_all_is_atomic(self, executor):
        executor.create_table(Customer)
        with pytest.raises(ConstraintError):
            executor.insert_all(
                [Customer(email="a@x", name="Ann"), Customer(email="a@x", name="Dup")]
            )
        assert executor.table(Customer).count() == 0


class TestTransactions:
    def test_commit(self, executor):
        executor.create_table(Stock)
        result = executor.run_in_transaction(lambda: executor.insert(Stock(Symbol="A")))
        assert result == 1
        assert not executor.in_transaction
        assert _symbols(executor) == ["A"]

    def test_rollback_and_reraise(self, executor):
        executor.create_table(Stock)

        def unit():
            executor.insert(Stock(Symbol="A"))
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            executor.run_in_transaction(unit)
        assert not executor.in_transaction
        assert _symbols(executor) == []

    def test_nested_failure_unwinds_inner_only(self, executor):
        executor.create_table(Stock)

        def inner():
            executor.insert(Stock(Symbol="inner"))
            raise ValueError("inner failed")

        def outer():
            executor.insert(Stock(Symbol="outer"))
            with pytest.raises(ValueError):
                executor.run_in_transaction(inner)
            executor.insert(Stock(Symbol="after"))

        executor.run_in_transaction(outer)
        assert _symbols(executor) == ["outer", "after"]

    def test_failed_commit_closes_transaction(self, executor):
        executor.execute('CREATE TABLE "parent" ("id" INTEGER PRIMARY KEY)')
        executor.execute(
            'CREATE TABLE "child" ("id" INTEGER PRIMARY KEY, "parent_id" INTEGER '
            'REFERENCES "parent"("id") DEFERRABLE INITIALLY DEFERRED)'
        )
        with pytest.raises(ConstraintError):
            executor.run_in_transaction(
                lambda: executor.execute('INSERT INTO "child" VALUES (1, 99)')
            )
        assert not executor.in_transaction

        executor.run_in_transaction(lambda: executor.execute('INSERT INTO "parent" VALUES (1)'))
        assert not executor.in_transaction
        assert executor.scalar('SELECT COUNT(*) FROM "parent"') == 1
        assert executor.scalar('SELECT COUNT(*) FROM "child"') == 0

    def test_context_manager(self, executor):
        executor.create_table(Stock)
        with executor.transaction():
            executor.insert(Stock(Symbol="A"))
        with pytest.raises(KeyError):
            with executor.transaction():
                executor.insert(Stock(Symbol="B"))
                raise KeyError("x")
        assert _symbols(executor) == ["A"]

    def test_explicit_savepoints(self, executor):
        executor.create_table(Stock)
        executor.begin_transaction()
        executor.insert(Stock(Symbol="keep"))
        sp = executor.save_transaction_point()
        executor.insert(Stock(Symbol="drop"))
        executor.rollback_to(sp)
        executor.release(sp)
        executor.commit()
        assert _symbols(executor) == ["keep"]

    def test_savepoint_begins_transaction(self, executor):
        executor.create_table(Stock)
        sp = executor.save_transaction_point()
        assert executor.in_transaction
        executor.insert(Stock(Symbol="A"))
        executor.release(sp)
        executor.rollback()
        assert _symbols(executor) == []
