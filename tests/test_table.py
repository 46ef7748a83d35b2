"""Tests for the concurrent table and its row guards."""

from __future__ import annotations

import gc
import random
import threading
from dataclasses import dataclass, replace

import polars as pl
import pytest

from monitor_table.errors import (
    QueryExecutionError,
    QueryParseError,
    TablePoisonedError,
    TypeConversionError,
)
from monitor_table.row import TableRow
from monitor_table.slots import RowKey
from monitor_table.table import RowGuard, RowOwnedGuard, Table
from monitor_table.types import LiteralType, LiteralValue


class Row(TableRow):
    def __init__(self, x: int) -> None:
        self.x = x

    @classmethod
    def schema(cls):
        return [("x", LiteralType.INT)]

    def fields(self):
        return [LiteralValue.int(self.x)]


class Session(TableRow):
    def __init__(self, peer: str, bytes_in: int | None, secure: bool) -> None:
        self.peer = peer
        self.bytes_in = bytes_in
        self.secure = secure

    @classmethod
    def schema(cls):
        return [
            ("peer", LiteralType.STRING),
            ("bytes_in", LiteralType.UINT),
            ("secure", LiteralType.BOOL),
        ]

    def fields(self):
        bytes_in = None if self.bytes_in is None else LiteralValue.uint(self.bytes_in)
        return [LiteralValue.string(self.peer), bytes_in, LiteralValue.bool(self.secure)]

    @classmethod
    def display_value(cls, header, value):
        if header == "secure" and value is not None:
            return "yes" if value.as_bool() else "no"
        return super().display_value(header, value)


@dataclass(frozen=True)
class Point(TableRow):
    x: float
    y: float

    @classmethod
    def schema(cls):
        return [("x", LiteralType.FLOAT), ("y", LiteralType.FLOAT)]

    def fields(self):
        return [LiteralValue.float(self.x), LiteralValue.float(self.y)]


class Queue(TableRow):
    def __init__(self, pending: list[int]) -> None:
        self.pending = pending

    @classmethod
    def schema(cls):
        return [("depth", LiteralType.UINT)]

    def fields(self):
        return [LiteralValue.uint(len(self.pending))]


class BadRow(Row):
    def fields(self):
        return [LiteralValue.string(str(self.x))]


def set_one(row: Row) -> None:
    row.x = 1


@pytest.fixture
def table():
    return Table(Row)


class TestEndToEnd:
    """The guard lifecycle seen through queries."""

    def test_basics(self, table):
        scope_1 = table.set_scope(Row(0))
        scope_1.inspect_mut(set_one)
        scope_2 = table.set_scope(Row(0))

        assert str(table.to_view("sort x")) == "x \n0 \n1 \n"

        scope_1.release()
        assert str(table.to_view("")) == "x \n0 \n"

        scope_2.release()
        assert str(table.to_view("")) == "x \n"

    def test_dropping_guard_removes_row(self, table):
        guard = table.set_scope(Row(5))
        assert len(table) == 1

        del guard
        gc.collect()
        assert len(table) == 0

    def test_with_block(self, table):
        with table.set_scope(Row(1)) as guard:
            assert guard.active
            assert len(table) == 1
        assert not guard.active
        assert len(table) == 0

    def test_with_block_error_path(self, table):
        """The row is removed even when the block raises."""
        with pytest.raises(RuntimeError):
            with table.set_scope(Row(1)):
                raise RuntimeError("boom")
        assert len(table) == 0

    def test_mixed_types_and_display_hook(self):
        table = Table(Session)
        guards = [
            table.set_scope(Session("10.0.0.2", 2048, True)),
            table.set_scope(Session("10.0.0.1", None, False)),
        ]

        view = table.to_view("sort peer")
        assert str(view) == (
            "peer     bytes_in secure \n"
            "10.0.0.1              no \n"
            "10.0.0.2     2048    yes \n"
        )
        for guard in guards:
            guard.release()

    def test_query_result_columns(self):
        table = Table(Session)
        guards = [
            table.set_scope(Session("a", 10, True)),
            table.set_scope(Session("b", 30, True)),
            table.set_scope(Session("c", 5, False)),
        ]

        view = table.to_view("group secure agg count, sum(bytes_in) sort secure")
        assert view.titles == ("secure", "count", "sum_bytes_in")
        assert view.rows == (("no", "1", "5"), ("yes", "2", "40"))
        for guard in guards:
            guard.release()


class TestTable:
    """Tests for Table operations."""

    def test_insert_and_remove(self, table):
        key = table.insert(Row(3))
        assert key in table
        assert len(table) == 1

        removed = table.remove(key)
        assert removed.x == 3
        assert key not in table

    def test_remove_absent_key(self, table):
        """Removing a missing key is not an error."""
        assert table.remove(RowKey(index=0, generation=0)) is None
        key = table.insert(Row(1))
        table.remove(key)
        assert table.remove(key) is None

    def test_insert_wrong_type(self, table):
        with pytest.raises(TypeError):
            table.insert(Point(1.0, 2.0))

    def test_new_tables_are_independent(self):
        a = Table(Row)
        b = Table(Row)
        a.insert(Row(1))
        assert len(b) == 0
        assert not a.shares_storage(b)

    def test_clone_shares_rows(self, table):
        clone = table.clone()
        assert clone is not table
        assert clone.shares_storage(table)

        key = clone.insert(Row(1))
        assert key in table
        assert len(table) == 1

    def test_inspect(self, table):
        key = table.insert(Row(7))
        assert table.inspect(key, lambda r: r.x) == 7
        table.remove(key)
        assert table.inspect(key, lambda r: r.x) is None

    def test_inspect_mut_missing_key(self, table):
        key = table.insert(Row(0))
        table.remove(key)
        assert table.inspect_mut(key, set_one) is False

    def test_inspect_mut_replacement(self):
        """A returned object replaces the stored row, for immutable rows."""
        table = Table(Point)
        key = table.insert(Point(1.0, 2.0))

        assert table.inspect_mut(key, lambda p: replace(p, x=3.0))
        assert table.inspect(key, lambda p: p) == Point(3.0, 2.0)

    def test_inspect_mut_returning_non_row(self):
        """A stray return value is rejected without poisoning the table."""
        table = Table(Queue)
        key = table.insert(Queue([1, 2]))

        with pytest.raises(TypeError):
            table.inspect_mut(key, lambda q: q.pending.pop())

        assert not table.poisoned
        assert table.inspect(key, lambda q: q.pending) == [1]
        assert len(table) == 1

    def test_keys(self, table):
        keys = {table.insert(Row(i)) for i in range(3)}
        assert set(table.keys()) == keys

    def test_snapshot(self, table):
        table.insert(Row(1))
        table.insert(Row(2))
        frame = table.snapshot()
        assert frame.columns == ["x"]
        assert frame.dtypes == [pl.Int64]
        assert sorted(frame["x"].to_list()) == [1, 2]

    def test_query_parse_error_leaves_table(self, table):
        table.insert(Row(1))
        with pytest.raises(QueryParseError):
            table.to_view("sort")
        assert len(table) == 1

    @pytest.mark.parametrize("stage", ["limit", "offset"])
    def test_oversized_row_count(self, table, stage):
        table.insert(Row(1))
        with pytest.raises(QueryParseError):
            table.to_view(f"{stage} 99999999999999999999999")
        assert len(table) == 1

    def test_query_execution_error(self, table):
        with pytest.raises(QueryExecutionError):
            table.to_view("sort y")

    def test_field_type_mismatch(self):
        table = Table(BadRow)
        table.insert(BadRow(1))
        with pytest.raises(TypeConversionError):
            table.to_view("")

    def test_stale_key_after_slot_reuse(self, table):
        old = table.insert(Row(1))
        table.remove(old)
        new = table.insert(Row(2))

        assert old != new
        assert old not in table
        assert table.inspect(old, lambda r: r.x) is None
        assert table.inspect(new, lambda r: r.x) == 2


class TestPoisoning:
    """A failed write makes the table unusable."""

    def test_failed_mutation_poisons(self, table):
        key = table.insert(Row(1))

        def explode(row):
            raise ValueError("bad mutation")

        with pytest.raises(ValueError):
            table.inspect_mut(key, explode)

        assert table.poisoned
        with pytest.raises(TablePoisonedError):
            len(table)
        with pytest.raises(TablePoisonedError):
            table.insert(Row(2))
        with pytest.raises(TablePoisonedError):
            table.to_view("")

    def test_poison_shared_by_clones(self, table):
        clone = table.clone()
        key = table.insert(Row(1))
        with pytest.raises(ZeroDivisionError):
            table.inspect_mut(key, lambda r: 1 / 0)
        with pytest.raises(TablePoisonedError):
            clone.remove(key)


class TestGuards:
    """Tests for RowGuard and RowOwnedGuard."""

    def test_release_once(self, table):
        guard = table.set_scope(Row(4))
        assert isinstance(guard, RowGuard)

        row = guard.release()
        assert row.x == 4
        assert guard.release() is None
        assert not guard.active

    def test_inspect_mut_after_release(self, table):
        guard = table.set_scope(Row(0))
        guard.release()
        assert guard.inspect_mut(set_one) is False

    def test_explicit_remove_then_release(self, table):
        """An explicit remove before the guard ends is fine."""
        guard = table.set_scope(Row(0))
        assert table.remove(guard.key).x == 0
        assert guard.release() is None
        assert len(table) == 0

    def test_release_does_not_touch_reused_slot(self, table):
        guard = table.set_scope(Row(0))
        table.remove(guard.key)
        other = table.insert(Row(9))

        guard.release()
        assert other in table

    def test_borrowed_guard_uses_callers_handle(self, table):
        guard = table.set_scope(Row(0))
        assert guard.table is table
        guard.release()

    def test_owned_guard_keeps_table_alive(self):
        table = Table(Row)
        guard = table.set_scope_owned(Row(3))
        assert isinstance(guard, RowOwnedGuard)
        assert guard.table is not table
        assert guard.table.shares_storage(table)

        del table
        gc.collect()
        assert len(guard.table) == 1
        guard.release()
        assert len(guard.table) == 0

    def test_concurrent_release_removes_once(self, table):
        guard = table.set_scope(Row(0))
        results = []
        barrier = threading.Barrier(8, timeout=5)

        def release():
            barrier.wait()
            results.append(guard.release())

        threads = [threading.Thread(target=release) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert len([r for r in results if r is not None]) == 1
        assert len(table) == 0


class TestConcurrency:
    """Stress tests across threads."""

    def test_guard_balance(self, table):
        """N guards created and released across threads leave no rows behind."""
        table.insert(Row(-1))

        def worker(seed):
            rng = random.Random(seed)
            guards = [table.set_scope(Row(i)) for i in range(50)]
            rng.shuffle(guards)
            for guard in guards:
                if rng.random() < 0.5:
                    guard.inspect_mut(set_one)
                guard.release()

        threads = [threading.Thread(target=worker, args=(seed,)) for seed in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert len(table) == 1

    def test_random_insert_remove(self, table):
        """Final count is inserts minus removes and every key resolves."""
        counts = {}
        live_by_thread = {}

        def worker(seed):
            rng = random.Random(seed)
            live = []
            inserted = removed = 0
            for _ in range(300):
                if live and rng.random() < 0.4:
                    key = live.pop(rng.randrange(len(live)))
                    assert table.remove(key) is not None
                    removed += 1
                else:
                    live.append(table.insert(Row(seed)))
                    inserted += 1
                if rng.random() < 0.05:
                    table.to_view("sort x limit 3")
            counts[seed] = inserted - removed
            live_by_thread[seed] = live

        threads = [threading.Thread(target=worker, args=(seed,)) for seed in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert len(table) == sum(counts.values())
        all_keys = [k for keys in live_by_thread.values() for k in keys]
        assert len(set(all_keys)) == len(all_keys)
        assert set(table.keys()) == set(all_keys)
        for seed, keys in live_by_thread.items():
            for key in keys:
                assert table.inspect(key, lambda r: r.x) == seed


class RecordingEngine:
    """Stands in for a query engine and records what it was given."""

    def __init__(self, table_ref):
        self.table_ref = table_ref
        self.calls = []

    def parse(self, query):
        if query == "bad":
            raise QueryParseError("bad query")
        return query

    def execute(self, frame, parsed):
        # The lock must be free while the engine runs
        self.table_ref[0].insert(Row(100))
        self.calls.append((frame.height, parsed))
        return frame.select(pl.col("x").count().alias("n"))


class TestQueryEngineBoundary:
    """Tables talk to engines only through parse/execute."""

    def test_custom_engine(self):
        ref = []
        engine = RecordingEngine(ref)
        table = Table(Row, engine=engine)
        ref.append(table)
        table.insert(Row(1))

        view = table.to_view("anything")
        assert engine.calls == [(1, "anything")]
        assert str(view) == "n \n1 \n"
        assert len(table) == 2

    def test_parse_error_before_snapshot(self):
        ref = []
        engine = RecordingEngine(ref)
        table = Table(Row, engine=engine)
        ref.append(table)

        with pytest.raises(QueryParseError):
            table.to_view("bad")
        assert engine.calls == []
        assert len(table) == 0
