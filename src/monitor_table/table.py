"""Thread-safe row registry with scope-bound rows."""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Callable, Generic, TypeVar

import polars as pl

from monitor_table.projection import fields_to_frame, render_frame
from monitor_table.query_executor import PolarsQueryEngine, QueryEngine
from monitor_table.rwlock import ReaderWriterLock
from monitor_table.slots import RowKey, SlotStore
from monitor_table.types import LiteralType
from monitor_table.view import AlignedTableView

logger = logging.getLogger(__name__)

R = TypeVar("R")


class Table(Generic[R]):
    """Rows of one row type, shared between threads.

    A Table is a handle: clone() returns another handle to the same rows and
    lock, while constructing a Table always starts an independent, empty one.
    All reads take the shared side of the lock and all writes the exclusive
    side. An exception raised inside a write (for instance by an
    inspect_mut callback) poisons the table for every handle.
    """

    def __init__(self, row_type: type[R], engine: QueryEngine | None = None) -> None:
        """Create an empty table.

        Args:
            row_type: The TableRow type of the rows; supplies the schema and
                the display hook, even when the table is empty.
            engine: Query engine used by to_view; defaults to the bundled
                polars engine.
        """
        self.row_type = row_type
        self.engine: QueryEngine = engine if engine is not None else PolarsQueryEngine()
        self._lock = ReaderWriterLock()
        self._rows: SlotStore[R] = SlotStore()

    def clone(self) -> Table[R]:
        """Return another handle to the same rows and lock."""
        return copy.copy(self)

    def shares_storage(self, other: Table[Any]) -> bool:
        return self._rows is other._rows

    @property
    def poisoned(self) -> bool:
        return self._lock.poisoned

    def schema(self) -> list[tuple[str, LiteralType]]:
        return list(self.row_type.schema())  # type: ignore[attr-defined]

    def _is_row(self, row: Any) -> bool:
        return not isinstance(self.row_type, type) or isinstance(row, self.row_type)

    def _check_row(self, row: Any) -> None:
        if not self._is_row(row):
            raise TypeError(
                f"Expected a {self.row_type.__name__} row, got {type(row).__name__}"
            )

    def insert(self, row: R) -> RowKey:
        """Add a row and return its key."""
        self._check_row(row)
        with self._lock.write():
            key = self._rows.insert(row)
        logger.debug("Inserted row %s", key)
        return key

    def set_scope(self, row: R) -> RowGuard[R]:
        """Add a row that lives as long as the returned guard."""
        key = self.insert(row)
        return RowGuard(self, key)

    def set_scope_owned(self, row: R) -> RowOwnedGuard[R]:
        """Like set_scope, but the guard holds its own handle to the table."""
        key = self.insert(row)
        return RowOwnedGuard(self, key)

    def remove(self, key: RowKey) -> R | None:
        """Remove a row; returns None if it was already gone."""
        with self._lock.write():
            row = self._rows.remove(key)
        if row is not None:
            logger.debug("Removed row %s", key)
        return row

    def inspect_mut(self, key: RowKey, mutation: Callable[[R], R | None]) -> bool:
        """Apply mutation to a live row under the write lock.

        If mutation returns a row of this table's row type, that row
        replaces the stored one. The mutation must not call back into this
        table.

        Returns:
            True if the row was live, False if the key is stale.

        Raises:
            TypeError: If mutation returned something other than None or a
                row. The in-place changes are kept and the table stays usable.
        """
        with self._lock.write():
            row = self._rows.get_mut(key)
            if row is None:
                return False
            replacement = mutation(row)
            if replacement is None:
                return True
            if self._is_row(replacement):
                self._rows.replace(key, replacement)
                return True
        # Raised after the lock is released so the table is not poisoned
        self._check_row(replacement)
        return True

    def inspect(self, key: RowKey, reader: Callable[[R], Any]) -> Any:
        """Return reader(row) computed under the read lock, or None if absent."""
        with self._lock.read():
            row = self._rows.get(key)
            if row is None:
                return None
            return reader(row)

    def keys(self) -> list[RowKey]:
        """Return the keys of all live rows."""
        with self._lock.read():
            return list(self._rows.keys())

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._rows)

    def __contains__(self, key: object) -> bool:
        with self._lock.read():
            return key in self._rows

    def snapshot(self) -> pl.DataFrame:
        """Copy all rows into a typed column frame.

        Only the field extraction happens under the read lock; building the
        frame happens after it is released.
        """
        schema = self.schema()
        with self._lock.read():
            field_rows = [row.fields() for _key, row in self._rows.items()]  # type: ignore[attr-defined]
        logger.debug("Snapshot of %d row(s)", len(field_rows))
        return fields_to_frame(schema, field_rows)

    def to_view(self, query: str) -> AlignedTableView:
        """Run a query over a snapshot of the table and format the result.

        The query is parsed before the table is touched and executed after
        the lock is released, so a slow query never blocks other threads.

        Raises:
            QueryError: If the query fails to parse or execute.
            TypeConversionError: If a value does not fit its column type.
        """
        parsed = self.engine.parse(query)
        frame = self.snapshot()
        result = self.engine.execute(frame, parsed)
        return render_frame(result, self.row_type.display_value)  # type: ignore[attr-defined]


class RowGuard(Generic[R]):
    """Keeps one row in a table until released.

    The row is removed exactly once: by release(), by leaving a `with`
    block, or when the guard is garbage collected, whichever comes first.
    """

    def __init__(self, table: Table[R], key: RowKey) -> None:
        self._table = table
        self.key = key
        self._state_lock = threading.Lock()
        self._active = True

    @property
    def table(self) -> Table[R]:
        return self._table

    @property
    def active(self) -> bool:
        return self._active

    def inspect_mut(self, mutation: Callable[[R], R | None]) -> bool:
        """Mutate the guarded row; does nothing once released."""
        if not self._active:
            return False
        return self._table.inspect_mut(self.key, mutation)

    def release(self) -> R | None:
        """Remove the row now. Later calls do nothing and return None."""
        with self._state_lock:
            if not self._active:
                return None
            self._active = False
        logger.debug("Releasing guard for %s", self.key)
        return self._table.remove(self.key)

    def __enter__(self) -> RowGuard[R]:
        return self

    def __exit__(self, *args: Any) -> None:
        self.release()

    def __del__(self) -> None:
        if getattr(self, "_active", False):
            self.release()


class RowOwnedGuard(RowGuard[R]):
    """A RowGuard holding its own table handle, independent of the caller's."""

    def __init__(self, table: Table[R], key: RowKey) -> None:
        super().__init__(table.clone(), key)
