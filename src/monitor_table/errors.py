"""Exception types raised by monitor_table."""

from __future__ import annotations


class MonitorTableError(Exception):
    """Base class for recoverable errors."""


class ConstructionError(MonitorTableError, ValueError):
    """A table view was built from titles or rows that break its invariants."""


class DecodeError(MonitorTableError, ValueError):
    """Text could not be parsed back into a table view."""


class QueryError(MonitorTableError):
    """A query could not be parsed or executed."""


class QueryParseError(QueryError):
    """The query text is not valid."""


class QueryExecutionError(QueryError):
    """The query parsed but failed while running against a snapshot."""


class TypeConversionError(MonitorTableError, TypeError):
    """A value's type does not match the literal type it must be converted to."""


class TablePoisonedError(RuntimeError):
    """A write to the table failed part-way; the table can no longer be used."""


class InternalInvariantViolation(RuntimeError):
    """Data generated by monitor_table itself broke a view invariant."""
