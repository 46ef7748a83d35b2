"""Monitor Table - live application state as a queryable, printable table."""

from monitor_table.errors import (
    ConstructionError,
    DecodeError,
    InternalInvariantViolation,
    MonitorTableError,
    QueryError,
    QueryExecutionError,
    QueryParseError,
    TablePoisonedError,
    TypeConversionError,
)
from monitor_table.protocol import decode, encode
from monitor_table.query_executor import PolarsQueryEngine, QueryEngine
from monitor_table.row import TableRow
from monitor_table.slots import RowKey, SlotStore
from monitor_table.table import RowGuard, RowOwnedGuard, Table
from monitor_table.types import Alignment, LiteralType, LiteralValue
from monitor_table.view import AlignedTableView, TableView

__all__ = [
    # Main API
    "Table",
    "TableRow",
    "RowGuard",
    "RowOwnedGuard",
    "RowKey",
    "SlotStore",
    # Values
    "LiteralType",
    "LiteralValue",
    "Alignment",
    # Views and text format
    "TableView",
    "AlignedTableView",
    "encode",
    "decode",
    # Query engines
    "QueryEngine",
    "PolarsQueryEngine",
    # Errors
    "MonitorTableError",
    "ConstructionError",
    "DecodeError",
    "QueryError",
    "QueryParseError",
    "QueryExecutionError",
    "TypeConversionError",
    "TablePoisonedError",
    "InternalInvariantViolation",
]

__version__ = "0.1.0"
