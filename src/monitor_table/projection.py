"""Conversion between row fields, polars frames and rendered views."""

from __future__ import annotations

from typing import Any, Callable, Sequence

import polars as pl

from monitor_table.errors import ConstructionError, InternalInvariantViolation, TypeConversionError
from monitor_table.types import LiteralType, LiteralValue
from monitor_table.view import AlignedTableView, TableView

Schema = Sequence[tuple[str, LiteralType]]
DisplayValue = Callable[[str, "LiteralValue | None"], str]


def fields_to_frame(schema: Schema, field_rows: Sequence[Sequence[LiteralValue | None]]) -> pl.DataFrame:
    """Build a snapshot frame with one typed column per schema entry.

    Args:
        schema: (header, type) pairs of the row type.
        field_rows: One fields() result per row.

    Raises:
        TypeConversionError: If a row has the wrong number of fields or a
            field's type disagrees with the schema.
    """
    columns: list[list[Any]] = [[] for _ in schema]
    for fields in field_rows:
        if len(fields) != len(schema):
            raise TypeConversionError(
                f"Row has {len(fields)} fields but the schema has {len(schema)} columns"
            )
        for i, ((header, literal_type), cell) in enumerate(zip(schema, fields)):
            if cell is None:
                columns[i].append(None)
                continue
            try:
                columns[i].append(cell.to_native(literal_type))
            except TypeConversionError as e:
                raise TypeConversionError(f"Column '{header}': {e}") from e

    return pl.DataFrame(
        [
            pl.Series(header, column, dtype=literal_type.polars_dtype)
            for (header, literal_type), column in zip(schema, columns)
        ]
    )


def literal_type(dtype: pl.DataType) -> LiteralType:
    """Map a polars dtype onto the literal type a result column holds."""
    if dtype == pl.Boolean:
        return LiteralType.BOOL
    if dtype.is_unsigned_integer():
        return LiteralType.UINT
    if dtype.is_signed_integer():
        return LiteralType.INT
    if dtype.is_float():
        return LiteralType.FLOAT
    if dtype == pl.String:
        return LiteralType.STRING
    raise TypeConversionError(
        f"Data type {dtype} is unsupported; only boolean, integer, float, or string columns are allowed"
    )


def frame_columns(frame: pl.DataFrame) -> list[tuple[str, LiteralType, list[LiteralValue | None]]]:
    """Read every column of a result frame back into literal values."""
    columns = []
    for series in frame.get_columns():
        column_type = literal_type(series.dtype)
        if column_type is not LiteralType.STRING and column_type is not LiteralType.BOOL:
            try:
                series = series.cast(column_type.polars_dtype)
            except pl.exceptions.PolarsError as e:
                raise TypeConversionError(
                    f"Column '{series.name}' cannot be read as {column_type.value}: {e}"
                ) from e
        values = [None if v is None else LiteralValue(column_type, v) for v in series.to_list()]
        columns.append((series.name, column_type, values))
    return columns


def render_frame(frame: pl.DataFrame, display_value: DisplayValue) -> AlignedTableView:
    """Format a result frame as an aligned view.

    Strings are left aligned and every other type right aligned. Each cell's
    text comes from display_value(header, value).

    Raises:
        TypeConversionError: If a column's dtype has no literal type.
        InternalInvariantViolation: If the formatted cells break a view
            invariant, e.g. display_value produced a newline.
    """
    columns = frame_columns(frame)
    titles = [name for name, _, _ in columns]
    alignments = [column_type.alignment for _, column_type, _ in columns]

    rows = []
    for j in range(frame.height):
        rows.append([display_value(name, values[j]) for name, _, values in columns])

    try:
        view = TableView(titles, rows)
    except ConstructionError as e:
        raise InternalInvariantViolation(f"Failed to build the table view: {e}") from e
    return AlignedTableView(view, alignments)
