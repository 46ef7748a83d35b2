"""Command line entry point: query a table stored in its text form."""

from __future__ import annotations

import argparse
import logging
import re
import sys
from pathlib import Path
from typing import Sequence

from monitor_table.errors import MonitorTableError
from monitor_table.projection import fields_to_frame, render_frame
from monitor_table.query_executor import PolarsQueryEngine
from monitor_table.row import TableRow
from monitor_table.types import INT64_MAX, INT64_MIN, UINT64_MAX, LiteralType, LiteralValue
from monitor_table.view import TableView

logger = logging.getLogger(__name__)


# Numbers as LiteralValue prints them; "+5", "1_000" and "inf" stay text
INT_PATTERN = re.compile(r"-?\d+")
FLOAT_PATTERN = re.compile(r"-?\d+(\.\d+)?(e[+-]\d+)?")


def infer_column_type(cells: Sequence[str]) -> LiteralType:
    """Pick the narrowest literal type every non-empty cell parses as.

    Integer columns are INT when every value fits in 64 signed bits, and UINT
    when they are all non-negative and fit in 64 unsigned bits.
    """
    values = [c for c in cells if c]
    if not values:
        return LiteralType.STRING
    if all(v in ("true", "false") for v in values):
        return LiteralType.BOOL
    if all(INT_PATTERN.fullmatch(v) for v in values):
        numbers = [int(v) for v in values]
        if all(INT64_MIN <= n <= INT64_MAX for n in numbers):
            return LiteralType.INT
        if all(0 <= n <= UINT64_MAX for n in numbers):
            return LiteralType.UINT
        return LiteralType.STRING
    if all(FLOAT_PATTERN.fullmatch(v) for v in values):
        return LiteralType.FLOAT
    return LiteralType.STRING


def parse_cell(text: str, literal_type: LiteralType) -> LiteralValue | None:
    """Convert cell text to a literal; empty cells are null."""
    if not text:
        return None
    if literal_type is LiteralType.BOOL:
        return LiteralValue.bool(text == "true")
    if literal_type is LiteralType.INT:
        return LiteralValue.int(int(text))
    if literal_type is LiteralType.UINT:
        return LiteralValue.uint(int(text))
    if literal_type is LiteralType.FLOAT:
        return LiteralValue.float(float(text))
    return LiteralValue.string(text)


def query_view(view: TableView, query: str, engine: PolarsQueryEngine | None = None) -> str:
    """Run a query over a decoded view and return the aligned text."""
    engine = engine or PolarsQueryEngine()
    parsed = engine.parse(query)

    schema = []
    for i, title in enumerate(view.titles):
        schema.append((title, infer_column_type([row[i] for row in view.rows])))
    field_rows = [
        [parse_cell(cell, literal_type) for cell, (_, literal_type) in zip(row, schema)]
        for row in view.rows
    ]
    logger.debug("Inferred schema: %s", [(t, lt.value) for t, lt in schema])

    result = engine.execute(fields_to_frame(schema, field_rows), parsed)
    return str(render_frame(result, TableRow.display_value))


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    arg_parser = argparse.ArgumentParser(
        description="Query a table given in its aligned text form"
    )
    arg_parser.add_argument(
        "file",
        type=Path,
        nargs="?",
        default=None,
        help="File holding the table text (default: read stdin)",
    )
    arg_parser.add_argument(
        "-q", "--query",
        type=str,
        default="",
        help="Query to run, e.g. 'filter cpu > 50 sort cpu desc'",
    )
    arg_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log debug output to stderr",
    )

    args = arg_parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    if args.file is not None:
        if not args.file.exists():
            print(f"Error: File not found: {args.file}", file=sys.stderr)
            return 1
        text = args.file.read_text()
    else:
        text = sys.stdin.read()

    try:
        view = TableView.parse(text)
        output = query_view(view, args.query)
    except MonitorTableError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    sys.stdout.write(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
