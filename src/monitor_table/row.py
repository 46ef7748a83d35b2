"""The capability a record type implements to live in a Table."""

from __future__ import annotations

from monitor_table.types import LiteralType, LiteralValue


class TableRow:
    """Base class for records stored in a Table.

    Subclasses describe their columns once, in schema(), and report one value
    per column from fields(). The column order of fields() must match schema().

    Example:
        class Row(TableRow):
            def __init__(self, x: int) -> None:
                self.x = x

            @classmethod
            def schema(cls):
                return [("x", LiteralType.INT)]

            def fields(self):
                return [LiteralValue.int(self.x)]
    """

    @classmethod
    def schema(cls) -> list[tuple[str, LiteralType]]:
        """Return the (header, type) pairs, fixed for the row type."""
        raise NotImplementedError

    def fields(self) -> list[LiteralValue | None]:
        """Return this row's values in schema order; None is a null cell."""
        raise NotImplementedError

    @classmethod
    def display_value(cls, header: str, value: LiteralValue | None) -> str:
        """Convert a cell to the text shown in a rendered view.

        The header names the result column so a row type may format
        particular columns differently.
        """
        if value is None:
            return ""
        return str(value)
