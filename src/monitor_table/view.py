"""Immutable titled grids of display strings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from monitor_table.errors import ConstructionError
from monitor_table.types import Alignment


def _check_rep(titles: tuple[str, ...], rows: tuple[tuple[str, ...], ...]) -> None:
    for title in titles:
        if not title:
            raise ConstructionError("All titles are not allowed to be empty")
        if " " in title:
            raise ConstructionError(f"Spaces are not allowed in titles: {title!r}")
        if "\n" in title:
            raise ConstructionError(f"New lines are not allowed in titles: {title!r}")
    for i, row in enumerate(rows):
        if len(row) != len(titles):
            raise ConstructionError(
                f"Unaligned columns: row {i} has {len(row)} cells, expected {len(titles)}"
            )
        for cell in row:
            if "\n" in cell:
                raise ConstructionError(f"New lines are not allowed in cells: {cell!r}")


@dataclass(frozen=True)
class TableView:
    """Column titles plus rows of cell text.

    Invariants, checked on construction:
    - every title is non-empty and holds no space or newline
    - every row has exactly one cell per title
    - no cell holds a newline
    """

    titles: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...] = ()

    def __init__(self, titles: Iterable[str], rows: Iterable[Sequence[str]] = ()) -> None:
        titles = tuple(titles)
        rows = tuple(tuple(row) for row in rows)
        _check_rep(titles, rows)
        object.__setattr__(self, "titles", titles)
        object.__setattr__(self, "rows", rows)

    @classmethod
    def parse(cls, text: str) -> TableView:
        """Decode the text form produced by str()."""
        from monitor_table.protocol import decode

        return decode(text)

    def column_widths(self) -> list[int]:
        """Return max(title, widest cell) for each column."""
        widths = [len(t) for t in self.titles]
        for row in self.rows:
            for i, cell in enumerate(row):
                widths[i] = max(widths[i], len(cell))
        return widths

    def __str__(self) -> str:
        from monitor_table.protocol import encode

        return encode(self)


@dataclass(frozen=True)
class AlignedTableView:
    """A TableView plus the alignment of each column's cells."""

    view: TableView
    alignments: tuple[Alignment, ...]

    def __init__(self, view: TableView, alignments: Iterable[Alignment]) -> None:
        alignments = tuple(alignments)
        if len(alignments) != len(view.titles):
            raise ConstructionError(
                f"Got {len(alignments)} alignments for {len(view.titles)} columns"
            )
        object.__setattr__(self, "view", view)
        object.__setattr__(self, "alignments", alignments)

    @property
    def titles(self) -> tuple[str, ...]:
        return self.view.titles

    @property
    def rows(self) -> tuple[tuple[str, ...], ...]:
        return self.view.rows

    def __str__(self) -> str:
        from monitor_table.protocol import encode

        return encode(self.view, self.alignments)
