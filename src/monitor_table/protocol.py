"""Plain-text wire format for table views.

Every column is padded to max(title, widest cell) and followed by one
separator space; every line ends with a newline:

    id  usage
    cpu    80
    mem    20

Titles are always left aligned. Cells are left or right aligned per column.
A table ends at the first empty line or at the end of the input.

Decoding takes the column widths from the title line alone and slices each
data line at those fixed offsets. Data lines are not checked against their
own spacing, so text that was not produced by encode() can decode into
shifted cells.
"""

from __future__ import annotations

from typing import Sequence

from monitor_table.errors import ConstructionError, DecodeError
from monitor_table.types import Alignment
from monitor_table.view import TableView


def _pad(text: str, width: int, alignment: Alignment) -> str:
    if alignment is Alignment.RIGHT:
        return text.rjust(width) + " "
    return text.ljust(width) + " "


def encode(view: TableView, alignments: Sequence[Alignment] | None = None) -> str:
    """Render a view; without alignments every column is left aligned."""
    if alignments is None:
        alignments = [Alignment.LEFT] * len(view.titles)
    elif len(alignments) != len(view.titles):
        raise ConstructionError(
            f"Got {len(alignments)} alignments for {len(view.titles)} columns"
        )
    widths = view.column_widths()

    lines = ["".join(_pad(t, w, Alignment.LEFT) for t, w in zip(view.titles, widths))]
    for row in view.rows:
        lines.append("".join(_pad(c, w, a) for c, w, a in zip(row, widths, alignments)))
    return "".join(line + "\n" for line in lines)


def _parse_title_line(line: str) -> tuple[list[str], list[int]]:
    """Split a title line into titles and their column widths.

    A column ends where a run of spaces is followed by the next title. Its
    width is the title length plus the padding, minus the separator space.
    """
    if not line:
        # A view without columns
        return [], []
    if line[0] == " ":
        raise DecodeError("Title line must not start with a space")

    titles: list[str] = []
    widths: list[int] = []
    title = ""
    padding = 0
    for c in line:
        if c == " ":
            padding += 1
            continue
        if title and padding > 0:
            titles.append(title)
            widths.append(len(title) + padding - 1)
            title = ""
            padding = 0
        title += c

    if padding == 0:
        raise DecodeError(f"Title {title!r} is missing its trailing separator space")
    titles.append(title)
    widths.append(len(title) + padding - 1)
    return titles, widths


def decode(text: str) -> TableView:
    """Parse the text form back into a TableView.

    Raises:
        DecodeError: If the text is malformed or yields an invalid view.
    """
    if not text:
        raise DecodeError("Missing title line")
    lines = text.split("\n")
    titles, widths = _parse_title_line(lines[0])

    rows: list[list[str]] = []
    for line in lines[1:]:
        if not line:
            break
        row = []
        offset = 0
        for width in widths:
            row.append(line[offset : offset + width].strip())
            offset += width + 1
        rows.append(row)

    try:
        return TableView(titles, rows)
    except ConstructionError as e:
        raise DecodeError(f"Decoded table is invalid: {e}") from e
