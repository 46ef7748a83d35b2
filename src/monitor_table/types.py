"""Literal value types for table columns."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

import polars as pl

from monitor_table.errors import TypeConversionError

UINT64_MAX = (1 << 64) - 1
INT64_MIN = -(1 << 63)
INT64_MAX = (1 << 63) - 1


class Alignment(Enum):
    """How a cell is padded to its column width."""

    LEFT = "left"
    RIGHT = "right"


class LiteralType(Enum):
    """The value types a column may hold."""

    STRING = "string"
    UINT = "uint"
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"

    @property
    def polars_dtype(self) -> pl.DataType:
        """Return the polars dtype used for a column of this type."""
        dtypes = {
            LiteralType.STRING: pl.String,
            LiteralType.UINT: pl.UInt64,
            LiteralType.INT: pl.Int64,
            LiteralType.FLOAT: pl.Float64,
            LiteralType.BOOL: pl.Boolean,
        }
        return dtypes[self]

    @property
    def alignment(self) -> Alignment:
        """Strings read left to right; numbers and flags line up on the right."""
        if self is LiteralType.STRING:
            return Alignment.LEFT
        return Alignment.RIGHT


# Mapping from type name strings to LiteralType enum values
LITERAL_TYPE_NAMES: dict[str, LiteralType] = {lt.value: lt for lt in LiteralType}


def _check_native(literal_type: LiteralType, value: Any) -> None:
    """Raise TypeConversionError unless value is a valid native for literal_type."""
    if literal_type is LiteralType.STRING:
        ok = isinstance(value, str)
    elif literal_type is LiteralType.BOOL:
        ok = isinstance(value, bool)
    elif literal_type is LiteralType.FLOAT:
        ok = isinstance(value, float)
    elif literal_type is LiteralType.UINT:
        ok = isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= UINT64_MAX
    else:
        ok = isinstance(value, int) and not isinstance(value, bool) and INT64_MIN <= value <= INT64_MAX
    if not ok:
        raise TypeConversionError(
            f"Cannot hold {type(value).__name__} value {value!r} as {literal_type.value}"
        )


@dataclass(frozen=True)
class LiteralValue:
    """A single typed cell value.

    The tag is checked against the Python value on construction, so a
    LiteralValue never carries a value that disagrees with its type.
    """

    type: LiteralType
    value: Any

    def __post_init__(self) -> None:
        _check_native(self.type, self.value)

    @classmethod
    def string(cls, value: str) -> LiteralValue:
        return cls(LiteralType.STRING, value)

    @classmethod
    def uint(cls, value: int) -> LiteralValue:
        return cls(LiteralType.UINT, value)

    @classmethod
    def int(cls, value: int) -> LiteralValue:
        return cls(LiteralType.INT, value)

    @classmethod
    def float(cls, value: float) -> LiteralValue:
        return cls(LiteralType.FLOAT, value)

    @classmethod
    def bool(cls, value: bool) -> LiteralValue:
        return cls(LiteralType.BOOL, value)

    @classmethod
    def from_native(cls, value: Any) -> LiteralValue:
        """Wrap a Python value, picking the tag from its type.

        bool must be checked before int since bool is an int subclass.
        Non-negative ints become INT; use LiteralValue.uint for UINT columns.
        """
        if isinstance(value, bool):
            return cls(LiteralType.BOOL, value)
        if isinstance(value, int):
            return cls(LiteralType.INT, value)
        if isinstance(value, float):
            return cls(LiteralType.FLOAT, value)
        if isinstance(value, str):
            return cls(LiteralType.STRING, value)
        raise TypeConversionError(f"No literal type for {type(value).__name__} value {value!r}")

    def to_native(self, expected: LiteralType) -> Any:
        """Return the Python value, failing if the tag is not `expected`."""
        if self.type is not expected:
            raise TypeConversionError(
                f"Expected a {expected.value} value, got {self.type.value} {self.value!r}"
            )
        return self.value

    def as_str(self) -> str:
        return self.to_native(LiteralType.STRING)

    def as_uint(self) -> int:
        return self.to_native(LiteralType.UINT)

    def as_int(self) -> int:
        return self.to_native(LiteralType.INT)

    def as_float(self) -> float:
        return self.to_native(LiteralType.FLOAT)

    def as_bool(self) -> bool:
        return self.to_native(LiteralType.BOOL)

    def __str__(self) -> str:
        if self.type is LiteralType.BOOL:
            return "true" if self.value else "false"
        return str(self.value)
