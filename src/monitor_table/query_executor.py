"""Query engines that transform a column snapshot."""

from __future__ import annotations

import logging
import threading
from typing import Any, Protocol

import polars as pl

from monitor_table.errors import QueryExecutionError, QueryParseError
from monitor_table.parsing.query_parser import (
    Aggregate,
    CompoundCondition,
    Condition,
    DropStage,
    FilterStage,
    GroupStage,
    LimitStage,
    OffsetStage,
    Pipeline,
    QueryParser,
    RenameStage,
    ReverseStage,
    SelectStage,
    SortStage,
    Stage,
)

logger = logging.getLogger(__name__)


def _condition_columns(condition: Condition | CompoundCondition) -> list[str]:
    if isinstance(condition, CompoundCondition):
        return _condition_columns(condition.left) + _condition_columns(condition.right)
    return [condition.field]


def _referenced_columns(stage: Stage) -> list[str]:
    """Return the input columns a stage reads."""
    if isinstance(stage, (SelectStage, DropStage)):
        return list(stage.columns)
    if isinstance(stage, RenameStage):
        return list(stage.mapping)
    if isinstance(stage, FilterStage):
        return _condition_columns(stage.condition)
    if isinstance(stage, SortStage):
        return [k.column for k in stage.keys]
    if isinstance(stage, GroupStage):
        return stage.keys + [a.column for a in stage.aggregates if a.column is not None]
    return []


class QueryEngine(Protocol):
    """What a Table needs from a query engine.

    parse() is called before the table is locked, execute() after the
    snapshot is taken and the lock released. Implementations raise
    QueryParseError / QueryExecutionError for bad queries.
    """

    def parse(self, query: str) -> Any: ...

    def execute(self, frame: pl.DataFrame, parsed: Any) -> pl.DataFrame: ...


class PolarsQueryEngine:
    """Runs pipeline queries with polars' lazy API."""

    def __init__(self) -> None:
        # ply parsers keep per-parse state on the instance
        self._local = threading.local()

    def _parser(self) -> QueryParser:
        parser = getattr(self._local, "parser", None)
        if parser is None:
            parser = QueryParser()
            self._local.parser = parser
        return parser

    def parse(self, query: str) -> Pipeline:
        try:
            return self._parser().parse(query)
        except SyntaxError as e:
            raise QueryParseError(str(e)) from e

    def execute(self, frame: pl.DataFrame, parsed: Pipeline) -> pl.DataFrame:
        logger.debug("Executing %d stage(s) over %d row(s)", len(parsed.stages), frame.height)
        try:
            lf = frame.lazy()
            for stage in parsed.stages:
                lf = self._apply_stage(lf, stage)
            return lf.collect()
        except pl.exceptions.PolarsError as e:
            raise QueryExecutionError(str(e)) from e

    def _apply_stage(self, lf: pl.LazyFrame, stage: Stage) -> pl.LazyFrame:
        # pl.col reads "*" and "^...$" names as patterns, so names must match exactly
        names = set(lf.collect_schema().names())
        for column in _referenced_columns(stage):
            if column not in names:
                raise QueryExecutionError(f"Unknown column: {column!r}")

        if isinstance(stage, SelectStage):
            return lf.select([pl.col(c) for c in stage.columns])
        elif isinstance(stage, DropStage):
            return lf.drop(stage.columns)
        elif isinstance(stage, RenameStage):
            return lf.rename(stage.mapping)
        elif isinstance(stage, FilterStage):
            return lf.filter(self._condition_expr(stage.condition))
        elif isinstance(stage, SortStage):
            return lf.sort(
                [k.column for k in stage.keys],
                descending=[k.descending for k in stage.keys],
                nulls_last=True,
                maintain_order=True,
            )
        elif isinstance(stage, ReverseStage):
            return lf.reverse()
        elif isinstance(stage, LimitStage):
            return lf.head(stage.count)
        elif isinstance(stage, OffsetStage):
            return lf.slice(stage.count)
        elif isinstance(stage, GroupStage):
            return self._group(lf, stage)
        else:
            raise QueryExecutionError(f"Unknown stage: {type(stage).__name__}")

    def _group(self, lf: pl.LazyFrame, stage: GroupStage) -> pl.LazyFrame:
        if not stage.aggregates:
            return lf.select([pl.col(k) for k in stage.keys]).unique(maintain_order=True)
        exprs = [self._aggregate_expr(a) for a in stage.aggregates]
        return lf.group_by(stage.keys, maintain_order=True).agg(exprs)

    def _aggregate_expr(self, aggregate: Aggregate) -> pl.Expr:
        if aggregate.column is None:
            return pl.len().alias(aggregate.output_name)
        col = pl.col(aggregate.column)
        exprs = {
            "count": col.count,
            "sum": col.sum,
            "mean": col.mean,
            "min": col.min,
            "max": col.max,
        }
        return exprs[aggregate.function]().alias(aggregate.output_name)

    def _condition_expr(self, condition: Condition | CompoundCondition) -> pl.Expr:
        if isinstance(condition, CompoundCondition):
            left = self._condition_expr(condition.left)
            right = self._condition_expr(condition.right)
            expr = left & right if condition.operator == "and" else left | right
        else:
            expr = self._comparison_expr(condition)
        return ~expr if condition.negate else expr

    def _comparison_expr(self, condition: Condition) -> pl.Expr:
        col = pl.col(condition.field)
        if condition.value is None:
            return col.is_null() if condition.operator == "eq" else col.is_not_null()

        value = pl.lit(condition.value)
        op = condition.operator
        if op == "eq":
            return col == value
        elif op == "neq":
            return col != value
        elif op == "lt":
            return col < value
        elif op == "lte":
            return col <= value
        elif op == "gt":
            return col > value
        else:
            return col >= value
