"""Parsing module for the table query language."""

from monitor_table.parsing.query_lexer import QueryLexer
from monitor_table.parsing.query_parser import (
    Aggregate,
    CompoundCondition,
    Condition,
    Pipeline,
    QueryParser,
    SortKey,
)

__all__ = [
    "Aggregate",
    "CompoundCondition",
    "Condition",
    "Pipeline",
    "QueryLexer",
    "QueryParser",
    "SortKey",
]
