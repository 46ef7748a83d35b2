"""Parser for the table query language.

A query is a pipeline of stages applied left to right to a snapshot:

    filter cpu > 50 and name != "idle"
    sort cpu desc, name
    limit 10

An empty query leaves the snapshot unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import ply.yacc as yacc

from monitor_table.parsing.query_lexer import QueryLexer

AGGREGATE_FUNCTIONS = frozenset({"count", "sum", "mean", "min", "max"})

# Row counts are handed to polars as signed 64-bit integers
MAX_ROW_COUNT = (1 << 63) - 1



def _check_count(stage: str, count: int) -> None:
    if count < 0:
        raise ValueError(f"{stage} must not be negative, got {count}")
    if count > MAX_ROW_COUNT:
        raise ValueError(f"{stage} must be at most {MAX_ROW_COUNT}, got {count}")

@dataclass
class Condition:
    """A comparison between a column and a literal."""

    field: str
    operator: str  # eq, neq, lt, lte, gt, gte
    value: Any  # None is the null literal
    negate: bool = False


@dataclass
class CompoundCondition:
    """A compound condition (AND/OR)."""

    left: Condition | CompoundCondition
    operator: str  # and, or
    right: Condition | CompoundCondition
    negate: bool = False


@dataclass
class SelectStage:
    """Keep only the named columns, in the given order."""

    columns: list[str]


@dataclass
class DropStage:
    columns: list[str]


@dataclass
class RenameStage:
    mapping: dict[str, str]


@dataclass
class FilterStage:
    condition: Condition | CompoundCondition


@dataclass
class SortKey:
    column: str
    descending: bool = False


@dataclass
class SortStage:
    keys: list[SortKey]


@dataclass
class ReverseStage:
    pass


@dataclass
class LimitStage:
    count: int


@dataclass
class OffsetStage:
    count: int


@dataclass
class Aggregate:
    """An aggregate in a group stage: count, or fn(column)."""

    function: str
    column: str | None = None

    @property
    def output_name(self) -> str:
        if self.column is None:
            return self.function
        return f"{self.function}_{self.column}"


@dataclass
class GroupStage:
    """Group by key columns; with no aggregates this yields distinct keys."""

    keys: list[str]
    aggregates: list[Aggregate] = field(default_factory=list)


Stage = SelectStage | DropStage | RenameStage | FilterStage | SortStage | ReverseStage | LimitStage | OffsetStage | GroupStage


@dataclass
class Pipeline:
    """A parsed query."""

    stages: list[Stage] = field(default_factory=list)


class QueryParser:
    """Parser for table queries."""

    tokens = QueryLexer.tokens

    # Operator precedence
    precedence = (
        ("left", "OR"),
        ("left", "AND"),
        ("right", "NOT"),
    )

    def __init__(self) -> None:
        self.lexer = QueryLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore

    def p_stages_empty(self, p: yacc.YaccProduction) -> None:
        """stages : """
        p[0] = []

    def p_stages_stage(self, p: yacc.YaccProduction) -> None:
        """stages : stages stage"""
        p[0] = p[1] + [p[2]]

    def p_stages_separator(self, p: yacc.YaccProduction) -> None:
        """stages : stages SEPARATOR"""
        p[0] = p[1]

    def p_stage_select(self, p: yacc.YaccProduction) -> None:
        """stage : SELECT identifier_list"""
        p[0] = SelectStage(columns=p[2])

    def p_stage_drop(self, p: yacc.YaccProduction) -> None:
        """stage : DROP identifier_list"""
        p[0] = DropStage(columns=p[2])

    def p_stage_rename(self, p: yacc.YaccProduction) -> None:
        """stage : RENAME rename_list"""
        mapping: dict[str, str] = {}
        for old, new in p[2]:
            if old in mapping:
                raise ValueError(f"Column '{old}' is renamed more than once")
            mapping[old] = new
        p[0] = RenameStage(mapping=mapping)

    def p_rename_list_single(self, p: yacc.YaccProduction) -> None:
        """rename_list : IDENTIFIER AS IDENTIFIER"""
        p[0] = [(p[1], p[3])]

    def p_rename_list_multiple(self, p: yacc.YaccProduction) -> None:
        """rename_list : rename_list COMMA IDENTIFIER AS IDENTIFIER"""
        p[0] = p[1] + [(p[3], p[5])]

    def p_stage_filter(self, p: yacc.YaccProduction) -> None:
        """stage : FILTER condition"""
        p[0] = FilterStage(condition=p[2])

    def p_stage_sort(self, p: yacc.YaccProduction) -> None:
        """stage : SORT sort_key_list"""
        p[0] = SortStage(keys=p[2])

    def p_sort_key_list_single(self, p: yacc.YaccProduction) -> None:
        """sort_key_list : sort_key"""
        p[0] = [p[1]]

    def p_sort_key_list_multiple(self, p: yacc.YaccProduction) -> None:
        """sort_key_list : sort_key_list COMMA sort_key"""
        p[0] = p[1] + [p[3]]

    def p_sort_key(self, p: yacc.YaccProduction) -> None:
        """sort_key : IDENTIFIER
                    | IDENTIFIER ASC
                    | IDENTIFIER DESC"""
        descending = len(p) == 3 and p[2].lower() == "desc"
        p[0] = SortKey(column=p[1], descending=descending)

    def p_stage_reverse(self, p: yacc.YaccProduction) -> None:
        """stage : REVERSE"""
        p[0] = ReverseStage()

    def p_stage_limit(self, p: yacc.YaccProduction) -> None:
        """stage : LIMIT INTEGER"""
        _check_count("limit", p[2])
        p[0] = LimitStage(count=p[2])

    def p_stage_offset(self, p: yacc.YaccProduction) -> None:
        """stage : OFFSET INTEGER"""
        _check_count("offset", p[2])
        p[0] = OffsetStage(count=p[2])

    def p_stage_group(self, p: yacc.YaccProduction) -> None:
        """stage : GROUP identifier_list
                 | GROUP identifier_list AGG aggregate_list"""
        aggregates = p[4] if len(p) == 5 else []
        p[0] = GroupStage(keys=p[2], aggregates=aggregates)

    def p_aggregate_list_single(self, p: yacc.YaccProduction) -> None:
        """aggregate_list : aggregate"""
        p[0] = [p[1]]

    def p_aggregate_list_multiple(self, p: yacc.YaccProduction) -> None:
        """aggregate_list : aggregate_list COMMA aggregate"""
        p[0] = p[1] + [p[3]]

    def p_aggregate_count(self, p: yacc.YaccProduction) -> None:
        """aggregate : IDENTIFIER"""
        if p[1].lower() != "count":
            raise ValueError(f"Aggregate '{p[1]}' needs a column, e.g. {p[1]}(x)")
        p[0] = Aggregate(function="count")

    def p_aggregate_column(self, p: yacc.YaccProduction) -> None:
        """aggregate : IDENTIFIER LPAREN IDENTIFIER RPAREN"""
        function = p[1].lower()
        if function not in AGGREGATE_FUNCTIONS:
            raise ValueError(f"Unknown aggregate: {p[1]}()")
        p[0] = Aggregate(function=function, column=p[3])

    def p_identifier_list_single(self, p: yacc.YaccProduction) -> None:
        """identifier_list : IDENTIFIER"""
        p[0] = [p[1]]

    def p_identifier_list_multiple(self, p: yacc.YaccProduction) -> None:
        """identifier_list : identifier_list COMMA IDENTIFIER"""
        p[0] = p[1] + [p[3]]

    def p_condition_comparison(self, p: yacc.YaccProduction) -> None:
        """condition : IDENTIFIER EQ value
                     | IDENTIFIER NEQ value
                     | IDENTIFIER LT value
                     | IDENTIFIER LTE value
                     | IDENTIFIER GT value
                     | IDENTIFIER GTE value"""
        op_map = {"=": "eq", "!=": "neq", "<": "lt", "<=": "lte", ">": "gt", ">=": "gte"}
        operator = op_map[p[2]]
        if p[3] is None and operator not in ("eq", "neq"):
            raise ValueError(f"null can only be compared with = or !=, got '{p[2]}'")
        p[0] = Condition(field=p[1], operator=operator, value=p[3])

    def p_condition_not(self, p: yacc.YaccProduction) -> None:
        """condition : NOT condition"""
        cond = p[2]
        cond.negate = not cond.negate
        p[0] = cond

    def p_condition_and(self, p: yacc.YaccProduction) -> None:
        """condition : condition AND condition"""
        p[0] = CompoundCondition(left=p[1], operator="and", right=p[3])

    def p_condition_or(self, p: yacc.YaccProduction) -> None:
        """condition : condition OR condition"""
        p[0] = CompoundCondition(left=p[1], operator="or", right=p[3])

    def p_condition_paren(self, p: yacc.YaccProduction) -> None:
        """condition : LPAREN condition RPAREN"""
        p[0] = p[2]

    def p_value_literal(self, p: yacc.YaccProduction) -> None:
        """value : INTEGER
                 | FLOAT
                 | STRING"""
        p[0] = p[1]

    def p_value_bool(self, p: yacc.YaccProduction) -> None:
        """value : TRUE
                 | FALSE"""
        p[0] = p[1].lower() == "true"

    def p_value_null(self, p: yacc.YaccProduction) -> None:
        """value : NULL"""
        p[0] = None

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise SyntaxError(f"Syntax error at '{p.value}' (position {p.lexpos})")
        else:
            raise SyntaxError("Syntax error at end of input")

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, start="stages", **kwargs)

    def parse(self, data: str) -> Pipeline:
        """Parse a query string.

        Raises:
            SyntaxError: If the query is not valid.
        """
        if self.parser is None:
            self.build(debug=False, write_tables=False)

        # Rule actions raise ValueError: ply swallows a SyntaxError raised
        # inside an action and enters error recovery instead.
        try:
            stages = self.parser.parse(data, lexer=self.lexer.lexer)
        except ValueError as e:
            raise SyntaxError(str(e)) from e
        return Pipeline(stages=stages or [])
