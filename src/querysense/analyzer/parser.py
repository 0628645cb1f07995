"""Heuristic query parser.

Clause extraction is lexical: each clause is located with a regular
expression over the normalized (lowercased, whitespace-collapsed) query
text. Constructs the expressions do not recognise are left out of the
pattern rather than reported as errors.
"""

import re
from typing import Any, List, Optional

from ..core.utils import QueryText
from .models import (
    Aggregation,
    Condition,
    Join,
    OrderBy,
    QueryPattern,
    TimeWindow,
)

_KINDS = ("select", "insert", "update", "delete", "create", "drop", "show")

_IDENT = r"[a-zA-Z_][a-zA-Z0-9_]*"

_FROM = re.compile(rf"\bfrom\s+[\"`]?({_IDENT})")
_INTO = re.compile(rf"\binto\s+[\"`]?({_IDENT})")
_UPDATE = re.compile(rf"^update\s+[\"`]?({_IDENT})")
_DDL = re.compile(
    rf"^(?:create|drop)\s+(?:table|measurement)\s+(?:if\s+(?:not\s+)?exists\s+)?[\"`]?({_IDENT})"
)
_COLUMNS = re.compile(r"^select\s+(.*?)\s+from\s", re.S)
_ALIAS = re.compile(r"\s+as\s+\w+$")

_WHERE = re.compile(r"\bwhere\s+(.*?)(?:\s+group\s+by|\s+order\s+by|\s+limit|\s+offset|$)")
_HAVING = re.compile(r"\bhaving\s+(.*?)(?:\s+order\s+by|\s+limit|\s+offset|$)")
_BETWEEN = re.compile(rf"({_IDENT}(?:\.{_IDENT})?)\s+between\s+(\S+)\s+and\s+(\S+)")
_CONNECTIVE = re.compile(r"\s+(?:and|or)\s+")
_COMPARISON = re.compile(
    rf"^\(?\s*({_IDENT}(?:\.{_IDENT})?)\s*(>=|<=|!=|<>|=~|!~|=|>|<|\bnot\s+like\b|\blike\b|\bnot\s+in\b|\bin\b|\bis\s+not\b|\bis\b)\s*(.+)$"
)

_JOIN = re.compile(rf"\b(?:(inner|left|right|full|cross)\s+)?(?:outer\s+)?join\s+[\"`]?({_IDENT})")
_JOIN_END = re.compile(
    r"\s+(?:(?:inner|left|right|full|cross)\s+)?(?:outer\s+)?join\s|\s+where\s|\s+group\s+by|\s+order\s+by|\s+limit\s"
)
_ON = re.compile(r"\bon\s+(.*)$")

_AGGREGATION = re.compile(
    r"\b(count|sum|avg|min|max|first|last|mean|median|mode|stddev)\s*\(([^)]*)\)(?:\s+as\s+(\w+))?"
)
_ORDER_BY = re.compile(r"\border\s+by\s+(.*?)(?:\s+limit|\s+offset|$)")
_ORDER_ITEM = re.compile(r"^(.+?)\s+(asc|desc)$")
_GROUP_BY = re.compile(
    r"\bgroup\s+by\s+(.*?)(?:\s+having|\s+order\s+by|\s+limit|\s+offset|\s+fill\s*\(|$)"
)
_LIMIT = re.compile(r"\blimit\s+(\d+)")
_OFFSET = re.compile(r"\boffset\s+(\d+)")
_TIME_BOUNDS = re.compile(r"time\s*>=?\s*'([^']+)'.*?time\s*<=?\s*'([^']+)'")
_TIME_RELATIVE = re.compile(r"time\s*>=?\s*now\(\)\s*-\s*(\d+\s*[a-z]+)")
_TIME_BUCKET = re.compile(r"group\s+by\s+.*?time\s*\(\s*(\d+[a-z]+)")


def _unique(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))


def _balance(operand: str) -> str:
    """Drop closing parentheses left over from a grouped predicate."""
    while operand.endswith(")") and operand.count(")") > operand.count("("):
        operand = operand[:-1].rstrip()
    return operand


def _literal(raw: str) -> Any:
    """Convert a condition operand into a Python value where obvious."""
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1]
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


class QueryParser:
    """Extracts a ``QueryPattern`` from raw query text."""

    def parse(self, query: str) -> QueryPattern:
        text = QueryText.normalize(query)
        tables = self.extract_tables(text)
        return QueryPattern(
            type=self.identify_kind(text),
            tables=tables,
            columns=self.extract_columns(text),
            conditions=self.extract_conditions(text),
            joins=self.extract_joins(text, tables[0] if tables else ""),
            aggregations=self.extract_aggregations(text),
            order_by=self.extract_order_by(text),
            group_by=self.extract_group_by(text),
            limit=self._extract_int(_LIMIT, text),
            offset=self._extract_int(_OFFSET, text),
            time_range=self.extract_time_range(text),
        )

    @staticmethod
    def identify_kind(text: str) -> str:
        for kind in _KINDS:
            if text.startswith(kind):
                return kind.upper()
        return "SELECT"

    @staticmethod
    def extract_tables(text: str) -> List[str]:
        tables: List[str] = []
        for pattern in (_UPDATE, _DDL):
            match = pattern.search(text)
            if match:
                tables.append(match.group(1))
        tables.extend(_INTO.findall(text))
        tables.extend(_FROM.findall(text))
        tables.extend(table for _, table in _JOIN.findall(text))
        return _unique(tables)

    @staticmethod
    def extract_columns(text: str) -> List[str]:
        match = _COLUMNS.search(text)
        if not match:
            return []
        selection = match.group(1).strip()
        if selection == "*":
            return ["*"]
        columns = []
        depth = 0
        current = []
        # Split on top-level commas only, so count(a, b) stays one column
        for char in selection:
            if char == "(":
                depth += 1
            elif char == ")":
                depth = max(depth - 1, 0)
            if char == "," and depth == 0:
                columns.append("".join(current))
                current = []
            else:
                current.append(char)
        columns.append("".join(current))
        return [_ALIAS.sub("", column.strip()) for column in columns if column.strip()]

    def extract_conditions(self, text: str) -> List[Condition]:
        conditions: List[Condition] = []
        for clause_type, pattern in (("WHERE", _WHERE), ("HAVING", _HAVING)):
            match = pattern.search(text)
            if match:
                conditions.extend(self._parse_predicates(match.group(1), clause_type))
        return conditions

    @staticmethod
    def _parse_predicates(clause: str, clause_type: str) -> List[Condition]:
        conditions: List[Condition] = []

        def take_between(match: "re.Match[str]") -> str:
            conditions.append(Condition(
                column=match.group(1),
                operator="between",
                value=[_literal(match.group(2)), _literal(match.group(3))],
                type=clause_type,
            ))
            return " "

        remainder = _BETWEEN.sub(take_between, clause)
        for predicate in _CONNECTIVE.split(remainder):
            predicate = predicate.strip()
            if not predicate:
                continue
            match = _COMPARISON.match(predicate)
            if match:
                conditions.append(Condition(
                    column=match.group(1),
                    operator=re.sub(r"\s+", " ", match.group(2)),
                    value=_literal(_balance(match.group(3))),
                    type=clause_type,
                ))
            else:
                conditions.append(Condition(
                    column=predicate,
                    operator="expr",
                    value=None,
                    type=clause_type,
                ))
        return conditions

    @staticmethod
    def extract_joins(text: str, base_table: str) -> List[Join]:
        joins: List[Join] = []
        for match in _JOIN.finditer(text):
            tail = text[match.end():]
            end = _JOIN_END.search(tail)
            segment = tail[:end.start()] if end else tail
            on_match = _ON.search(segment)
            joins.append(Join(
                type=(match.group(1) or "inner").upper(),
                left_table=base_table,
                right_table=match.group(2),
                condition=on_match.group(1).strip() if on_match else "",
            ))
        return joins

    @staticmethod
    def extract_aggregations(text: str) -> List[Aggregation]:
        return [
            Aggregation(function=function.upper(), column=column.strip(), alias=alias or None)
            for function, column, alias in _AGGREGATION.findall(text)
        ]

    @staticmethod
    def extract_order_by(text: str) -> List[OrderBy]:
        match = _ORDER_BY.search(text)
        if not match:
            return []
        items = []
        for item in match.group(1).split(","):
            item = item.strip()
            if not item:
                continue
            direction = _ORDER_ITEM.match(item)
            if direction:
                items.append(OrderBy(column=direction.group(1), direction=direction.group(2).upper()))
            else:
                items.append(OrderBy(column=item))
        return items

    @staticmethod
    def extract_group_by(text: str) -> List[str]:
        match = _GROUP_BY.search(text)
        if not match:
            return []
        return [item.strip() for item in match.group(1).split(",") if item.strip()]

    @staticmethod
    def extract_time_range(text: str) -> Optional[TimeWindow]:
        bucket = _TIME_BUCKET.search(text)
        window = bucket.group(1) if bucket else None

        bounds = _TIME_BOUNDS.search(text)
        if bounds:
            return TimeWindow(start=bounds.group(1), end=bounds.group(2), window=window)

        relative = _TIME_RELATIVE.search(text)
        if relative:
            return TimeWindow(start=f"now() - {relative.group(1)}", end="now()", window=window)
        return None

    @staticmethod
    def _extract_int(pattern: "re.Pattern[str]", text: str) -> Optional[int]:
        match = pattern.search(text)
        return int(match.group(1)) if match else None
