"""
Clause compiler: criteria to parameterized SQL.

Documents live in a ``value`` column as JSON text. Every field reference
compiles to a ``json_extract(value, '$.path')`` expression, so comparisons and
ordering use the JSON value's native SQL type (numbers sort numerically).

All user values are bound through ``?`` placeholders. The only exception is a
RawFragment value wrapped in ``Unescaped``, which the caller opts into.

Example:
    >>> clause = compile_criteria({"or": [{"name": {"eq": "John"}}, {"age": {"gte": 40}}]})
    >>> clause.predicate
    "(json_extract(value, '$.name') == ? OR json_extract(value, '$.age') >= ?)"
    >>> clause.params
    ('John', 40)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from docstore.criteria import (
    And,
    Condition,
    CriteriaInput,
    Match,
    Or,
    QueryOptions,
    RawFragment,
    SortSpec,
    Unescaped,
    parse_criteria,
    validate_field_name,
)
from docstore.exceptions import UnsupportedOperatorError
from docstore.serialization import json_dumps

SQL_OPERATORS = {
    "eq": "==",
    "neq": "<>",
    "lt": "<",
    "lte": "<=",
    "gt": ">",
    "gte": ">=",
}
"""Binary comparison operators. ``in`` is compiled separately."""

ALWAYS_FALSE = "FALSE"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class Clause:
    """
    A compiled predicate and its positional parameters.

    An empty predicate means "no filter"; such a clause is falsy.
    """

    predicate: str = ""
    params: tuple[Any, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.predicate)


EMPTY = Clause()


def json_path(field: str) -> str:
    """
    Build the JSON path for a dotted field name.

    Segments that are not plain identifiers are double-quoted.

    Example:
        >>> json_path("address.city")
        '$.address.city'
        >>> json_path("first name")
        '$."first name"'
    """
    validate_field_name(field)
    segments = (
        segment if _IDENTIFIER.match(segment) else f'"{segment}"' for segment in field.split(".")
    )
    return "$." + ".".join(segments)


def field_expr(field: str) -> str:
    """SQL expression extracting a field from the stored document."""
    return f"json_extract(value, '{json_path(field)}')"


def bind_value(value: Any) -> Any:
    """
    Convert a Python value into something SQLite can bind.

    - UUID, datetime, date and Decimal become strings
    - dict and list become JSON text
    - everything else passes through (bool binds as 0/1, like JSON true/false)
    """
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json_dumps(value)
    return value


def compile_condition(condition: Condition) -> Clause:
    """
    Compile a single comparison.

    Raises:
        UnsupportedOperatorError: If the operator is not one of OPERATORS
    """
    expr = field_expr(condition.field)
    operator = condition.operator

    if operator == "in":
        values = condition.value
        if not values:
            return Clause(ALWAYS_FALSE)
        placeholders = ", ".join("?" for _ in values)
        return Clause(f"{expr} IN ({placeholders})", tuple(bind_value(v) for v in values))

    if condition.value is None and operator in ("eq", "neq"):
        return Clause(f"{expr} IS NULL" if operator == "eq" else f"{expr} IS NOT NULL")

    sql_op = SQL_OPERATORS.get(operator)
    if sql_op is None:
        raise UnsupportedOperatorError(operator)
    return Clause(f"{expr} {sql_op} ?", (bind_value(condition.value),))


def _join(clauses: list[Clause], sql_op: str) -> Clause:
    params: list[Any] = []
    for clause in clauses:
        params.extend(clause.params)
    return Clause(f" {sql_op} ".join(c.predicate for c in clauses), tuple(params))


def compile_raw(fragment: RawFragment) -> Clause:
    """
    Interleave a fragment's text segments with placeholders.

    ``Unescaped`` values are spliced into the text instead of bound.
    """
    parts = [fragment.segments[0]]
    params: list[Any] = []
    for value, segment in zip(fragment.values, fragment.segments[1:], strict=True):
        if isinstance(value, Unescaped):
            parts.append(str(value.value))
        else:
            parts.append("?")
            params.append(bind_value(value))
        parts.append(segment)
    return Clause("".join(parts), tuple(params))


def _compile_operand(child: CriteriaInput) -> Clause:
    clause = compile_criteria(child)
    # Raw text may carry its own top-level OR
    if clause and isinstance(child, RawFragment):
        return Clause(f"({clause.predicate})", clause.params)
    return clause


def compile_criteria(criteria: CriteriaInput) -> Clause:
    """
    Compile criteria (typed or mapping form) into a predicate.

    Composite nodes drop children that compile to nothing, join the rest with
    AND/OR and parenthesize the result. A composite with no surviving children
    and a None input both compile to the empty clause.

    Raises:
        InvalidCriteriaError: If the criteria shape is malformed
        UnsupportedOperatorError: On an unknown comparison operator
    """
    node = parse_criteria(criteria)
    if node is None:
        return EMPTY

    if isinstance(node, (And, Or)):
        children = [c for c in (_compile_operand(child) for child in node.clauses) if c]
        if not children:
            return EMPTY
        joined = _join(children, "AND" if isinstance(node, And) else "OR")
        return Clause(f"({joined.predicate})", joined.params)

    if isinstance(node, Match):
        return _join([compile_condition(c) for c in node.conditions], "AND")

    return compile_raw(node)


def compile_filter(options: QueryOptions) -> Clause:
    """Compile the structured and raw filters of a query, conjoined."""
    clauses = [
        clause
        for clause in (
            compile_criteria(options.criteria),
            compile_raw(options.raw) if options.raw is not None else EMPTY,
        )
        if clause
    ]
    if len(clauses) == 2:
        joined = _join(clauses, "AND")
        return Clause(f"({clauses[0].predicate}) AND ({clauses[1].predicate})", joined.params)
    return clauses[0] if clauses else EMPTY


def compile_order_by(sort: SortSpec) -> str:
    """Render the ORDER BY body (without the keywords); empty when unsorted."""
    return ", ".join(f"{field_expr(field)} {direction}" for field, direction in sort)


def where_sql(clause: Clause) -> str:
    """Render ``WHERE <predicate>`` with a leading space, or nothing."""
    return f" WHERE {clause.predicate}" if clause else ""


def quote_identifier(name: str) -> str:
    """Double-quote a table name. Callers reject names containing quotes first."""
    return f'"{name}"'


__all__ = [
    "ALWAYS_FALSE",
    "EMPTY",
    "SQL_OPERATORS",
    "Clause",
    "bind_value",
    "compile_condition",
    "compile_criteria",
    "compile_filter",
    "compile_order_by",
    "compile_raw",
    "field_expr",
    "json_path",
    "quote_identifier",
    "where_sql",
]
