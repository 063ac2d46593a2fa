"""
Criteria model for document queries.

Filters are expressed as a small closed algebra:

- ``Condition``: one comparison of a document field against a value
- ``Match``: a field-condition node; all of its conditions must hold
- ``And`` / ``Or``: boolean composition of other nodes
- ``RawFragment``: caller-written SQL text interleaved with bound values

The operator-keyed mapping form (``{"age": {"gte": 40}}``,
``{"or": [...]}``) is accepted everywhere criteria are and is converted to
the typed form by ``parse_criteria``. Nothing here touches storage; the
clause compiler turns these values into SQL.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any, Literal, TypeAlias

from docstore.exceptions import InvalidCriteriaError

OPERATORS = ("eq", "neq", "lt", "lte", "gt", "gte", "in")
"""Comparison operators understood by the clause compiler."""

_COMPOSITE_KEYS = {"and": "and", "$and": "and", "or": "or", "$or": "or"}
_QUOTES = ("'", '"')

Direction = Literal["ASC", "DESC"]
SortSpec: TypeAlias = tuple[tuple[str, Direction], ...]


def validate_field_name(field: str) -> str:
    """
    Check that a (possibly dotted) field name is safe to embed in a JSON path.

    Raises:
        InvalidCriteriaError: If the name is empty, has an empty path segment
            or contains quote characters
    """
    if not isinstance(field, str) or not field:
        raise InvalidCriteriaError("Field names must be non-empty strings")
    if any(quote in field for quote in _QUOTES):
        raise InvalidCriteriaError(f"Field name {field!r} must not contain quote characters")
    if any(not segment for segment in field.split(".")):
        raise InvalidCriteriaError(f"Field name {field!r} has an empty path segment")
    return field


@dataclass(frozen=True)
class Condition:
    """
    A single comparison of a document field against a value.

    Operators may be written with or without a leading ``$``. Unknown
    operators are accepted here and rejected by the compiler with
    ``UnsupportedOperatorError``.

    Attributes:
        field: Field name; dots address nested fields (``address.city``)
        operator: One of eq, neq, lt, lte, gt, gte, in
        value: Value to compare against (a list or tuple for ``in``)

    Example:
        >>> Condition.gte("age", 40)
        Condition(field='age', operator='gte', value=40)
        >>> Condition.in_("status", ["active", "trial"])
        Condition(field='status', operator='in', value=('active', 'trial'))
    """

    field: str
    operator: str
    value: Any

    def __post_init__(self) -> None:
        validate_field_name(self.field)
        if not isinstance(self.operator, str):
            raise InvalidCriteriaError(f"Operator for {self.field!r} must be a string")
        object.__setattr__(self, "operator", self.operator.removeprefix("$"))
        if self.operator == "in":
            if not isinstance(self.value, (list, tuple)):
                raise InvalidCriteriaError(
                    f"'in' on {self.field!r} requires a list of values, "
                    f"got {type(self.value).__name__}"
                )
            object.__setattr__(self, "value", tuple(self.value))

    @classmethod
    def eq(cls, field: str, value: Any) -> Condition:
        """Field equals value."""
        return cls(field, "eq", value)

    @classmethod
    def neq(cls, field: str, value: Any) -> Condition:
        """Field does not equal value."""
        return cls(field, "neq", value)

    @classmethod
    def lt(cls, field: str, value: Any) -> Condition:
        """Field is less than value."""
        return cls(field, "lt", value)

    @classmethod
    def lte(cls, field: str, value: Any) -> Condition:
        """Field is less than or equal to value."""
        return cls(field, "lte", value)

    @classmethod
    def gt(cls, field: str, value: Any) -> Condition:
        """Field is greater than value."""
        return cls(field, "gt", value)

    @classmethod
    def gte(cls, field: str, value: Any) -> Condition:
        """Field is greater than or equal to value."""
        return cls(field, "gte", value)

    @classmethod
    def in_(cls, field: str, values: Sequence[Any]) -> Condition:
        """Field equals one of values. An empty list never matches."""
        return cls(field, "in", list(values))

    def __str__(self) -> str:
        return f"{self.field} {self.operator} {self.value!r}"


@dataclass(frozen=True)
class Match:
    """
    A field-condition node: every condition must hold.

    Several conditions may target the same field (``18 <= age < 65``).
    An empty Match places no constraint.
    """

    conditions: tuple[Condition, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "conditions", tuple(self.conditions))


@dataclass(frozen=True)
class And:
    """All clauses must hold. Clauses that compile to nothing are skipped."""

    clauses: tuple[CriteriaNode, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "clauses", tuple(self.clauses))


@dataclass(frozen=True)
class Or:
    """At least one clause must hold. Clauses that compile to nothing are skipped."""

    clauses: tuple[CriteriaNode, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "clauses", tuple(self.clauses))


@dataclass(frozen=True)
class Unescaped:
    """
    Marks a RawFragment value for literal interpolation instead of binding.

    The value's ``str()`` is spliced into the SQL text as-is. Never wrap
    untrusted input.
    """

    value: Any

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class RawFragment:
    """
    Caller-written SQL text interleaved with values.

    ``segments`` always has exactly one more element than ``values``; the
    compiled text is ``segments[0] ? segments[1] ? ... segments[-1]`` with one
    placeholder per value, except values wrapped in ``Unescaped``, which are
    spliced in literally.

    Example:
        >>> frag = RawFragment.from_template(
        ...     "json_extract(value, '$.age') BETWEEN {} AND {}", 18, 65
        ... )
        >>> frag.segments
        ("json_extract(value, '$.age') BETWEEN ", ' AND ', '')
    """

    segments: tuple[str, ...]
    values: tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "segments", tuple(self.segments))
        object.__setattr__(self, "values", tuple(self.values))
        if len(self.segments) != len(self.values) + 1:
            raise InvalidCriteriaError(
                f"Raw fragment needs {len(self.values) + 1} text segments "
                f"for {len(self.values)} values, got {len(self.segments)}"
            )

    @classmethod
    def from_template(cls, template: str, *values: Any) -> RawFragment:
        """
        Build a fragment from text where each ``{}`` marks one value.

        Raises:
            InvalidCriteriaError: If the number of ``{}`` markers differs from
                the number of values
        """
        return cls(tuple(template.split("{}")), values)


def raw(template: str, *values: Any) -> RawFragment:
    """Shorthand for ``RawFragment.from_template``."""
    return RawFragment.from_template(template, *values)


CriteriaNode: TypeAlias = Match | And | Or | RawFragment
CriteriaInput: TypeAlias = CriteriaNode | Condition | Mapping[str, Any] | None


def composite_key(criteria: Mapping[str, Any]) -> tuple[str, str] | None:
    """
    Find the boolean operator of a composite mapping.

    Returns:
        ``(canonical_op, key)`` such as ``("or", "$or")``, or None when the
        mapping is a plain field mapping

    Raises:
        InvalidCriteriaError: If and/or is combined with any other key
    """
    keys = [key for key in criteria if key in _COMPOSITE_KEYS]
    if not keys:
        return None
    if len(criteria) > 1:
        raise InvalidCriteriaError("and / or can not be combined with other operators")
    key = keys[0]
    return _COMPOSITE_KEYS[key], key


def _operands(criteria: Mapping[str, Any], key: str) -> Iterable[Any]:
    operands = criteria[key]
    if not isinstance(operands, (list, tuple)):
        raise InvalidCriteriaError(f"{key} requires a list of criteria")
    return operands


def parse_criteria(criteria: CriteriaInput) -> CriteriaNode | None:
    """
    Convert the operator-keyed mapping form into the typed algebra.

    Typed nodes pass through unchanged and a bare Condition is wrapped in a
    Match. None means "match everything".

    Example:
        >>> parse_criteria({"or": [{"name": {"eq": "John"}}, {"age": {"gte": 40}}]})
        Or(clauses=(Match(...), Match(...)))

    Raises:
        InvalidCriteriaError: If the shape is malformed
    """
    if criteria is None:
        return None
    if isinstance(criteria, (Match, And, Or, RawFragment)):
        return criteria
    if isinstance(criteria, Condition):
        return Match((criteria,))
    if not isinstance(criteria, Mapping):
        raise InvalidCriteriaError(
            f"Criteria must be a mapping or criteria node, got {type(criteria).__name__}"
        )

    composite = composite_key(criteria)
    if composite is not None:
        op, key = composite
        children = tuple(
            child for child in (parse_criteria(c) for c in _operands(criteria, key)) if child
        )
        return And(children) if op == "and" else Or(children)

    conditions: list[Condition] = []
    for field, operators in criteria.items():
        if operators is None:
            continue
        if not isinstance(operators, Mapping):
            raise InvalidCriteriaError(
                f"Conditions for {field!r} must map operators to values; "
                f"use where_eq() for equality shorthand"
            )
        for operator, value in operators.items():
            conditions.append(Condition(field, operator, value))
    return Match(tuple(conditions))


def expand_eq(shorthand: Mapping[str, Any] | None) -> CriteriaNode | None:
    """
    Expand equality shorthand into field conditions.

    Every leaf value becomes an ``eq`` condition; nested and/or recurse.

    Example:
        >>> expand_eq({"name": "John", "age": 10})
        Match(conditions=(Condition(field='name', operator='eq', value='John'),
                          Condition(field='age', operator='eq', value=10)))
    """
    if shorthand is None:
        return None
    if not isinstance(shorthand, Mapping):
        raise InvalidCriteriaError(
            f"Equality criteria must be a mapping, got {type(shorthand).__name__}"
        )

    composite = composite_key(shorthand)
    if composite is not None:
        op, key = composite
        children = tuple(
            child for child in (expand_eq(c) for c in _operands(shorthand, key)) if child
        )
        return And(children) if op == "and" else Or(children)

    return Match(tuple(Condition(field, "eq", value) for field, value in shorthand.items()))


def normalize_sort(spec: Mapping[str, str] | Iterable[tuple[str, str]]) -> SortSpec:
    """
    Normalise a sort specification, keeping declared field order.

    Args:
        spec: Mapping or pairs of field -> direction ('asc'/'desc', any case)

    Returns:
        Tuple of (field, 'ASC' | 'DESC') pairs

    Raises:
        InvalidCriteriaError: On an unknown direction or unsafe field name
    """
    pairs = spec.items() if isinstance(spec, Mapping) else spec
    normalized: list[tuple[str, Direction]] = []
    for field, direction in pairs:
        validate_field_name(field)
        upper = str(direction).upper()
        if upper == "ASC":
            normalized.append((field, "ASC"))
        elif upper == "DESC":
            normalized.append((field, "DESC"))
        else:
            raise InvalidCriteriaError(f"Sort direction for {field!r} must be ASC or DESC")
    return tuple(normalized)


def _check_count(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
    return value


@dataclass(frozen=True)
class QueryOptions:
    """
    Immutable bundle of everything a query carries.

    Attributes:
        criteria: Structured filter (None matches everything)
        raw: Raw filter fragment, conjoined with ``criteria`` when both are set
        sort: Sort keys in declared order; the first is the primary key
        skip: Number of leading matches to drop
        limit: Maximum number of matches to return

    Example:
        >>> base = QueryOptions(criteria=parse_criteria({"age": {"gte": 50}}))
        >>> page = base.with_sort({"age": "asc"}).with_limit(10).with_skip(10)
        >>> base.limit is None
        True
    """

    criteria: CriteriaNode | None = None
    raw: RawFragment | None = None
    sort: SortSpec = ()
    skip: int | None = None
    limit: int | None = None

    def with_sort(self, spec: Mapping[str, str] | Iterable[tuple[str, str]]) -> QueryOptions:
        """Return a copy with the sort specification replaced."""
        return replace(self, sort=normalize_sort(spec))

    def with_skip(self, skip: int) -> QueryOptions:
        """Return a copy with ``skip`` set."""
        return replace(self, skip=_check_count("skip", skip))

    def with_limit(self, limit: int) -> QueryOptions:
        """Return a copy with ``limit`` set."""
        return replace(self, limit=_check_count("limit", limit))


__all__ = [
    "OPERATORS",
    "Direction",
    "SortSpec",
    "Condition",
    "Match",
    "And",
    "Or",
    "Unescaped",
    "RawFragment",
    "raw",
    "CriteriaNode",
    "CriteriaInput",
    "validate_field_name",
    "composite_key",
    "parse_criteria",
    "expand_eq",
    "normalize_sort",
    "QueryOptions",
]
