"""
Condition-map compiler.

Turns the condition maps used throughout ClearMarkup into SQLAlchemy Core
clauses. A map pairs a column predicate with a value::

    {
        "status": "active",            # status = 'active'
        "id": [5, 9],                  # id IN (5, 9)
        "deleted_at": None,            # deleted_at IS NULL
        "created_at[>]": 1700000000,   # created_at > 1700000000
        "name[~]": "ann",              # name LIKE '%ann%'
        "OR": {"role": "admin", "owner_id": 3},
        "ORDER": {"created_at": "DESC"},
        "LIMIT": [20, 10],             # OFFSET 20 LIMIT 10
    }

``AND``/``OR`` keys may carry a ``#comment`` suffix (``"OR #roles"``) so that
several groups can live in the same map.
"""

from __future__ import annotations

import re
from typing import Any, List, Mapping, NamedTuple, Optional, Sequence, Tuple

import sqlalchemy as sa
from sqlalchemy.sql.elements import ColumnElement

from clearmarkup.utils.exceptions import QueryError

ORDER_KEY = "ORDER"
LIMIT_KEY = "LIMIT"
RESERVED_KEYS = (ORDER_KEY, LIMIT_KEY)

_PREDICATE_PATTERN = re.compile(r"^(?P<column>[\w.]+)(?:\[(?P<operator>[^\]]+)\])?$")
_GROUP_PATTERN = re.compile(r"^(?P<group>AND|OR)(?:\s*#.*)?$")

ClauseList = List[ColumnElement]


class CompiledConditions(NamedTuple):
    """The parts of a condition map, ready to attach to a statement."""

    where: Optional[ColumnElement]
    order_by: List[ColumnElement]
    limit: Optional[int]
    offset: Optional[int]


def resolve_column(table: sa.Table, name: str) -> sa.Column:
    """Look up a column on a table, accepting ``table.column`` notation.

    Raises:
        QueryError: If the column does not exist
    """
    column_name = name
    if "." in name:
        table_name, _, column_name = name.rpartition(".")
        if table_name != table.name:
            raise QueryError(
                f"Column '{name}' does not belong to table '{table.name}'",
                table=table.name
            )
    try:
        return table.c[column_name]
    except KeyError:
        raise QueryError(
            f"Unknown column '{column_name}' on table '{table.name}'",
            table=table.name
        ) from None


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def _like_pattern(value: Any) -> str:
    text = str(value)
    if "%" in text or "_" in text:
        return text
    return f"%{text}%"


def _between_bounds(column_name: str, value: Any) -> Tuple[Any, Any]:
    if not _is_sequence(value) or len(value) != 2:
        raise QueryError(f"Range condition on '{column_name}' needs exactly two values")
    low, high = list(value)
    return low, high


def _predicate(column: sa.Column, operator: Optional[str], value: Any) -> ColumnElement:
    """Build a single predicate for a column, operator and value."""
    if operator is None:
        if value is None:
            return column.is_(None)
        if _is_sequence(value):
            return column.in_(list(value))
        return column == value

    if operator == "!":
        if value is None:
            return column.is_not(None)
        if _is_sequence(value):
            return column.not_in(list(value))
        return column != value

    if operator == ">":
        return column > value
    if operator == ">=":
        return column >= value
    if operator == "<":
        return column < value
    if operator == "<=":
        return column <= value

    if operator == "~":
        if _is_sequence(value):
            return sa.or_(*(column.like(_like_pattern(item)) for item in value))
        return column.like(_like_pattern(value))
    if operator == "!~":
        if _is_sequence(value):
            return sa.and_(*(column.not_like(_like_pattern(item)) for item in value))
        return column.not_like(_like_pattern(value))

    if operator == "<>":
        low, high = _between_bounds(column.name, value)
        return column.between(low, high)
    if operator == "><":
        low, high = _between_bounds(column.name, value)
        return sa.not_(column.between(low, high))

    raise QueryError(f"Unsupported condition operator '[{operator}]' on '{column.name}'")


def _clauses(table: sa.Table, conditions: Mapping[str, Any]) -> ClauseList:
    clauses: ClauseList = []

    for key, value in conditions.items():
        if key in RESERVED_KEYS:
            continue

        group = _GROUP_PATTERN.match(key)
        if group:
            if not isinstance(value, Mapping):
                raise QueryError(f"Condition group '{key}' needs a mapping", table=table.name)
            members = _clauses(table, value)
            if members:
                combine = sa.and_ if group.group("group") == "AND" else sa.or_
                clauses.append(combine(*members))
            continue

        match = _PREDICATE_PATTERN.match(key)
        if not match:
            raise QueryError(f"Malformed condition key '{key}'", table=table.name)

        column = resolve_column(table, match.group("column"))
        clauses.append(_predicate(column, match.group("operator"), value))

    return clauses


def compile_order(table: sa.Table, order: Any) -> List[ColumnElement]:
    """Translate an ORDER value into ORDER BY clauses.

    Accepts a column name, a list of column names (ascending), or a mapping
    from column name to ``ASC``/``DESC``.
    """
    if order is None:
        return []
    if isinstance(order, str):
        return [resolve_column(table, order).asc()]
    if isinstance(order, Mapping):
        items: Sequence[Tuple[str, Any]] = list(order.items())
    elif _is_sequence(order):
        items = [(name, "ASC") for name in order]
    else:
        raise QueryError(f"Unsupported ORDER value: {order!r}", table=table.name)

    clauses: List[ColumnElement] = []
    for name, direction in items:
        column = resolve_column(table, name)
        direction = str(direction or "ASC").upper()
        if direction not in ("ASC", "DESC"):
            raise QueryError(f"Unsupported order direction '{direction}' for '{name}'", table=table.name)
        clauses.append(column.desc() if direction == "DESC" else column.asc())
    return clauses


def compile_limit(limit: Any) -> Tuple[Optional[int], Optional[int]]:
    """Translate a LIMIT value into ``(limit, offset)``."""
    if limit is None:
        return None, None
    if isinstance(limit, bool):
        raise QueryError(f"Unsupported LIMIT value: {limit!r}")
    if isinstance(limit, int):
        if limit < 0:
            raise QueryError(f"LIMIT must not be negative: {limit}")
        return limit, None
    if _is_sequence(limit) and len(limit) == 2:
        offset, count = (int(part) for part in limit)
        if offset < 0 or count < 0:
            raise QueryError(f"LIMIT must not be negative: {limit!r}")
        return count, offset
    raise QueryError(f"Unsupported LIMIT value: {limit!r}")


def compile_conditions(table: sa.Table, conditions: Optional[Mapping[str, Any]]) -> CompiledConditions:
    """Compile a full condition map against a table.

    Args:
        table: The reflected table the conditions refer to
        conditions: The condition map, possibly carrying ORDER and LIMIT

    Returns:
        CompiledConditions: WHERE clause (or None), ORDER BY list, limit and offset

    Raises:
        QueryError: If a key, operator or column cannot be resolved
    """
    conditions = conditions or {}
    clauses = _clauses(table, conditions)
    limit, offset = compile_limit(conditions.get(LIMIT_KEY))
    return CompiledConditions(
        where=sa.and_(*clauses) if clauses else None,
        order_by=compile_order(table, conditions.get(ORDER_KEY)),
        limit=limit,
        offset=offset,
    )


def apply_conditions(statement: Any, table: sa.Table, conditions: Optional[Mapping[str, Any]]) -> Any:
    """Attach a compiled condition map to a select statement."""
    compiled = compile_conditions(table, conditions)
    if compiled.where is not None:
        statement = statement.where(compiled.where)
    if compiled.order_by:
        statement = statement.order_by(*compiled.order_by)
    if compiled.limit is not None:
        statement = statement.limit(compiled.limit)
    if compiled.offset is not None:
        statement = statement.offset(compiled.offset)
    return statement


def where_only(table: sa.Table, conditions: Optional[Mapping[str, Any]]) -> Optional[ColumnElement]:
    """Compile only the WHERE part, for update/delete/count/has statements."""
    return compile_conditions(table, conditions).where
