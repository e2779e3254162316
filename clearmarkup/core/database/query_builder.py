"""
Fluent query builder.

``Db`` collects a table, a condition map, an order, a limit and an optional
one-hop relation through chainable setters, then hands them to the
data-access primitive when a terminal method (``select``, ``get``, ``has``,
``count``, ``insert``, ``update``, ``delete``) runs. Every terminal call
leaves the builder in its zero state, whichever way it exits::

    emails = (
        Db(database)
        .table("users")
        .filter({"status": "active"})
        .rel("teams", {"region": "EU"}, "owner_id")
        .order_by("created_at", "DESC")
        .limit(10)
        .select({"id": None, "email": "trim|email"})
    )

``filter`` replaces the condition map on every call; only the relation's id
restriction is merged into it.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Generator, List, Mapping, Optional, Sequence, Union

from clearmarkup.core.database.protocols import DataAccessPrimitive
from clearmarkup.core.database.relation import RelationDescriptor, RelationResolver
from clearmarkup.core.database.transforms import Operations, ValueTransformer
from clearmarkup.utils.exceptions import QueryError

WILDCARD = "*"


@dataclass(frozen=True)
class CallableTransform:
    """A user-supplied value -> value function."""
    func: Callable[[Any], Any]

    def __call__(self, value: Any) -> Any:
        return self.func(value)


@dataclass(frozen=True)
class NamedPipeline:
    """A pipeline of named operations such as ``trim|truncate:20``."""
    transformer: ValueTransformer

    def __call__(self, value: Any) -> Any:
        return self.transformer(value)


Directive = Union[CallableTransform, NamedPipeline]


def row_key(column: str) -> str:
    """The key a fetched row carries for a column; ``users.email`` comes back as ``email``."""
    return column.rpartition(".")[2]


def make_directive(operation: Any) -> Optional[Directive]:
    """Resolve a transform directive once, by its shape."""
    if operation is None:
        return None
    if isinstance(operation, (CallableTransform, NamedPipeline)):
        return operation
    if callable(operation):
        return CallableTransform(operation)
    if isinstance(operation, str) or (
            isinstance(operation, Sequence) and all(isinstance(item, str) for item in operation)
    ):
        return NamedPipeline(ValueTransformer(operation))
    raise QueryError(f"Unsupported transform directive: {operation!r}")


@dataclass(frozen=True)
class Projection:
    """The columns to fetch and the transform for each of them."""
    columns: Union[str, List[str]] = WILDCARD
    transforms: Dict[str, Directive] = field(default_factory=dict)

    @property
    def is_wildcard(self) -> bool:
        return self.columns == WILDCARD

    def apply(self, row: Any) -> Any:
        """Transform the columns of one row that have a directive."""
        if self.is_wildcard or not self.transforms or not isinstance(row, Mapping):
            return row
        return {
            column: self.transforms[column](value) if column in self.transforms else value
            for column, value in row.items()
        }


def prepare_query(columns: Any = WILDCARD, operation: Optional[Operations] = None) -> Projection:
    """Normalize a projection into fetched columns and per-column transforms.

    * ``"*"`` fetches everything and transforms nothing.
    * ``"email"`` fetches one column; ``operation`` becomes its transform.
    * ``{"email": "trim|email", "name": str.title, "id": None}`` fetches every
      key; string values are pipelines, callables are called per value.
    * ``["id", "email"]`` (or any non-string key) fetches the value as a bare
      column.

    Args:
        columns: The projection
        operation: Transform for a single-column projection

    Returns:
        Projection: The normalized projection

    Raises:
        QueryError: If the projection has an unsupported shape
    """
    if isinstance(columns, str):
        if columns == WILDCARD:
            return Projection()
        directive = make_directive(operation)
        return Projection([columns], {row_key(columns): directive} if directive else {})

    if isinstance(columns, Mapping):
        items = list(columns.items())
    elif isinstance(columns, Sequence):
        items = list(enumerate(columns))
    else:
        raise QueryError(f"Unsupported projection: {columns!r}")

    names: List[str] = []
    transforms: Dict[str, Directive] = {}
    for key, value in items:
        if not isinstance(key, str):
            if not isinstance(value, str):
                raise QueryError(f"Positional projection entries must be column names, got {value!r}")
            names.append(value)
            continue
        names.append(key)
        directive = make_directive(value)
        if directive is not None:
            transforms[row_key(key)] = directive

    if not names:
        raise QueryError("Projection must name at least one column")
    return Projection(names, transforms)


@dataclass(frozen=True)
class ConditionSet:
    """Everything a builder has been told about the next query."""
    table: Optional[str] = None
    where: Mapping[str, Any] = field(default_factory=dict)
    order: Optional[Any] = None
    limit: Optional[Any] = None
    relation: Optional[RelationDescriptor] = None

    def conditions(self, include_modifiers: bool = False) -> Dict[str, Any]:
        """The condition map handed to the primitive, optionally with ORDER and LIMIT."""
        where = dict(self.where)
        if include_modifiers:
            if self.order is not None:
                where["ORDER"] = self.order
            if self.limit is not None:
                where["LIMIT"] = self.limit
        return where


class Db:
    """Stateful fluent facade over a data-access primitive.

    A builder serves one logical query at a time. It is not safe to share
    across threads; create one per query or rely on the reset after each
    terminal call.
    """

    def __init__(self, database: DataAccessPrimitive, logger: Optional[Any] = None) -> None:
        """Create a builder bound to a primitive.

        Args:
            database: The data-access primitive, usually the DatabaseManager
            logger: Logger for debug output
        """
        self._database = database
        self._logger = logger or logging.getLogger("query_builder")
        self._resolver = RelationResolver(database, self._logger)
        self._state = ConditionSet()

    @property
    def state(self) -> ConditionSet:
        """Snapshot of the current configuration."""
        return self._state

    def reset(self) -> "Db":
        """Return the builder to its zero state."""
        self._state = ConditionSet()
        return self

    def table(self, name: str) -> "Db":
        """Set the target table, replacing any previous one."""
        if not name:
            raise QueryError("Table name must not be empty")
        self._state = replace(self._state, table=name)
        return self

    def filter(self, where: Union[str, Mapping[str, Any]], value: Any = None) -> "Db":
        """Set the condition map.

        ``filter("status", "active")`` is shorthand for
        ``filter({"status": "active"})``. Each call replaces the previous map.
        """
        if isinstance(where, str):
            conditions: Dict[str, Any] = {where: value}
        else:
            conditions = dict(where or {})
        self._state = replace(self._state, where=conditions)
        return self

    def order_by(self, column: Union[str, Mapping[str, str], Sequence[str]], direction: str = "ASC") -> "Db":
        """Order by one column, or by a mapping of columns to directions."""
        if isinstance(column, Mapping):
            order: Any = dict(column)
        elif isinstance(column, str):
            order = {column: direction}
        else:
            order = list(column)
        self._state = replace(self._state, order=order)
        return self

    def limit(self, limit: Any) -> "Db":
        """Limit the result: a row count, or an ``(offset, count)`` pair."""
        self._state = replace(self._state, limit=limit)
        return self

    def rel(self, table: str, where: Mapping[str, Any], column: str) -> "Db":
        """Restrict ``id`` to the ``column`` values of ``table`` rows matching ``where``."""
        self._state = replace(
            self._state,
            relation=RelationDescriptor(table=table, where=dict(where or {}), column=column)
        )
        return self

    @contextmanager
    def _terminal(self, operation: str) -> Generator[ConditionSet, None, None]:
        """Hand out the current state and reset the builder however the call ends."""
        state = self._state
        try:
            if state.table is None:
                raise QueryError(f"No table selected for {operation}()")
            self._logger.debug(
                f"{operation} on {state.table}",
                extra={"table": state.table, "relation": state.relation is not None}
            )
            yield state
        finally:
            self.reset()

    def _resolve(self, state: ConditionSet, include_modifiers: bool = False) -> Optional[Dict[str, Any]]:
        """Build the primary condition map; None means the relation matched nothing."""
        where = state.conditions(include_modifiers)
        if state.relation is None:
            return where
        ids = self._resolver.related_ids(state.relation)
        if not ids:
            return None
        return self._resolver.merge(where, ids)

    def select(self, columns: Any = WILDCARD, operation: Optional[Operations] = None) -> Any:
        """Fetch all matching rows, transformed per column.

        Args:
            columns: The projection, see :func:`prepare_query`
            operation: Transform for a single-column projection

        Returns:
            List of row mappings; an empty list when the relation matched nothing
        """
        with self._terminal("select") as state:
            projection = prepare_query(columns, operation)
            where = self._resolve(state, include_modifiers=True)
            if where is None:
                return []

            data = self._database.select(state.table, projection.columns, where)
            if not isinstance(data, list):
                return data
            return [projection.apply(row) for row in data]

    def get(self, columns: Any = WILDCARD, operation: Optional[Operations] = None) -> Any:
        """Fetch the first matching row, transformed per column.

        A row holding a single column is unwrapped to its value.

        Returns:
            Row mapping, scalar, or None when nothing matched
        """
        with self._terminal("get") as state:
            projection = prepare_query(columns, operation)
            where = self._resolve(state, include_modifiers=True)
            if where is None:
                return None

            data = self._database.get(state.table, projection.columns, where)
            if not isinstance(data, Mapping):
                return data

            data = projection.apply(data)
            if len(data) == 1:
                return next(iter(data.values()))
            return data

    def has(self) -> bool:
        """Check whether a matching row exists."""
        with self._terminal("has") as state:
            where = self._resolve(state)
            if where is None:
                return False
            return self._database.has(state.table, where)

    def count(self) -> int:
        """Count matching rows."""
        with self._terminal("count") as state:
            where = self._resolve(state)
            if where is None:
                return 0
            return self._database.count(state.table, where)

    def insert(self, data: Any) -> Any:
        """Insert a row (or a list of rows) into the table.

        Returns:
            The primitive's insert result
        """
        with self._terminal("insert") as state:
            return self._database.insert(state.table, data)

    def update(self, data: Mapping[str, Any]) -> Any:
        """Update rows matching the condition map. The relation does not apply."""
        with self._terminal("update") as state:
            return self._database.update(state.table, data, state.conditions())

    def delete(self) -> Any:
        """Delete rows matching the condition map. The relation does not apply."""
        with self._terminal("delete") as state:
            return self._database.delete(state.table, state.conditions())

    def transaction(self, callback: Callable[[Any], Any]) -> Any:
        """Run ``callback`` atomically through the primitive."""
        return self._database.action(callback)

    def get_id_from_selector(self, table: str, selector: Any) -> Any:
        """Return the ``id`` of the row whose ``selector`` column matches, or None."""
        return self._database.get(table, "id", {"selector": selector})

    def __repr__(self) -> str:
        return f"<Db(table={self._state.table!r})>"


QueryBuilder = Db
