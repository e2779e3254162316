"""One-hop relation resolution for the query builder."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from clearmarkup.core.database.protocols import DataAccessPrimitive


@dataclass(frozen=True)
class RelationDescriptor:
    """Restrict the primary table's ``id`` to ``column`` values found in ``table`` under ``where``."""
    table: str
    where: Mapping[str, Any] = field(default_factory=dict)
    column: str = "id"


class RelationResolver:
    """Resolves a relation into an id set and folds it into a condition map."""

    def __init__(self, database: DataAccessPrimitive, logger: Optional[Any] = None) -> None:
        self._database = database
        self._logger = logger

    def related_ids(self, relation: RelationDescriptor) -> List[Any]:
        """Fetch the distinct join-column values of the related table.

        Args:
            relation: The relation to resolve

        Returns:
            The values in the order the related table returned them, without
            duplicates or NULLs
        """
        values = self._database.select(relation.table, relation.column, dict(relation.where))
        ids: List[Any] = []
        seen = set()
        for value in values or []:
            if isinstance(value, Mapping):
                value = value.get(relation.column)
            if value is None:
                continue
            try:
                if value in seen:
                    continue
                seen.add(value)
            except TypeError:
                # JSON and array columns come back as lists
                if value in ids:
                    continue
            ids.append(value)

        if not ids and self._logger:
            self._logger.debug(
                f"Relation on {relation.table}.{relation.column} matched nothing",
                extra={"table": relation.table, "column": relation.column}
            )
        return ids

    @staticmethod
    def merge(where: Mapping[str, Any], ids: List[Any]) -> Dict[str, Any]:
        """Add the ``id`` restriction to a condition map without dropping existing predicates.

        An ``id`` predicate already present in the map is kept; the relation's
        restriction is then added as a separate AND group.
        """
        merged = dict(where)
        if "id" in merged:
            merged["AND #relation"] = {"id": list(ids)}
        else:
            merged["id"] = list(ids)
        return merged
