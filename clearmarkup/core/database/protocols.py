from __future__ import annotations

from typing import Any, Callable, List, Mapping, Optional, Protocol, Sequence, TypeVar, Union, runtime_checkable

T = TypeVar('T')


@runtime_checkable
class DataAccessPrimitive(Protocol):
    """Protocol defining the storage operations the query builder delegates to.

    Each call names a table, an optional projection and a condition map.
    ``DatabaseManager`` is the production implementation.
    """

    def select(self, table: str, columns: Union[str, Sequence[str]], where: Optional[Mapping[str, Any]]) -> List[Any]:
        """Fetch all matching rows."""
        ...

    def get(self, table: str, columns: Union[str, Sequence[str]], where: Optional[Mapping[str, Any]]) -> Any:
        """Fetch the first matching row, or None."""
        ...

    def has(self, table: str, where: Optional[Mapping[str, Any]]) -> bool:
        """Check whether a matching row exists."""
        ...

    def count(self, table: str, where: Optional[Mapping[str, Any]]) -> int:
        """Count matching rows."""
        ...

    def insert(self, table: str, data: Any) -> Any:
        """Insert one or more rows."""
        ...

    def update(self, table: str, data: Mapping[str, Any], where: Optional[Mapping[str, Any]]) -> Any:
        """Update matching rows."""
        ...

    def delete(self, table: str, where: Optional[Mapping[str, Any]]) -> Any:
        """Delete matching rows."""
        ...

    def action(self, callback: Callable[[Any], T]) -> T:
        """Run a callback atomically."""
        ...
