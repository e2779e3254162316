"""
Value transformation pipeline.

A pipeline is an ordered list of named operations, written either as a
pipe-delimited string (``"trim|truncate:20"``) or as a list of operation
strings. Each operation may carry a single parameter after a colon.
Operations are applied left to right; unknown names are skipped.
"""

from __future__ import annotations

import html
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

Operations = Union[str, Sequence[str]]

DEFAULT_TRUNCATE_LENGTH = 57
TRIM_CHARACTERS = " \t\n\r\0\x0b"

_TAG_PATTERN = re.compile(r"<!--.*?(?:-->|\Z)|<\?.*?(?:\?>|\Z)|</?[A-Za-z][^>]*(?:>|\Z)", re.DOTALL)
_EMAIL_ILLEGAL_PATTERN = re.compile(r"[^A-Za-z0-9!#$%&'*+\-=?^_`{|}~@.\[\]]")


def _trim(value: Any, parameter: Optional[str]) -> Any:
    return value.strip(TRIM_CHARACTERS) if isinstance(value, str) else value


def _escape(value: Any, parameter: Optional[str]) -> Any:
    if not isinstance(value, str):
        return value
    return html.escape(value, quote=True).replace("&#x27;", "&#039;")


def _empty_string_to_null(value: Any, parameter: Optional[str]) -> Any:
    return None if value == "" else value


def _strip_tags(value: Any, parameter: Optional[str]) -> Any:
    return _TAG_PATTERN.sub("", value) if isinstance(value, str) else value


def _truncate(value: Any, parameter: Optional[str]) -> Any:
    if not isinstance(value, str):
        return value
    length = int(parameter) if parameter is not None and parameter.isdigit() else DEFAULT_TRUNCATE_LENGTH
    if len(value) > length:
        return value[:length] + "..."
    return value


def _email(value: Any, parameter: Optional[str]) -> Any:
    return _EMAIL_ILLEGAL_PATTERN.sub("", value) if isinstance(value, str) else value


OPERATIONS: Dict[str, Callable[[Any, Optional[str]], Any]] = {
    "trim": _trim,
    "escape": _escape,
    "empty_string_to_null": _empty_string_to_null,
    "strip_tags": _strip_tags,
    "truncate": _truncate,
    "email": _email,
}


def parse_operations(operations: Operations) -> List[Tuple[str, Optional[str]]]:
    """Split an operation list into ``(name, parameter)`` pairs.

    Args:
        operations: Pipe-delimited string or a sequence of operation strings

    Returns:
        The parsed steps, in application order
    """
    if not isinstance(operations, str):
        operations = "|".join(operations)

    steps: List[Tuple[str, Optional[str]]] = []
    for operation in operations.split("|"):
        name, _, parameter = operation.partition(":")
        steps.append((name.strip(), parameter.strip() if parameter else None))
    return steps


def apply_operations(value: Any, operations: Operations) -> Any:
    """Apply a sequence of named operations to a value.

    String operations leave non-string values untouched, so ``None`` and
    numeric columns pass through a ``trim|escape`` pipeline unchanged.

    Args:
        value: The value to transform
        operations: The operations, separated by ``|`` or provided as a list

    Returns:
        The transformed value
    """
    for name, parameter in parse_operations(operations):
        operation = OPERATIONS.get(name)
        if operation is not None:
            value = operation(value, parameter)
    return value


class ValueTransformer:
    """A pipeline parsed once and applied to many values."""

    def __init__(self, operations: Operations) -> None:
        parsed = parse_operations(operations)
        self._steps = [
            (OPERATIONS[name], parameter) for name, parameter in parsed if name in OPERATIONS
        ]
        self._names = [name for name, _ in parsed]

    @property
    def names(self) -> List[str]:
        return list(self._names)

    def __call__(self, value: Any) -> Any:
        for operation, parameter in self._steps:
            value = operation(value, parameter)
        return value

    def __repr__(self) -> str:
        return f"<ValueTransformer({'|'.join(self._names)})>"
