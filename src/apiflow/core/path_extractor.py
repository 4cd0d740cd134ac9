"""
Path Extractor - Resolves dotted/bracket paths against decoded JSON values.

Path grammar: ``.``-separated identifiers, each with optional ``[index]``
suffixes, e.g. ``data.users[0].id`` or ``[0].id``. An empty path selects
the whole value. Lookups never raise; a miss yields ``MISSING``.
"""

import re
from dataclasses import dataclass
from typing import Any, List

from apiflow.core.types import DataType

_INDEX_RE = re.compile(r"\[(\d+)\]")

# Arrays contribute only their first few items to field discovery
DISCOVERY_ARRAY_ITEMS = 3
PREVIEW_LENGTH = 50


class _Missing:
    """Sentinel for a path that resolves to nothing."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


def split_path(path: str) -> List[str]:
    """Split a path into its keys: ``a.b[0].c`` -> ``["a", "b", "0", "c"]``."""
    if not path:
        return []
    return [key for key in _INDEX_RE.sub(r".\1", path).split(".") if key]


def _step(current: Any, key: str) -> Any:
    if isinstance(current, dict):
        return current.get(key, MISSING)
    if isinstance(current, (list, tuple)):
        if not key.isdigit():
            return MISSING
        index = int(key)
        return current[index] if index < len(current) else MISSING
    return MISSING


def extract(value: Any, path: str) -> Any:
    """
    Extract the value at ``path`` from ``value``.

    Args:
        value: A decoded JSON value (dict, list, scalar)
        path: Path string such as ``data.users[0].name``

    Returns:
        The selected value (which may be None for a JSON null), or MISSING
        when any step of the path does not exist.
    """
    current = value
    for key in split_path(path):
        if current is None:
            return MISSING
        current = _step(current, key)
        if current is MISSING:
            return MISSING
    return current


@dataclass
class FieldInfo:
    """A selectable field discovered in a response body."""
    path: str
    name: str
    type: DataType
    preview: str


def _preview(value: Any) -> str:
    if isinstance(value, bool):
        text = "true" if value else "false"
    elif value is None:
        text = "null"
    else:
        text = str(value)
    return text[:PREVIEW_LENGTH]


def discover_fields(value: Any, prefix: str = "") -> List[FieldInfo]:
    """
    List the paths available in a response body.

    The returned paths are relative to ``value`` so they can be used directly
    as output socket paths.
    """
    fields: List[FieldInfo] = []
    _walk(value, prefix, fields)
    return fields


def _walk(value: Any, prefix: str, fields: List[FieldInfo]) -> None:
    if isinstance(value, list):
        fields.append(FieldInfo(
            path=prefix,
            name=prefix.split(".")[-1] or "array",
            type=DataType.ARRAY,
            preview=f"Array({len(value)})",
        ))
        for index, item in enumerate(value[:DISCOVERY_ARRAY_ITEMS]):
            item_path = f"{prefix}[{index}]"
            if isinstance(item, (dict, list)):
                _walk(item, item_path, fields)
            else:
                fields.append(FieldInfo(
                    path=item_path,
                    name=f"[{index}]",
                    type=DataType.from_value(item),
                    preview=_preview(item),
                ))
    elif isinstance(value, dict):
        for key, item in value.items():
            full_path = f"{prefix}.{key}" if prefix else str(key)
            if isinstance(item, (dict, list)):
                _walk(item, full_path, fields)
            else:
                fields.append(FieldInfo(
                    path=full_path,
                    name=str(key),
                    type=DataType.from_value(item),
                    preview=_preview(item),
                ))
    elif prefix or value is not None:
        fields.append(FieldInfo(
            path=prefix,
            name=prefix.split(".")[-1] or "value",
            type=DataType.from_value(value),
            preview=_preview(value),
        ))
