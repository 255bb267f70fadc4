"""
Field-path discovery and lookup over JSON-shaped records.

Paths use dot notation for nested objects and a literal ``[0]`` segment for
"first element of an array of objects". Only the first element of an array is
sampled, so heterogeneous arrays report the shape of their head.
"""

import re
from datetime import date, datetime
from typing import Any, Dict, List, Union

_INDEX_SEGMENT = re.compile(r"([^\[\]]+)|\[(\d+)\]")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}([T ]\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?)?$")


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


def extract_json_fields(data: Any, prefix: str = "") -> List[str]:
    """Return every reachable field path in ``data``, de-duplicated in discovery order."""
    fields: List[str] = []

    if data is None:
        return fields

    if isinstance(data, list):
        if data and isinstance(data[0], (dict, list)):
            return extract_json_fields(data[0], prefix)
        return fields

    if isinstance(data, dict):
        for key, value in data.items():
            full_path = f"{prefix}.{key}" if prefix else str(key)
            fields.append(full_path)
            if isinstance(value, list):
                if value and isinstance(value[0], (dict, list)):
                    fields.extend(extract_json_fields(value[0], f"{full_path}[0]"))
            elif isinstance(value, dict):
                fields.extend(extract_json_fields(value, full_path))

    return list(dict.fromkeys(fields))


def _split_path(path: str) -> List[Union[str, int]]:
    segments: List[Union[str, int]] = []
    for part in path.split("."):
        if not part:
            continue
        for name, index in _INDEX_SEGMENT.findall(part):
            segments.append(int(index) if index else name)
    return segments


def get_nested_value(record: Any, path: str, default: Any = MISSING) -> Any:
    """
    Resolve ``path`` (``a.b``, ``items[0].name``) against ``record``.
    Returns ``default`` (``MISSING`` unless given) when any segment is absent;
    a present ``None`` is returned as ``None``.
    """
    if not path:
        return default
    current = record
    for segment in _split_path(path):
        if isinstance(segment, int):
            if not isinstance(current, list) or segment >= len(current):
                return default
            current = current[segment]
        elif isinstance(current, dict):
            if segment not in current:
                return default
            current = current[segment]
        else:
            return default
    return current


def set_nested_value(target: Dict[str, Any], path: str, value: Any) -> Dict[str, Any]:
    """Write ``value`` at a dot path, creating intermediate dicts."""
    parts = [p for p in path.split(".") if p]
    if not parts:
        raise ValueError("Property path must not be empty")
    current = target
    for part in parts[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]
    current[parts[-1]] = value
    return target


def infer_field_type(value: Any) -> str:
    """Classify a sample value as string, number, boolean, date or unknown."""
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, (datetime, date)):
        return "date"
    if isinstance(value, str):
        if _ISO_DATE.match(value.strip()):
            return "date"
        return "string"
    return "unknown"
