"""
Data transform: maps a brand's raw poll payload onto canonical account
records.

Pure functions, no I/O.  The server relays the payload untouched; only
the consumer of the poll loop calls ``transform_data``.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Sequence

from utils.schemas import AccountRecord, DataTransformConfig


def _get_path(obj: Any, path: str) -> Any:
    """Dotted-path lookup (``"a.b.c"``); returns None on any miss."""
    current = obj
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, Sequence) and not isinstance(current, str) and part.isdigit():
            idx = int(part)
            current = current[idx] if idx < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def transform_data(raw: Mapping[str, Any] | None, config: DataTransformConfig) -> List[Dict[str, Any]]:
    """
    Turn the poll payload into a list of canonical records.

    ``config.data_path`` locates the item list inside *raw*;
    ``config.fields`` maps canonical keys → source paths inside each item.
    """
    if not raw:
        return []
    items = _get_path(raw, config.data_path)
    if not isinstance(items, list):
        return []

    records: List[Dict[str, Any]] = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        mapped = {key: _get_path(item, source) for key, source in config.fields.items()}
        records.append(AccountRecord(**mapped).model_dump())
    return records


def filter_unique(records: Iterable[Dict[str, Any]], keys: Sequence[str]) -> List[Dict[str, Any]]:
    """Keep the first record for each combination of *keys*."""
    seen: set[str] = set()
    unique: List[Dict[str, Any]] = []
    for record in records:
        marker = "__".join(str(record.get(k)) for k in keys)
        if marker in seen:
            continue
        seen.add(marker)
        unique.append(record)
    return unique
