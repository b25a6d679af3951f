"""Cache entry type and the conversions applied when entries cross a storage boundary.

An entry is a flat dict of field name to a primitive value. Textual stores erase
types, so reading back goes through ``deserialize_entry`` which restores the
well-known typed fields.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

EntryValue = Union[str, bool, int, datetime, None]
Entry = Dict[str, EntryValue]

SECRET_FIELDS = ("accessToken", "refreshToken")

# Expected formats of stored dates, the first one is what we write
DATETIME_FMT = "%Y-%m-%dT%H:%M:%S.%fZ"
DATETIME_FMT_NO_MICRO = "%Y-%m-%dT%H:%M:%SZ"


def normalize_datetime(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime truncated to milliseconds."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def format_datetime(value: datetime) -> str:
    value = normalize_datetime(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_datetime(value: str) -> Optional[datetime]:
    for fmt in (DATETIME_FMT, DATETIME_FMT_NO_MICRO):
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    try:
        return normalize_datetime(datetime.fromisoformat(value))
    except ValueError:
        return None


def stringify_value(value: Any) -> str:
    """Render a field value the way it is written into a textual store."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return format_datetime(value)
    return str(value)


def _to_bool(value: str) -> bool:
    return value.lower() == "true"


def _to_int(value: str) -> Union[int, str]:
    try:
        return int(value)
    except ValueError:
        return value


def _to_datetime(value: str) -> Union[datetime, str]:
    parsed = parse_datetime(value)
    return value if parsed is None else parsed


# Fields that get a type conversion when read back from a textual store
FIELD_CONVERTERS: Dict[str, Callable[[str], EntryValue]] = {
    "expiresIn": _to_int,
    "expiresOn": _to_datetime,
    "isUserIdDisplayable": _to_bool,
    "isMRRT": _to_bool,
}


def deserialize_entry(raw: Mapping[str, Any]) -> Entry:
    """Restore typed values for the well-known fields of a decoded entry."""
    entry: Entry = {}
    for key, value in raw.items():
        if isinstance(value, str) and key in FIELD_CONVERTERS:
            entry[key] = FIELD_CONVERTERS[key](value)
        else:
            entry[key] = value
    return entry


def normalize_entry(entry: Mapping[str, EntryValue]) -> Entry:
    """Copy ``entry`` with datetimes in the precision every store can hold."""
    return {k: normalize_datetime(v) if isinstance(v, datetime) else v for k, v in entry.items()}


def without_secrets(entry: Mapping[str, EntryValue]) -> Entry:
    return {k: v for k, v in entry.items() if k not in SECRET_FIELDS}


def _json_default(value: Any) -> str:
    if isinstance(value, datetime):
        return format_datetime(value)
    raise TypeError(f"Cannot store value of type {type(value).__name__} in a token cache entry")


def dump_entries(entries: Iterable[Mapping[str, EntryValue]]) -> str:
    return json.dumps(list(entries), default=_json_default)


def load_entries_document(text: str) -> List[Entry]:
    """Parse a JSON entry set document.

    Raises:
        ValueError: If the text is not JSON or not an array of objects.
    """
    data = json.loads(text)
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise ValueError("Token cache document must be a JSON array of objects")
    return [deserialize_entry(item) for item in data]
