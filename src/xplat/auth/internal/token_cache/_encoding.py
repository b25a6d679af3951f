"""Flat text encoding of cache entries.

OS credential stores only hold strings, so an entry is written as one line::

    key:value::key:value

with fields sorted by key and ``\\`` and ``:`` escaped with a backslash inside
keys and values. Decoding is type-erasing: every value comes back as a string.
"""

from __future__ import annotations

from typing import Dict, Mapping

from xplat.auth.internal.token_cache._entry import EntryValue, stringify_value

ESCAPE_CHAR = "\\"
VALUE_SEPARATOR = ":"
FIELD_SEPARATOR = "::"


def escape(raw: str) -> str:
    # Backslash first, otherwise the colon's own backslash gets doubled
    return raw.replace("\\", "\\\\").replace(":", "\\:")


def unescape(escaped: str) -> str:
    out = []
    chars = iter(escaped)
    for char in chars:
        if char == ESCAPE_CHAR:
            out.append(next(chars, ESCAPE_CHAR))
        else:
            out.append(char)
    return "".join(out)


def encode_object(entry: Mapping[str, EntryValue]) -> str:
    """Encode ``entry`` as a single line. ``None`` values keep their key with an empty value."""
    return FIELD_SEPARATOR.join(
        f"{escape(key)}{VALUE_SEPARATOR}{escape(stringify_value(entry[key]))}" for key in sorted(entry)
    )


def _scan_until(text: str, start: int, separator: str) -> int:
    """Index of the first unescaped ``separator`` at or after ``start``, or ``len(text)``."""
    i = start
    while i < len(text):
        if text[i] == ESCAPE_CHAR:
            i += 2
        elif text.startswith(separator, i):
            return i
        else:
            i += 1
    return len(text)


def decode_object(line: str) -> Dict[str, str]:
    """Decode a line produced by ``encode_object`` into a dict of strings.

    Each field is read as a key up to the first unescaped ``:`` and a value up to
    the next unescaped ``::``, so an empty value followed by the separator
    (``r:::x:1``) stays unambiguous.
    """
    result: Dict[str, str] = {}
    pos = 0
    while pos < len(line):
        key_end = _scan_until(line, pos, VALUE_SEPARATOR)
        value_start = min(key_end + len(VALUE_SEPARATOR), len(line))
        value_end = _scan_until(line, value_start, FIELD_SEPARATOR)
        result[unescape(line[pos:key_end])] = unescape(line[value_start:value_end])
        pos = value_end + len(FIELD_SEPARATOR)
    return result
