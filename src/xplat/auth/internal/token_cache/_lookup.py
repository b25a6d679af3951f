from __future__ import annotations

from typing import Any, Iterable, List, Mapping

from xplat.auth.internal.token_cache._entry import Entry

USER_ID_FIELD = "userId"

_MISSING = object()


def ignore_case_equals(a: Any, b: Any) -> bool:
    if a == b:
        return True
    return isinstance(a, str) and isinstance(b, str) and a.lower() == b.lower()


def same_value(a: Any, b: Any) -> bool:
    """Equality that also requires the same type, so ``True`` and ``1`` differ."""
    return type(a) is type(b) and a == b


def same_entry(a: Mapping[str, Any], b: Mapping[str, Any]) -> bool:
    return a.keys() == b.keys() and all(same_value(a[key], b[key]) for key in a)


def _matches_exactly(entry: Mapping[str, Any], query: Mapping[str, Any]) -> bool:
    for key, value in query.items():
        candidate = entry.get(key, _MISSING)
        if candidate is _MISSING or not same_value(candidate, value):
            return False
    return True


def find(query: Mapping[str, Any], entries: Iterable[Entry]) -> List[Entry]:
    """Return the entries that match every field of ``query``.

    Fields are compared exactly, except ``userId`` which is compared case-insensitively
    and ignored when empty. Entries may carry fields the query does not mention.
    An empty query matches everything.
    """
    rest = {k: v for k, v in query.items() if k != USER_ID_FIELD}
    user_id = query.get(USER_ID_FIELD)

    results = [entry for entry in entries if _matches_exactly(entry, rest)]
    if user_id:
        results = [entry for entry in results if ignore_case_equals(entry.get(USER_ID_FIELD), user_id)]
    return results
