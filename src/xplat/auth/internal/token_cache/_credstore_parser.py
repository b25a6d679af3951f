"""Parser for the output of the ``creds.exe`` credential manager helper.

The helper prints one block per credential, blocks separated by a blank line::

    Target: AzureXplatCli:target=userId:someone@org.example::resource:...
    Type: Generic
    User: creds.exe
    Credential: 00010203AABBCCDD

``Credential`` is only present when the helper was asked to show secrets.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, Optional

log = logging.getLogger(__name__)

LABEL_SEPARATOR = ":"

# Helper output label to TargetRecord field
FIELD_MAPPING = {
    "Target": "target_name",
    "Type": "type",
    "User": "user_name",
    "Credential": "credential",
}


@dataclass(frozen=True)
class TargetRecord:
    target_name: str
    type: Optional[str] = None
    user_name: Optional[str] = None
    credential: Optional[str] = None


def _parse_line(line: str) -> Optional[tuple]:
    label, sep, value = line.partition(LABEL_SEPARATOR)
    if not sep:
        return None
    field = FIELD_MAPPING.get(label.strip())
    if field is None:
        return None
    return field, value.strip()


def _build_record(fields: Dict[str, str], prefix: str) -> Optional[TargetRecord]:
    target_name = fields.get("target_name")
    if not target_name:
        log.debug("Dropping credential block without a target: labels=%s", sorted(fields))
        return None
    if not target_name.startswith(prefix):
        return None
    return TargetRecord(**fields)


def parse_credstore_output(lines: Iterable[str], prefix: str = "") -> Iterator[TargetRecord]:
    """Yield one ``TargetRecord`` per block whose target starts with ``prefix``.

    Unknown labels are skipped, and a block without a ``Target`` is dropped
    rather than failing the whole listing.
    """
    fields: Dict[str, str] = {}
    for raw in lines:
        line = raw.rstrip("\r\n")
        if not line.strip():
            if fields:
                record = _build_record(fields, prefix)
                if record is not None:
                    yield record
            fields = {}
            continue
        parsed = _parse_line(line)
        if parsed is not None:
            fields[parsed[0]] = parsed[1]
    if fields:
        record = _build_record(fields, prefix)
        if record is not None:
            yield record
