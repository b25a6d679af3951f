"""Parser for ``security dump-keychain`` output on macOS.

Each item starts with a ``keychain:`` line followed by its class and an
attribute list::

    keychain: "/Users/someone/Library/Keychains/login.keychain"
    class: "genp"
    attributes:
        0x00000007 <blob>="xplat-auth"
        "acct"<blob>="userId:someone@org.example"
        "cdat"<timedate>=0x32303134303630323137323535385A00  "20140602172558Z\\000"
        "desc"<blob>="xplat access token"
        "svce"<blob>="xplat-auth"
        "type"<uint32>=<NULL>

Only quoted four-letter attributes are kept. Lines that do not parse are skipped.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, Optional

log = logging.getLogger(__name__)

_ATTRIBUTE_RE = re.compile(r'^\s+(?:"(?P<name>[^"]+)"|0x[0-9A-Fa-f]+\s*)<(?P<type>[^>]*)>=(?P<value>.*)$')
_HEX_WITH_TEXT_RE = re.compile(r'^0x[0-9A-Fa-f]+\s+(?P<text>".*")$')
_OCTAL_ESCAPE_RE = re.compile(r"\\([0-7]{3}|\\|\")")


@dataclass
class KeychainItem:
    keychain: str
    item_class: Optional[str] = None
    attributes: Dict[str, Optional[str]] = field(default_factory=dict)

    @property
    def acct(self) -> Optional[str]:
        return self.attributes.get("acct")

    @property
    def svce(self) -> Optional[str]:
        return self.attributes.get("svce")

    @property
    def desc(self) -> Optional[str]:
        return self.attributes.get("desc")


def _unquote(text: str) -> str:
    inner = text[1:-1]

    def replace(match: re.Match) -> str:
        token = match.group(1)
        if token in ("\\", '"'):
            return token
        return chr(int(token, 8))

    unescaped = _OCTAL_ESCAPE_RE.sub(replace, inner)
    # Octal escapes are raw bytes, so re-decode anything outside ASCII as UTF-8
    try:
        return unescaped.encode("latin-1").decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError):
        return unescaped


def _parse_value(value: str) -> Optional[str]:
    value = value.strip()
    if value == "<NULL>":
        return None
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return _unquote(value)
    match = _HEX_WITH_TEXT_RE.match(value)
    if match:
        return _unquote(match.group("text"))
    return value


def _header_value(line: str) -> str:
    _, _, value = line.partition(":")
    value = value.strip()
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value


def _has_account(item: KeychainItem) -> bool:
    if item.acct is None:
        log.debug("Dropping keychain item without an account in %s", item.keychain)
        return False
    return True


def parse_keychain_output(lines: Iterable[str]) -> Iterator[KeychainItem]:
    """Yield every item that has an account name, in output order."""
    current: Optional[KeychainItem] = None
    for raw in lines:
        line = raw.rstrip("\r\n")
        if line.startswith("keychain:"):
            if current is not None and _has_account(current):
                yield current
            current = KeychainItem(keychain=_header_value(line))
            continue
        if current is None:
            continue
        if line.startswith("class:"):
            current.item_class = _header_value(line)
            continue
        match = _ATTRIBUTE_RE.match(line)
        if match is None or match.group("name") is None:
            continue
        current.attributes[match.group("name")] = _parse_value(match.group("value"))
    if current is not None and _has_account(current):
        yield current
