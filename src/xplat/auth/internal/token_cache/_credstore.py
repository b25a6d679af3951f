"""Token storage in the Windows credential manager through the ``creds.exe`` helper.

Every field except the tokens goes into the credential target name, the
tokens go into the secret. The credential manager limits secret size, so long
secrets are split over several targets named ``<target>--<block>-<count>``.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from xplat.auth.errors import StorageReadError, StorageWriteError
from xplat.auth.internal.token_cache._base import CREDSTORE_TARGET_PREFIX, HelperTokenStorage
from xplat.auth.internal.token_cache._credstore_parser import TargetRecord, parse_credstore_output
from xplat.auth.internal.token_cache._encoding import decode_object, encode_object
from xplat.auth.internal.token_cache._entry import Entry, EntryValue, deserialize_entry, without_secrets
from xplat.auth.internal.token_cache._process import ProcessRunner, make_runner

log = logging.getLogger(__name__)

CREDS_EXECUTABLE = "creds.exe"

MAX_CREDENTIAL_CHARS = 2048

_BLOCK_RE = re.compile(r"^(?P<target>.*)--(?P<block>\d+)-(?P<count>\d+)$")


def split_credential(target_name: str, credential: str) -> List[Tuple[str, str]]:
    """Split ``credential`` into (target name, chunk) pairs that fit the credential manager."""
    if len(credential) <= MAX_CREDENTIAL_CHARS:
        return [(target_name, credential)]
    count = -(-len(credential) // MAX_CREDENTIAL_CHARS)
    return [
        (f"{target_name}--{i}-{count}", credential[i * MAX_CREDENTIAL_CHARS : (i + 1) * MAX_CREDENTIAL_CHARS])
        for i in range(count)
    ]


def _block_position(target_name: str, credential: str) -> Optional[Tuple[str, int, int]]:
    """Return (target, block, count) if ``target_name`` names a block written by ``split_credential``.

    Every block but the last holds exactly MAX_CREDENTIAL_CHARS characters. A name
    that only looks like a block, such as ``userId:foo--0-2`` with a short secret,
    is an ordinary target. A short secret under a name ending in ``--<n-1>-<n>``
    still reads as a last block.
    """
    match = _BLOCK_RE.match(target_name)
    if match is None:
        return None
    block, count = int(match.group("block")), int(match.group("count"))
    if count < 2 or block >= count or not credential:
        return None
    if block < count - 1 and len(credential) != MAX_CREDENTIAL_CHARS:
        return None
    return match.group("target"), block, count


def join_credentials(pairs: Iterable[Tuple[str, str]]) -> Iterator[Tuple[str, str]]:
    """Re-assemble split credentials. Targets with missing blocks are dropped."""
    pending: Dict[str, Dict[int, str]] = {}
    counts: Dict[str, int] = {}
    for target_name, credential in pairs:
        position = _block_position(target_name, credential)
        if position is None:
            yield target_name, credential
            continue
        target, block, count = position
        blocks = pending.setdefault(target, {})
        blocks[block] = credential
        counts[target] = count
        if len(blocks) == counts[target]:
            yield target, "".join(blocks[i] for i in sorted(blocks))
            del pending[target]
    for target in pending:
        log.debug("Dropping credential with %d of %d blocks", len(pending[target]), counts[target])


class CredStoreTokenStorage(HelperTokenStorage):
    """Token storage in the Windows credential manager."""

    def __init__(
        self,
        prefix: str = CREDSTORE_TARGET_PREFIX,
        executable: str = CREDS_EXECUTABLE,
        runner: Optional[ProcessRunner] = None,
    ) -> None:
        super().__init__(runner or make_runner())
        self.prefix = prefix
        self.executable = executable

    def _target_name(self, entry: Entry) -> str:
        return encode_object(without_secrets(entry))

    def _credential(self, entry: Entry) -> str:
        return encode_object({"a": entry.get("accessToken"), "r": entry.get("refreshToken")})

    def _parts(self, entry: Entry) -> List[Tuple[str, str]]:
        return split_credential(self._target_name(entry), self._credential(entry))

    def _item_names(self, entry: Entry) -> List[str]:
        return [name for name, _ in self._parts(entry)]

    def _read_entry(self, target_name: str, secret: str) -> Entry:
        fields = decode_object(target_name)
        tokens = decode_object(secret)
        if tokens.get("a"):
            fields["accessToken"] = tokens["a"]
        if tokens.get("r"):
            fields["refreshToken"] = tokens["r"]
        return deserialize_entry(fields)

    def stored_form(self, entry: Mapping[str, EntryValue]) -> Entry:
        return self._read_entry(self._target_name(entry), self._credential(entry))

    def _secrets(self, records: Iterable[TargetRecord]) -> Iterator[Tuple[str, str]]:
        for record in records:
            if record.credential is None:
                log.debug("Skipping credential listed without its secret")
                continue
            try:
                secret = bytes.fromhex(record.credential).decode("utf-8")
            except ValueError:
                log.debug("Skipping credential with a secret that is not hex encoded UTF-8")
                continue
            yield record.target_name[len(self.prefix) :], secret

    def load_entries(self) -> List[Entry]:
        output = self._run([self.executable, "-s", "-g", "-t", f"{self.prefix}*"], StorageReadError)
        records = parse_credstore_output(output.splitlines(), self.prefix)
        return [self._read_entry(name, secret) for name, secret in join_credentials(self._secrets(records))]

    def _write_entry(self, entry: Entry) -> None:
        for name, chunk in self._parts(entry):
            self._run(
                [self.executable, "-a", "-t", f"{self.prefix}{name}", "-p", chunk.encode("utf-8").hex()],
                StorageWriteError,
            )

    def _delete_item(self, name: str) -> None:
        self._run([self.executable, "-d", "-t", f"{self.prefix}{name}", "-g"], StorageWriteError)
