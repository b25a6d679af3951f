"""Token storage in the macOS keychain through the ``security`` tool.

Each entry is one generic password item: the account is the encoded entry
without its tokens, the password is the encoded full entry.
"""

from __future__ import annotations

import logging
from typing import List, Mapping, Optional

from xplat.auth.errors import HelperProcessError, StorageReadError, StorageWriteError
from xplat.auth.internal.token_cache._base import KEYCHAIN_DESCRIPTION, SERVICE_NAME, HelperTokenStorage
from xplat.auth.internal.token_cache._encoding import decode_object, encode_object
from xplat.auth.internal.token_cache._entry import Entry, EntryValue, deserialize_entry, without_secrets
from xplat.auth.internal.token_cache._keychain_parser import parse_keychain_output
from xplat.auth.internal.token_cache._process import ProcessRunner, make_runner

log = logging.getLogger(__name__)

SECURITY_EXECUTABLE = "security"

# Exit status of `security` when the requested item does not exist (errSecItemNotFound)
ITEM_NOT_FOUND_STATUS = 44

UNLOCK_HINT = 'security -v unlock-keychain -p "$password" "$HOME/Library/Keychains/login.keychain"'


class KeychainTokenStorage(HelperTokenStorage):
    """Token storage in the default macOS keychain."""

    def __init__(
        self,
        service_name: str = SERVICE_NAME,
        description: str = KEYCHAIN_DESCRIPTION,
        runner: Optional[ProcessRunner] = None,
        executable: str = SECURITY_EXECUTABLE,
    ) -> None:
        super().__init__(runner or make_runner())
        self.service_name = service_name
        self.description = description
        self.executable = executable

    def _account(self, entry: Entry) -> str:
        return encode_object(without_secrets(entry))

    def _item_names(self, entry: Entry) -> List[str]:
        return [self._account(entry)]

    def stored_form(self, entry: Mapping[str, EntryValue]) -> Entry:
        return deserialize_entry(decode_object(encode_object(entry)))

    def load_entries(self) -> List[Entry]:
        output = self._run([self.executable, "dump-keychain"], StorageReadError)
        entries = []
        for item in parse_keychain_output(output.splitlines()):
            if item.desc != self.description or item.svce != self.service_name:
                # Not ours
                continue
            password = self._run(
                [self.executable, "find-generic-password", "-a", item.acct, "-s", self.service_name, "-w"],
                StorageReadError,
            )
            entries.append(deserialize_entry(decode_object(password.rstrip("\r\n"))))
        return entries

    def _write_entry(self, entry: Entry) -> None:
        args = [
            self.executable,
            "add-generic-password",
            "-a",
            self._account(entry),
            "-s",
            self.service_name,
            "-D",
            self.description,
            "-w",
            encode_object(entry),
            "-U",
        ]
        try:
            self.runner(args)
        except HelperProcessError as e:
            log.error("Could not add token to keychain: %s", e)
            log.warning(
                "It seems that the keychain is locked. Please unlock it by executing this command: %s",
                UNLOCK_HINT,
            )
            raise StorageWriteError(f"Could not add password to keychain: {e}") from e

    def _delete_item(self, name: str) -> None:
        try:
            self.runner([self.executable, "delete-generic-password", "-a", name, "-s", self.service_name])
        except HelperProcessError as e:
            if e.returncode == ITEM_NOT_FOUND_STATUS:
                log.debug("Keychain item already gone")
                return
            raise StorageWriteError(f"Could not remove password from keychain: {e}") from e
