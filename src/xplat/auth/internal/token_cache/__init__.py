"""Token storage backends for cross-process token persistence.

All keyring imports are lazy so the module works when keyring is not installed.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Optional

from xplat.auth.internal.token_cache._base import DocumentTokenStorage, HelperTokenStorage, TokenStorage, merge_entries
from xplat.auth.internal.token_cache._credstore import CredStoreTokenStorage
from xplat.auth.internal.token_cache._encoding import decode_object, encode_object, escape, unescape
from xplat.auth.internal.token_cache._entry import Entry, EntryValue
from xplat.auth.internal.token_cache._file import FileTokenStorage
from xplat.auth.internal.token_cache._keychain import KeychainTokenStorage
from xplat.auth.internal.token_cache._keyring import KeyringTokenStorage
from xplat.auth.internal.token_cache._lookup import find
from xplat.auth.internal.token_cache._process import make_runner

if TYPE_CHECKING:
    from xplat.auth.config import CacheConfig

log = logging.getLogger(__name__)

STORAGE_MODES = ("auto", "file", "keyring", "keychain", "credstore")


def make_storage(mode: Optional[str] = None, config: Optional[CacheConfig] = None) -> TokenStorage:
    """Return the TokenStorage for ``mode``, or for ``config.mode`` when no mode is given.

    Modes:
      auto      – credential manager on Windows, keychain on macOS,
                  otherwise keyring if available and file as a last resort (default)
      file      – JSON file at config.path
      keyring   – system keyring through the keyring package
      keychain  – macOS keychain through the security tool
      credstore – Windows credential manager through creds.exe
    """
    if config is None:
        from xplat.auth.config import CacheConfig

        config = CacheConfig()
    mode = mode or config.mode

    if mode not in STORAGE_MODES:
        raise ValueError(f"Unknown token cache mode: {mode!r}. Choose one of {', '.join(STORAGE_MODES)}")

    if mode == "auto":
        mode = _auto_mode(config)
        log.debug("Selected %s token storage", mode)

    if mode == "file":
        return FileTokenStorage(config.path)
    if mode == "keyring":
        return KeyringTokenStorage(config.service_name, config.keyring_username)
    if mode == "keychain":
        return KeychainTokenStorage(config.service_name, config.description, runner=make_runner(config.timeout))
    return CredStoreTokenStorage(config.target_prefix, config.creds_executable, runner=make_runner(config.timeout))


def _auto_mode(config: CacheConfig) -> str:
    if sys.platform == "win32":
        return "credstore"
    if sys.platform == "darwin":
        return "keychain"
    if KeyringTokenStorage(config.service_name, config.keyring_username).is_available():
        return "keyring"
    return "file"


__all__ = [
    "Entry",
    "EntryValue",
    "TokenStorage",
    "DocumentTokenStorage",
    "HelperTokenStorage",
    "FileTokenStorage",
    "KeyringTokenStorage",
    "KeychainTokenStorage",
    "CredStoreTokenStorage",
    "STORAGE_MODES",
    "decode_object",
    "encode_object",
    "escape",
    "unescape",
    "find",
    "make_storage",
    "merge_entries",
]
