from __future__ import annotations

import logging
from typing import Optional

from xplat.auth.errors import StorageReadError, StorageWriteError
from xplat.auth.internal.token_cache._base import SERVICE_NAME, DocumentTokenStorage

log = logging.getLogger(__name__)

DEFAULT_USERNAME = "tokens"

_KEYRING_MISSING = object()  # sentinel: import attempted but unavailable


class KeyringTokenStorage(DocumentTokenStorage):
    """Token storage kept as one secret in the system keyring."""

    is_secure = True

    def __init__(self, service_name: str = SERVICE_NAME, username: str = DEFAULT_USERNAME) -> None:
        self.service_name = service_name
        self.username = username
        self._keyring_module = None  # not yet resolved

    @property
    def _location(self) -> str:
        return f"keyring {self.service_name}/{self.username}"

    def _keyring(self):
        """Return the keyring module if usable, else None. Result is cached."""
        if self._keyring_module is _KEYRING_MISSING:
            return None
        if self._keyring_module is not None:
            return self._keyring_module
        try:
            import keyring

            backend = keyring.get_keyring()
            if "fail" in type(backend).__name__.lower():
                raise RuntimeError("unusable keyring backend")
            self._keyring_module = keyring
        except Exception:
            log.debug("No usable keyring backend", exc_info=True)
            self._keyring_module = _KEYRING_MISSING
            return None
        return self._keyring_module

    def is_available(self) -> bool:
        return self._keyring() is not None

    def _read_document(self) -> Optional[str]:
        kr = self._keyring()
        if kr is None:
            raise StorageReadError("No usable keyring backend available")
        try:
            return kr.get_password(self.service_name, self.username)
        except Exception as e:
            raise StorageReadError(f"Could not read token cache from keyring: {e}") from e

    def _write_document(self, document: str) -> None:
        kr = self._keyring()
        if kr is None:
            raise StorageWriteError("No usable keyring backend available")
        try:
            kr.set_password(self.service_name, self.username, document)
        except Exception as e:
            raise StorageWriteError(f"Could not write token cache to keyring: {e}") from e

    def clear(self) -> None:
        kr = self._keyring()
        if kr is None:
            raise StorageWriteError("No usable keyring backend available")
        try:
            if kr.get_password(self.service_name, self.username) is None:
                return
            kr.delete_password(self.service_name, self.username)
            log.debug("Cleared token cache from %s", self._location)
        except Exception as e:
            raise StorageWriteError(f"Could not clear token cache from keyring: {e}") from e
