"""Errors raised by the token cache and its storage backends."""

from __future__ import annotations

from typing import Optional, Sequence


class TokenCacheError(Exception):
    """Base class for token cache failures."""


class StorageReadError(TokenCacheError):
    """The persisted store exists but could not be read."""


class StorageWriteError(TokenCacheError):
    """The entry set could not be persisted. Nothing is retried."""


class HelperProcessError(TokenCacheError):
    """An external credential helper failed, timed out or could not be started."""

    def __init__(
        self,
        message: str,
        *,
        args: Sequence[str] = (),
        returncode: Optional[int] = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.command = list(args)
        self.returncode = returncode
        self.stderr = stderr
