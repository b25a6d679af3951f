from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from xplat.auth import DEFAULT_CACHE_PATH
from xplat.auth.errors import StorageReadError, StorageWriteError
from xplat.auth.internal.token_cache._base import DocumentTokenStorage

log = logging.getLogger(__name__)

# Owner read/write only
FILE_MODE = 0o600


class FileTokenStorage(DocumentTokenStorage):
    """Token storage backed by a JSON file on disk."""

    def __init__(self, path: Union[str, os.PathLike] = DEFAULT_CACHE_PATH) -> None:
        self.path = Path(path)

    @property
    def _location(self) -> str:
        return str(self.path)

    def _read_document(self) -> Optional[str]:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            log.debug("No token cache file at %s, starting empty", self.path)
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise StorageReadError(f"Could not read token cache file {self.path}: {e}") from e

    def _write_document(self, document: str) -> None:
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # mkstemp creates the file with mode 0600
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(document)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, FILE_MODE)
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageWriteError(f"Could not write token cache file {self.path}: {e}") from e
