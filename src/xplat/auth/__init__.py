import logging
import os
from importlib.metadata import PackageNotFoundError, version
from logging import NullHandler
from pathlib import Path

logging.getLogger(__name__).addHandler(NullHandler())

try:
    __version__ = version("xplat-auth")
except PackageNotFoundError:
    __version__ = "0.0.0"

DEFAULT_CONFIG_FILE_PATH = (
    Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")) / "xplat-auth" / "config.json"
)

DEFAULT_CACHE_PATH = (
    Path(os.environ.get("XDG_CACHE_HOME", Path.home() / ".cache")) / "xplat-auth" / "accessTokens.json"
)
