import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from xplat.auth import DEFAULT_CACHE_PATH, DEFAULT_CONFIG_FILE_PATH
from xplat.auth.internal.token_cache import STORAGE_MODES
from xplat.auth.internal.token_cache._base import CREDSTORE_TARGET_PREFIX, KEYCHAIN_DESCRIPTION, SERVICE_NAME
from xplat.auth.internal.token_cache._credstore import CREDS_EXECUTABLE
from xplat.auth.internal.token_cache._keyring import DEFAULT_USERNAME
from xplat.auth.internal.token_cache._process import DEFAULT_TIMEOUT_SECONDS

CONFIG_SECTION = "tokenCache"

# Environment variable to CacheConfig field
ENV_OVERRIDES = {
    "XPLAT_TOKEN_CACHE": "mode",
    "XPLAT_TOKEN_CACHE_PATH": "path",
    "XPLAT_CREDS_EXE": "creds_executable",
    "XPLAT_HELPER_TIMEOUT": "timeout",
}


@dataclass
class CacheConfig:
    mode: str = "auto"
    path: Path = field(default_factory=lambda: DEFAULT_CACHE_PATH)
    target_prefix: str = CREDSTORE_TARGET_PREFIX
    service_name: str = SERVICE_NAME
    description: str = KEYCHAIN_DESCRIPTION
    keyring_username: str = DEFAULT_USERNAME
    creds_executable: str = CREDS_EXECUTABLE
    timeout: float = DEFAULT_TIMEOUT_SECONDS


def _coerce(name: str, value) -> object:
    if name == "path":
        return Path(str(value)).expanduser()
    if name == "timeout":
        try:
            timeout = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"Helper timeout must be a number, got {value!r}") from None
        if timeout <= 0:
            raise ValueError(f"Helper timeout must be positive, got {value!r}")
        return timeout
    return str(value)


def load_cache_config(
    path: Union[str, os.PathLike] = DEFAULT_CONFIG_FILE_PATH, env: Optional[dict] = None
) -> CacheConfig:
    """Load token cache settings.

    Values come from the ``tokenCache`` object of the JSON config file, then the
    XPLAT_* environment variables. A missing file gives the defaults.
    """
    env = os.environ if env is None else env
    config = CacheConfig()

    expanded = Path(path).expanduser()
    if expanded.exists():
        data = json.loads(expanded.read_text())
        section = data.get(CONFIG_SECTION, {}) if isinstance(data, dict) else {}
        for name in CacheConfig.__dataclass_fields__:
            if name in section:
                setattr(config, name, _coerce(name, section[name]))

    for var, name in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            setattr(config, name, _coerce(name, value))

    if config.mode not in STORAGE_MODES:
        raise ValueError(f"Unknown token cache mode: {config.mode!r}")

    return config
