"""Invocation of external credential helpers (``security``, ``creds.exe``)."""

from __future__ import annotations

import logging
import subprocess
from typing import Callable, Sequence

from xplat.auth.errors import HelperProcessError

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0

# Runs a helper with the given argv and returns its stdout, raising HelperProcessError on failure
ProcessRunner = Callable[[Sequence[str]], str]


def run_process(args: Sequence[str], timeout: float = DEFAULT_TIMEOUT_SECONDS) -> str:
    """Run ``args`` and return stdout decoded as UTF-8.

    Raises:
        HelperProcessError: If the executable is missing, does not finish within
            ``timeout`` seconds or exits non-zero. Output of a failed run is discarded.
    """
    log.debug("Running credential helper %s", args[0])
    try:
        result = subprocess.run(
            list(args),
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise HelperProcessError(f"{args[0]} did not finish within {timeout} seconds", args=args) from e
    except OSError as e:
        raise HelperProcessError(f"Could not run {args[0]}: {e}", args=args) from e

    if result.returncode != 0:
        raise HelperProcessError(
            f"{args[0]} exited with status {result.returncode}: {result.stderr.strip()}",
            args=args,
            returncode=result.returncode,
            stderr=result.stderr,
        )
    return result.stdout


def make_runner(timeout: float = DEFAULT_TIMEOUT_SECONDS) -> ProcessRunner:
    def runner(args: Sequence[str]) -> str:
        return run_process(args, timeout=timeout)

    return runner
