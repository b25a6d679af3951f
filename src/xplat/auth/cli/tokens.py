from __future__ import annotations

import argparse
import json
from datetime import datetime
from pathlib import Path
from typing import Any

from xplat.auth import DEFAULT_CONFIG_FILE_PATH
from xplat.auth.config import load_cache_config
from xplat.auth.internal.token_cache import STORAGE_MODES, make_storage
from xplat.auth.internal.token_cache._entry import format_datetime, without_secrets
from xplat.auth.token_cache import TokenCache

COMMAND = "tokens"


def register_parser(subparsers: argparse._SubParsersAction) -> argparse.ArgumentParser:
    parser = subparsers.add_parser(
        COMMAND,
        help="List, find or clear cached access tokens",
    )
    parser.add_argument(
        "--token-cache",
        choices=STORAGE_MODES,
        default=None,
        help="Token storage to use (default: from config, else auto)",
    )
    parser.add_argument(
        "--cache-path",
        metavar="FILE",
        default=None,
        help="Token cache file for the 'file' storage",
    )
    parser.add_argument(
        "--config-file-path",
        default=DEFAULT_CONFIG_FILE_PATH,
        help=f"Config file path (default: {DEFAULT_CONFIG_FILE_PATH})",
    )
    subs = parser.add_subparsers(dest="tokens_action", metavar="ACTION", required=True)

    list_p = subs.add_parser("list", help="Print every cached entry without its tokens")
    list_p.set_defaults(action=_run_list)

    find_p = subs.add_parser("find", help="Print the cached entries matching all given fields")
    find_p.add_argument(
        "--field",
        dest="fields",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Field to match, may be repeated. userId is matched case-insensitively.",
    )
    find_p.set_defaults(action=_run_find)

    clear_p = subs.add_parser("clear", help="Remove every cached entry")
    clear_p.set_defaults(action=_run_clear)

    return parser


def _make_cache(parsed: argparse.Namespace) -> TokenCache:
    config = load_cache_config(parsed.config_file_path)
    if parsed.cache_path:
        config.path = Path(parsed.cache_path).expanduser()
    return TokenCache(make_storage(parsed.token_cache, config))


def _parse_fields(pairs: list[str]) -> dict:
    query = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected KEY=VALUE, got {pair!r}")
        query[key] = value
    return query


def _json_default(value: Any) -> str:
    if isinstance(value, datetime):
        return format_datetime(value)
    return str(value)


def _print_entries(entries: list) -> None:
    print(json.dumps([without_secrets(entry) for entry in entries], indent=2, default=_json_default))


def _run_list(parsed: argparse.Namespace, cache: TokenCache) -> int:
    _print_entries(cache.load_entries())
    return 0


def _run_find(parsed: argparse.Namespace, cache: TokenCache) -> int:
    _print_entries(cache.find(_parse_fields(parsed.fields)))
    return 0


def _run_clear(parsed: argparse.Namespace, cache: TokenCache) -> int:
    cache.clear()
    print("Token cache cleared")
    return 0


def run(parsed: argparse.Namespace) -> int:
    return parsed.action(parsed, _make_cache(parsed))
