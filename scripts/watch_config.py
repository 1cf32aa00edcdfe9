#!/usr/bin/env python3
"""Watch a config source and print every reconciliation action.

Reads ``CONFWATCH_*`` environment variables (see ``WatcherConfig.from_env``);
command-line flags override them. Items are identified by a top-level key
(``--id-field``, default ``id``) and validated against a JSON schema file
(``--schema``; any object with that key is accepted when omitted).

Examples::

    scripts/watch_config.py --path ./conf.d
    scripts/watch_config.py --configmap my-config --namespace apps --json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

import yaml  # noqa: E402

from pyconfwatch import (  # noqa: E402
    Action,
    ConfigWatcher,
    ConfWatchConfigError,
    ConfWatchError,
    IdentityConflict,
    RemoveAction,
    WatcherConfig,
)

_LOG = logging.getLogger("watch_config")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Print add/update/moved/remove actions for a config source.",
    )
    parser.add_argument(
        "--path",
        action="append",
        default=None,
        help="File or directory to watch (repeatable). Selects the file source.",
    )
    parser.add_argument(
        "--pattern",
        action="append",
        default=None,
        help="Glob for files inside watched directories (repeatable).",
    )
    parser.add_argument(
        "--configmap",
        default=None,
        help="ConfigMap name. Selects the configmap source.",
    )
    parser.add_argument(
        "--namespace",
        default=None,
        help="Namespace of the ConfigMap.",
    )
    parser.add_argument(
        "--schema",
        type=Path,
        default=None,
        help="JSON or YAML file holding the JSON schema every item must satisfy.",
    )
    parser.add_argument(
        "--id-field",
        default="id",
        help="Top-level item key used as identity.",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print one JSON object per action instead of a summary line.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _build_config(args: argparse.Namespace) -> WatcherConfig:
    overrides: dict[str, Any] = {}
    if args.path:
        overrides["source"] = "file"
        overrides["paths"] = tuple(args.path)
    if args.pattern:
        overrides["patterns"] = tuple(args.pattern)
    if args.configmap:
        overrides["source"] = "configmap"
        overrides["configmap_name"] = args.configmap
    if args.namespace:
        overrides["namespace"] = args.namespace
    return WatcherConfig.from_env(**overrides)


def _load_schema(path: Path | None, id_field: str) -> dict[str, Any]:
    if path is None:
        return {
            "type": "object",
            "required": [id_field],
            "properties": {id_field: {"type": "string", "minLength": 1}},
        }
    schema = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(schema, dict):
        raise ConfWatchConfigError(f"Schema file {path} does not contain an object")
    return schema


def _print_action(action: Action[Any], as_json: bool) -> None:
    if isinstance(action, RemoveAction):
        record: dict[str, Any] = {"action": str(action.name), "id": action.id}
    else:
        record = {
            "action": str(action.name),
            "id": action.id,
            "filename": action.config_set.filename,
            "item": action.config_set.item,
        }
    if as_json:
        print(json.dumps(record, ensure_ascii=False, sort_keys=True, default=str), flush=True)
    elif "filename" in record:
        print(f"[{record['action']:>6}] {record['id']} <- {record['filename']}", flush=True)
    else:
        print(f"[{record['action']:>6}] {record['id']}", flush=True)


def _print_error(error: ConfWatchError) -> None:
    print(f"[ error] {error}", file=sys.stderr, flush=True)


def _print_conflict(conflict: IdentityConflict) -> None:
    kind = "redefined" if conflict.value_changed else "moved"
    print(
        f"[ claim] {conflict.id} {kind}: {conflict.previous_filename} -> {conflict.filename}",
        file=sys.stderr,
        flush=True,
    )


async def _run(args: argparse.Namespace, config: WatcherConfig, schema: dict[str, Any]) -> int:
    id_field = args.id_field

    def identity(item: dict[str, Any]) -> str:
        return str(item[id_field])

    watcher: ConfigWatcher[dict[str, Any]] = ConfigWatcher.from_config(config, schema, identity)
    watcher.subscribe(lambda action: _print_action(action, args.json))
    watcher.subscribe_errors(_print_error)
    watcher.subscribe_conflicts(_print_conflict)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop_event.set)
        except NotImplementedError:  # pragma: no cover - Windows
            pass

    async with watcher:
        _LOG.info("Watching %s source; %d item(s) loaded", config.source, len(watcher.current_state()))
        try:
            if args.duration > 0:
                await asyncio.wait_for(stop_event.wait(), timeout=args.duration)
            else:
                await stop_event.wait()
        except TimeoutError:
            print(f"[watch] Reached --duration={args.duration}s, stopping.")
    return 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = _build_config(args)
        schema = _load_schema(args.schema, args.id_field)
    except (ConfWatchConfigError, OSError, yaml.YAMLError) as exc:
        print(f"[watch] Invalid configuration: {exc}", file=sys.stderr)
        return 2

    try:
        return asyncio.run(_run(args, config, schema))
    except ConfWatchError as exc:  # pragma: no cover - environment interaction
        print(f"[watch] Watcher failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(_main())
