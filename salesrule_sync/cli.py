"""Command line runner for sales rule change events stored as JSON files."""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict, List, Optional

from . import actions
from .errors import ConfigurationError
from .settings import load_sync_settings


def _read_event(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except OSError as exc:
        raise ConfigurationError(f"Event file could not be read: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Event file is not valid JSON: {path} ({exc.msg})") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Event file must contain a JSON object: {path}")
    return data


def _run_action(args: argparse.Namespace, action) -> int:
    try:
        settings = load_sync_settings(args.settings)
        params = _read_event(args.event)
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if args.log_level:
        params["LOG_LEVEL"] = args.log_level
    response = action(params, base=settings)
    print(json.dumps(response, indent=2, default=str))
    return 0 if response.get("statusCode") == 200 else 1


def command_update(args: argparse.Namespace) -> int:
    return _run_action(args, actions.update_action)


def command_delete(args: argparse.Namespace) -> int:
    return _run_action(args, actions.delete_action)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("event", help="Path to the event JSON file")
    parser.add_argument("--settings", help="Path to a settings JSON file")
    parser.add_argument("--log-level", dest="log_level", help="Override the configured log level")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sales rule workbook synchronisation tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    update_parser = subparsers.add_parser("update", help="Upsert a sales rule on its current websites")
    _add_common_arguments(update_parser)
    update_parser.set_defaults(func=command_update)

    delete_parser = subparsers.add_parser(
        "delete",
        help="Remove a sales rule from the promotion workbooks of its removed websites",
    )
    _add_common_arguments(delete_parser)
    delete_parser.set_defaults(func=command_delete)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
