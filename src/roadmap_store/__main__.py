"""Entry point for `python -m roadmap_store` and the `roadmap-store` CLI script."""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from roadmap_store import (
    ActionStatus,
    LockTimeout,
    RoadmapError,
    RoadmapStore,
    StoreSettings,
    append_features,
    get_action,
    get_feature,
    roadmap_progress,
    update_action,
)
from roadmap_store.operations import require_document

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_BUSY = 3


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="roadmap-store", description="Read and update a project roadmap")
    parser.add_argument(
        "--directory",
        type=Path,
        default=Path.cwd(),
        help="Project directory holding the roadmap (default: cwd)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    read = commands.add_parser("read", help="Print the roadmap, one feature, or one action as JSON")
    target = read.add_mutually_exclusive_group()
    target.add_argument("--feature", dest="feature_number", default=None, help='Feature number ("1")')
    target.add_argument("--action", dest="action_number", default=None, help='Action number ("1.01")')

    append = commands.add_parser("append", help="Create the roadmap or merge new features/actions into it")
    append.add_argument("--input", type=Path, required=True, help='JSON file: {"features": [...]} or a list of features')
    append.add_argument("--feature", dest="label", default=None, help="Roadmap label (required when creating)")
    append.add_argument("--spec-file", type=Path, default=None, help="Spec text stored with a new roadmap")

    update = commands.add_parser("update", help="Update an action's description and/or status")
    update.add_argument("action_number", help='Action number ("1.01")')
    update.add_argument("--description", default=None, help="New description (full overwrite)")
    update.add_argument("--status", default=None, choices=[status.value for status in ActionStatus])

    commands.add_parser("archive", help="Archive the current roadmap")
    return parser.parse_args(argv)


def load_features(path: Path) -> list[dict[str, Any]]:
    if not path.is_file():
        raise FileNotFoundError(f"Input file does not exist: {path}")
    payload = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("features")
    if not isinstance(payload, list):
        raise ValueError('Input must be a list of features or an object with a "features" list')
    return payload


def load_env_file(directory: Path) -> None:
    """Load `<directory>/.env` if present; variables already set win."""
    env_path = directory / ".env"
    if env_path.is_file():
        load_dotenv(env_path)


def run(args: argparse.Namespace) -> Any:
    load_env_file(args.directory)
    store = RoadmapStore(args.directory, settings=StoreSettings.from_env())

    if args.command == "read":
        if args.action_number:
            view = get_action(store, args.action_number)
            return {
                "action": args.action_number,
                "description": view.description,
                "status": view.status.value,
                "feature": {"number": view.feature.number, "title": view.feature.title},
            }
        if args.feature_number:
            return get_feature(store, args.feature_number).model_dump(mode="json")
        document = require_document(store)
        progress = roadmap_progress(document.roadmap)
        return {
            "feature": document.feature,
            "spec": document.spec,
            "roadmap": document.roadmap.model_dump(mode="json"),
            "progress": {"total": progress.total, "by_status": progress.by_status},
        }

    if args.command == "append":
        spec_text = args.spec_file.read_text(encoding="utf-8") if args.spec_file is not None else None
        summary = append_features(store, load_features(args.input), feature=args.label, spec=spec_text)
        return asdict(summary)

    if args.command == "update":
        result = update_action(store, args.action_number, description=args.description, status=args.status)
        payload = asdict(result)
        payload["old_status"] = result.old_status.value
        payload["new_status"] = result.new_status.value
        return payload

    return {"archived": store.archive()}


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        output = run(args)
    except LockTimeout as exc:
        logging.error("%s", exc)
        return EXIT_BUSY
    except (RoadmapError, OSError, ValueError) as exc:
        logging.error("%s", exc)
        return EXIT_ERROR

    print(json.dumps(output, indent=2, default=str))
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
