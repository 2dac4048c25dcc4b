"""Assemble a view model from fixture-backed records and print it as JSON."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Iterable

from repositories.fixtures import discover_fixture_paths
from repositories.realtime_db import FixtureDatabaseClient
from services.reconciliation.service import ViewModelService
from shared.config.settings import get_settings
from shared.http.errors import ProblemDetailsException
from shared.observability.logger import configure_logging

VIEW_KINDS = ("referral", "visit", "prescriptions")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Read a referral, appointment or specialist from the bundled database "
            "fixtures and print the reconciled view model."
        )
    )
    parser.add_argument(
        "kind",
        choices=VIEW_KINDS,
        help="View model to build: referral details, visit overview or a specialist's prescriptions.",
    )
    parser.add_argument(
        "record_id",
        help="Referral id, appointment id or specialist id, matching the kind.",
    )
    parser.add_argument(
        "--viewer-role",
        dest="viewer_role",
        default=None,
        help="Role of the viewer for referral details (e.g. 'specialist').",
    )
    parser.add_argument(
        "--viewer-id",
        dest="viewer_id",
        default=None,
        help="User id of the viewer for referral details.",
    )
    parser.add_argument(
        "--fixtures-dir",
        dest="fixtures_dir",
        type=Path,
        default=None,
        help="Directory of JSON fixtures to load instead of the bundled set.",
    )
    parser.add_argument(
        "--indent",
        type=int,
        default=2,
        help="Indentation used for the JSON output (default: 2).",
    )
    return parser


async def _build(service: ViewModelService, args: argparse.Namespace) -> Any:
    if args.kind == "referral":
        view = await service.build_referral_view(
            args.record_id, viewer_id=args.viewer_id, viewer_role=args.viewer_role
        )
        return view.model_dump(mode="json", by_alias=True)
    if args.kind == "visit":
        view = await service.build_visit_view(args.record_id)
        return view.model_dump(mode="json", by_alias=True)
    prescriptions = await service.list_specialist_prescriptions(args.record_id)
    return [item.model_dump(mode="json", by_alias=True) for item in prescriptions]


async def _run_async(args: argparse.Namespace) -> int:
    if args.fixtures_dir is not None and not args.fixtures_dir.is_dir():
        print(f"Fixture directory '{args.fixtures_dir}' does not exist.", file=sys.stderr)
        return 2

    client = FixtureDatabaseClient(
        fixture_paths=discover_fixture_paths(args.fixtures_dir)
    )
    service = ViewModelService(client)
    try:
        payload = await _build(service, args)
    except ProblemDetailsException as exc:
        print(exc.detail, file=sys.stderr)
        return 1

    print(json.dumps(payload, indent=args.indent or None))
    return 0


def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_parser()
    parsed_args = parser.parse_args(None if argv is None else list(argv))
    logging_settings = get_settings().logging
    configure_logging(
        service_name="build-view-model",
        level=logging_settings.level,
        json_logs=logging_settings.json_logs,
        stream=sys.stderr,
    )
    try:
        return asyncio.run(_run_async(parsed_args))
    except KeyboardInterrupt:  # pragma: no cover - manual cancellation guard
        return 130


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
