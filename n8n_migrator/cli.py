"""Command line entry point: migrate exported workflows into a target n8n instance."""
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Sequence

from pydantic import ValidationError

from n8n_migrator.config import Settings, get_settings
from n8n_migrator.core.exceptions import AppError, IntegrationError
from n8n_migrator.core.logger import configure_logging, get_logger
from n8n_migrator.integrations.n8n import N8NClient
from n8n_migrator.schemas.migration import MigrationReport
from n8n_migrator.schemas.workflow import Workflow
from n8n_migrator.services.migration_runner import MigrationOptions, MigrationRunner, save_report
from n8n_migrator.services.workflow_loader import filter_by_tag, load_workflows

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="n8n-migrate",
        description="Migrate n8n workflows while preserving Execute Workflow references.",
    )
    parser.add_argument(
        "source",
        nargs="?",
        help="JSON export file or directory; omit to read from N8N_SOURCE_URL",
    )
    parser.add_argument("--tag", help="only migrate workflows carrying this tag")
    parser.add_argument("--dry-run", action="store_true", help="analyze and simulate without writing")
    parser.add_argument(
        "--skip-existing",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="skip workflows whose name already exists at the destination",
    )
    parser.add_argument("--stop-on-error", action="store_true", default=None)
    parser.add_argument(
        "--map-skipped",
        action="store_true",
        default=None,
        help="resolve references to skipped workflows through their existing destination id",
    )
    parser.add_argument(
        "--carry-tags",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="attach the source tags to created workflows",
    )
    parser.add_argument(
        "--activate",
        action="store_true",
        default=None,
        help="activate workflows that were active at the source once references are updated",
    )
    parser.add_argument("--allow-cycles", action="store_true", default=None, help="proceed despite dependency cycles")
    parser.add_argument("--no-verify", action="store_true", help="skip post-migration verification")
    parser.add_argument("--delay", type=float, default=None, help="seconds between create calls")
    parser.add_argument("--report-dir", type=Path, default=None)
    parser.add_argument("--no-report", action="store_true")
    parser.add_argument("--log-level", default=None, choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


async def _load_source(args: argparse.Namespace, settings: Settings) -> list[Workflow]:
    if args.source:
        workflows = load_workflows(args.source)
    else:
        async with N8NClient.source_from_settings(settings) as source:
            workflows = await source.list_workflows()
    return filter_by_tag(workflows, args.tag)


async def migrate(args: argparse.Namespace, settings: Settings) -> MigrationReport:
    workflows = await _load_source(args, settings)
    if not workflows:
        raise AppError("No workflows found to migrate")

    options = MigrationOptions.from_settings(
        settings,
        dry_run=args.dry_run,
        skip_existing=args.skip_existing,
        stop_on_error=args.stop_on_error,
        map_skipped=args.map_skipped,
        carry_tags=args.carry_tags,
        activate=args.activate,
        allow_cycles=args.allow_cycles,
        delay_seconds=args.delay,
        verify=not args.no_verify,
    )
    async with N8NClient.target_from_settings(settings) as target:
        runner = MigrationRunner(reader=target, writer=target, options=options)
        return await runner.run(workflows)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = get_settings()
    except ValidationError as exc:
        configure_logging("INFO")
        logger.error("Invalid configuration: %s", exc)
        return EXIT_USAGE
    configure_logging(args.log_level or settings.log_level)

    try:
        report = asyncio.run(migrate(args, settings))
    except IntegrationError as exc:
        logger.error("n8n API call failed: %s", exc)
        return EXIT_FAILED
    except AppError as exc:
        logger.error("%s", exc)
        return EXIT_USAGE

    if not args.no_report:
        save_report(report, args.report_dir or settings.report_dir)
    return EXIT_OK if report.succeeded else EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
