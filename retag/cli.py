"""Command line entry point for influx-retag."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import List, Optional

from retag.config import RetagSettings, load_settings
from retag.errors import ConfigError, MigrationError
from retag.logging_setup import setup_logging
from retag.migrate import MigrationReport, TagRenamer
from retag.tsdb.base import StoreClient
from retag.tsdb.influx import DryRunStoreClient, InfluxStoreClient

log = logging.getLogger("retag")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="influx-retag",
        description="Copy every point carrying a tag value to the same point with a new tag value.",
    )
    parser.add_argument("--host", help="Host to connect to, e.g. http://localhost:8086")
    parser.add_argument("--token", help="Access token")
    parser.add_argument("-b", "--bucket", help="Bucket (database) the measurement is in")
    parser.add_argument("-m", "--measurement", required=True, help="The measurement to migrate")
    parser.add_argument("--tag", required=True, help="The tag whose value is renamed")
    parser.add_argument("-o", "--old-name", required=True, help="The old tag value")
    parser.add_argument("-n", "--new-name", required=True, help="The new tag value")
    parser.add_argument("--batch-size", type=int, help="Number of writes to batch (currently ignored)")
    parser.add_argument("--config", dest="config_path", type=Path, help="Path to a YAML settings file")
    parser.add_argument("--timeout", type=float, help="HTTP timeout in seconds")
    parser.add_argument("--log-level", help="Logging level (default INFO)")
    parser.add_argument("--log-file", help="Also log to this file")
    parser.add_argument("--dry-run", action="store_true", default=None, help="Read and render, but do not write")
    return parser


def _overrides(args: argparse.Namespace) -> dict:
    return {
        "influx": {"host": args.host, "token": args.token, "bucket": args.bucket, "timeout_s": args.timeout},
        "logging": {"level": args.log_level, "file": args.log_file},
        "migration": {"batch_size": args.batch_size, "dry_run": args.dry_run},
    }


async def run_migration(settings: RetagSettings, args: argparse.Namespace, client: Optional[StoreClient] = None) -> MigrationReport:
    influx = None
    if client is None:
        influx = InfluxStoreClient(
            settings.influx.host,
            settings.influx.bucket,
            token=settings.influx.token,
            timeout=settings.influx.timeout_s,
        )
        client = influx
    if settings.dry_run:
        client = DryRunStoreClient(client)
    try:
        renamer = TagRenamer(client, args.measurement, dry_run=settings.dry_run)
        return await renamer.rename_tag(args.tag, args.old_name, args.new_name)
    finally:
        if influx is not None:
            influx.close()


def main(argv: Optional[List[str]] = None, client: Optional[StoreClient] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.config_path, _overrides(args))
    except ConfigError as exc:
        setup_logging()
        log.error("Invalid configuration: %s", exc)
        return 1

    setup_logging(settings.logging.level, Path(settings.logging.file) if settings.logging.file else None)
    log.info(
        "Renaming %s=%r to %r in %s (bucket %s at %s)%s",
        args.tag,
        args.old_name,
        args.new_name,
        args.measurement,
        settings.influx.bucket,
        settings.influx.host,
        " [dry run]" if settings.dry_run else "",
    )
    log.debug("batch_size=%d is accepted but writes are not batched", settings.batch_size)

    try:
        report = asyncio.run(run_migration(settings, args, client=client))
    except MigrationError as exc:
        log.error("Migration failed: %s", exc)
        return 1

    log.info(
        "Done: %d rows of %s rewritten with %s=%r%s",
        report.rows_written,
        report.measurement,
        report.tag,
        report.new_value,
        " (dry run, nothing written)" if report.dry_run else "",
    )
    return 0
