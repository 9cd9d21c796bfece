"""Command-line entry point — runs every configured migration instance."""

from __future__ import annotations

import logging
import sys
from typing import Any

import click

from drive_transfer import __version__
from drive_transfer.config import instance_names
from drive_transfer.orchestration.runner import run_instances

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    show_default=True,
)
@click.option("--workers", type=click.IntRange(min=1), help="Items processed concurrently")
@click.option("--download-only", is_flag=True, help="Skip uploading to the destination")
@click.option("--cleanup", is_flag=True, help="Delete source files after a verified transfer")
@click.version_option(__version__, prog_name="drive-transfer")
def main(
    log_level: str,
    workers: int | None,
    download_only: bool,
    cleanup: bool,
) -> None:
    """Migrate Google Drive documents into a Microsoft Graph document library.

    Settings are read from DT_* environment variables; options given here
    override them for every instance. An instance that cannot be
    configured or whose run aborts is reported and the other instances
    still run. Exits with status 1 when the instance list is invalid or no
    instance completed.
    """
    logging.basicConfig(level=log_level.upper(), format=LOG_FORMAT, stream=sys.stdout)

    try:
        names = instance_names()
    except ValueError as exc:
        logger.error("[main] invalid configuration; detail:%s", exc)
        sys.exit(1)

    overrides: dict[str, Any] = {}
    if workers is not None:
        overrides["workers"] = workers
    if download_only:
        overrides["download_only"] = True
    if cleanup:
        overrides["cleanup"] = True

    outcomes = run_instances(names, overrides)

    for outcome in outcomes:
        prefix = f"{outcome.name}: " if outcome.name else ""
        if outcome.summary is None:
            click.echo(f"{prefix}{outcome.error}", err=True)
            continue
        summary = outcome.summary
        click.echo(
            f"{prefix}{summary.files_seen} files seen: {summary.transferred} transferred, "
            f"{summary.skipped} skipped, {summary.failed} failed, {summary.deleted} deleted"
        )

    if not any(outcome.ok for outcome in outcomes):
        sys.exit(1)


if __name__ == "__main__":
    main()
