"""Helpers shared by the commands that run the engine."""

from __future__ import annotations

from typing import NoReturn

import click
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TransferSpeedColumn,
)

from ..cache import Cache
from ..config import Settings
from ..errors import (
    CacheBusyError,
    CacheNotFoundError,
    FailureKind,
    IndexCorruptError,
    IndexUnavailableError,
)
from ..orchestrator import Operation, RunReport, SyncOrchestrator
from ..scheduler import DownloadJobScheduler
from ..session import build_session
from ..spans import SpanLog

EXIT_PARTIAL_FAILURE = 1
"""Some items failed: re-running the same command retries them."""

EXIT_CANNOT_START = 3
"""The run could not start (no cache, busy cache, or unusable index)."""


def fail(message: str, code: int = EXIT_CANNOT_START) -> NoReturn:
    """Print the error message and exit with the given code."""
    click.echo(f"error: {message}", err=True)
    raise SystemExit(code)


def open_cache(settings: Settings) -> Cache:
    """Open the cache at the configured path or exit."""
    try:
        return Cache.open(settings.path)
    except CacheNotFoundError as exc:
        fail(f"{exc}; create one with `cratemirror --path DIR new --url URL`")


def run_operation(settings: Settings, operation: Operation, *, refresh_index: bool) -> None:
    """Run `sync` or `verify`, print the report, and exit accordingly."""
    cache = open_cache(settings)
    session = build_session(jobs=settings.jobs, contact=settings.contact)
    spans = SpanLog.for_operation(cache.logs_path, operation.value)
    with Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        transient=True,
    ) as progress:
        scheduler = DownloadJobScheduler(
            cache.inventory,
            session,
            jobs=settings.jobs,
            timeout=settings.timeout,
            progress=progress,
            spans=spans,
        )
        orchestrator = SyncOrchestrator(
            cache=cache,
            scheduler=scheduler,
            refresh_index=refresh_index,
        )
        try:
            report = orchestrator.run(operation)
        except (CacheBusyError, IndexCorruptError, IndexUnavailableError) as exc:
            fail(str(exc))

    print_report(report)
    if not report.succeeded:
        raise SystemExit(EXIT_PARTIAL_FAILURE)


def print_report(report: RunReport) -> None:
    if report.skipped_lines:
        click.echo(f"Skipped {report.skipped_lines} malformed index line(s).", err=True)

    if not report.work:
        click.echo(f"Nothing to download ({report.catalog_size} archive(s) checked).")
        return

    click.echo(
        f"Downloaded {len(report.committed)}/{len(report.work)} archive(s) "
        f"in {report.elapsed:.1f}s."
    )
    if not report.failed:
        return

    click.echo(f"{len(report.failed)} download(s) failed:", err=True)
    for outcome in sorted(report.failed, key=lambda o: o.item.entry.key):
        kind = outcome.kind.value if outcome.kind is not None else "unknown"
        click.echo(f"  {outcome.item.entry} [{kind}]: {outcome.error}", err=True)

    integrity = [
        outcome
        for outcome in report.failed
        if outcome.kind in (FailureKind.INTEGRITY, FailureKind.SIZE_MISMATCH)
    ]
    if integrity:
        click.secho(
            f"{len(integrity)} integrity failure(s): the upstream registry may be "
            "inconsistent or compromised.",
            err=True,
            fg="red",
            bold=True,
        )
