"""End-to-end `sync` and `verify` runs."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum

from filelock import Timeout

from .cache import Cache
from .errors import CacheBusyError, IndexCorruptError, IndexUnavailableError
from .reconcile import Policy, WorkItem, reconcile
from .scheduler import DownloadJobScheduler, JobOutcome

log = logging.getLogger("cratemirror/orchestrator")


class Operation(str, Enum):
    """The operation requested by the user."""

    SYNC = "sync"
    VERIFY = "verify"

    @property
    def policy(self) -> Policy:
        return Policy.SYNC if self is Operation.SYNC else Policy.VERIFY


class Phase(str, Enum):
    """Phases of a run, in order."""

    IDLE = "idle"
    REFRESHING_INDEX = "refreshing_index"
    RECONCILING = "reconciling"
    DOWNLOADING = "downloading"
    REPORTING = "reporting"
    SUCCEEDED = "succeeded"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"


@dataclass(frozen=True, kw_only=True)
class RunReport:
    """
    Summary of a completed run.

    Attributes:
        operation: whether this was a sync or a verify.
        phase: either SUCCEEDED or PARTIALLY_FAILED.
        catalog_size: number of entries in the index catalog.
        skipped_lines: number of malformed index lines skipped.
        work: items that needed downloading.
        committed: items that were downloaded and committed.
        failed: outcomes of the items that failed.
        elapsed: wall clock seconds spent in the run.
    """

    operation: Operation
    phase: Phase
    catalog_size: int
    skipped_lines: int = 0
    work: list[WorkItem] = field(default_factory=list)
    committed: list[WorkItem] = field(default_factory=list)
    failed: list[JobOutcome] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.phase is Phase.SUCCEEDED


class SyncOrchestrator:
    """
    Drive a `sync` or `verify` run over a cache.

    A run refreshes the index, reconciles the catalog against the archives
    on disk, downloads what is needed, and reports. Re-running after a
    partial failure is always safe: already committed archives are
    excluded by reconciliation and only the remaining work is retried.
    """

    def __init__(
        self,
        *,
        cache: Cache,
        scheduler: DownloadJobScheduler,
        refresh_index: bool = True,
    ) -> None:
        self.cache = cache
        self.scheduler = scheduler
        self.refresh_index = refresh_index
        self.phase = Phase.IDLE

    def sync(self) -> RunReport:
        """Fetch archives missing from the cache."""
        return self.run(Operation.SYNC)

    def verify(self) -> RunReport:
        """Rehash every archive and repair the missing or corrupt ones."""
        return self.run(Operation.VERIFY)

    def run(self, operation: Operation) -> RunReport:
        """
        Run the given operation while holding the cache lock.

        Raises:
            CacheBusyError: if another process holds the cache lock.
            IndexUnavailableError: if the upstream index cannot be reached.
            IndexCorruptError: if the index working copy is unusable.
        """
        lock = self.cache.lock()
        try:
            lock.acquire()
        except Timeout as exc:
            raise CacheBusyError(
                f"cache at {self.cache.path} is in use by another process"
            ) from exc
        try:
            return self._run(operation)
        finally:
            lock.release()

    def _run(self, operation: Operation) -> RunReport:
        t0 = time.monotonic()
        log.info("%s %s... start", operation.value, self.cache.path)

        self._transition(Phase.REFRESHING_INDEX)
        try:
            if self.refresh_index:
                self.cache.reader.refresh()
            catalog = self.cache.reader.catalog()
        except (IndexUnavailableError, IndexCorruptError) as exc:
            self._transition(Phase.FAILED)
            log.error("%s %s... failure: %s", operation.value, self.cache.path, exc)
            raise

        self._transition(Phase.RECONCILING)
        self.cache.inventory.remove_stale_staging()
        work = reconcile(catalog, self.cache.inventory, operation.policy)

        self._transition(Phase.DOWNLOADING)
        result = self.scheduler.run(work, post_verify=operation is Operation.VERIFY)

        self._transition(Phase.REPORTING)
        final = Phase.SUCCEEDED if result.ok else Phase.PARTIALLY_FAILED
        report = RunReport(
            operation=operation,
            phase=final,
            catalog_size=len(catalog),
            skipped_lines=len(self.cache.reader.warnings),
            work=work,
            committed=result.committed,
            failed=result.failed,
            elapsed=time.monotonic() - t0,
        )
        self._transition(final)
        if report.succeeded:
            log.info("%s %s... ok", operation.value, self.cache.path)
        else:
            log.warning(
                "%s %s... %d of %d item(s) failed",
                operation.value,
                self.cache.path,
                len(report.failed),
                len(work),
            )
        return report

    def _transition(self, phase: Phase) -> None:
        log.debug("phase %s -> %s", self.phase.value, phase.value)
        self.phase = phase
