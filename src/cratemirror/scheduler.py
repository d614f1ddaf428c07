"""Bounded-concurrency download and commit of archives."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import requests
from rich.progress import Progress, TaskID

from .digest import CHUNK_SIZE, StreamingDigest, verify_file
from .errors import (
    ArchiveError,
    FailureKind,
    HTTPStatusError,
    IntegrityError,
    SizeMismatchError,
    StorageError,
    TransientDownloadError,
)
from .index.package import PackageEntry
from .inventory import CacheInventory
from .reconcile import WorkItem
from .spans import SpanLog, format_time, now

DEFAULT_TIMEOUT = 60.0

# Statuses worth retrying on a later run besides 5xx.
_TRANSIENT_STATUSES = frozenset({408, 429})

_TRANSIENT_EXCEPTIONS = (
    requests.Timeout,
    requests.ConnectionError,
    requests.exceptions.ChunkedEncodingError,
    ConnectionError,
    TimeoutError,
)

log = logging.getLogger("cratemirror/scheduler")


@dataclass(frozen=True, kw_only=True)
class JobOutcome:
    """Result of running a single WorkItem."""

    item: WorkItem
    ok: bool
    bytes: int = 0
    kind: FailureKind | None = None
    error: str | None = None


@dataclass(frozen=True, kw_only=True)
class SchedulerReport:
    """Aggregated result of running a work list."""

    committed: list[WorkItem] = field(default_factory=list)
    failed: list[JobOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True when every work item was committed."""
        return not self.failed


@dataclass
class _Transfer:
    content_length: int | None = None
    bytes: int = 0


class DownloadJobScheduler:
    """
    Download and commit archives using at most `jobs` concurrent workers.

    Each job streams the archive into a staging file while hashing it,
    checks its size and checksum, and only then renames it onto the
    canonical path. A failing job never affects its siblings: failures are
    classified and collected in the returned SchedulerReport.
    """

    def __init__(
        self,
        inventory: CacheInventory,
        session: requests.Session,
        *,
        jobs: int = 1,
        timeout: float = DEFAULT_TIMEOUT,
        progress: Progress | None = None,
        spans: SpanLog | None = None,
    ) -> None:
        if jobs < 1:
            raise ValueError(f"jobs must be >= 1, got {jobs}")
        self.inventory = inventory
        self.session = session
        self.jobs = jobs
        self.timeout = timeout
        self.progress = progress
        self.spans = spans

    def run(self, work: Sequence[WorkItem], *, post_verify: bool = False) -> SchedulerReport:
        """
        Run the given work list to completion.

        Arguments:
            work: items to download, at most one per (name, version).
            post_verify: rehash each archive at its canonical path after
                the rename as a second integrity gate.

        Raises:
            ValueError: if the work list contains the same key twice.
        """
        keys = {item.entry.key for item in work}
        if len(keys) != len(work):
            raise ValueError("work list contains duplicate (name, version) items")
        if not work:
            return SchedulerReport()

        committed: list[WorkItem] = []
        failed: list[JobOutcome] = []
        with ThreadPoolExecutor(
            max_workers=self.jobs,
            thread_name_prefix="cratemirror-download",
        ) as pool:
            futures = {pool.submit(self._run_one, item, post_verify): item for item in work}
            for future in as_completed(futures):
                outcome = future.result()
                if outcome.ok:
                    committed.append(outcome.item)
                else:
                    failed.append(outcome)
        return SchedulerReport(committed=committed, failed=failed)

    def _run_one(self, item: WorkItem, post_verify: bool) -> JobOutcome:
        t0 = now()
        transfer = _Transfer()
        try:
            log.info("fetching %s... start", item)
            self._fetch_and_commit(item.entry, transfer, post_verify)
            log.info("fetching %s... ok", item)
            outcome = JobOutcome(item=item, ok=True, bytes=transfer.bytes)
        except ArchiveError as exc:
            # Integrity failures may indicate a compromised upstream.
            level = logging.ERROR if isinstance(exc, IntegrityError) else logging.WARNING
            log.log(level, "fetching %s... failure (%s): %s", item, exc.kind.value, exc)
            outcome = JobOutcome(
                item=item,
                ok=False,
                bytes=transfer.bytes,
                kind=exc.kind,
                error=str(exc),
            )
        except Exception as exc:
            log.exception("fetching %s... failure (unexpected)", item)
            outcome = JobOutcome(
                item=item,
                ok=False,
                bytes=transfer.bytes,
                kind=FailureKind.UNEXPECTED,
                error=f"{type(exc).__name__}: {exc}",
            )
        self._record(item, t0, transfer, outcome)
        return outcome

    def _fetch_and_commit(
        self,
        entry: PackageEntry,
        transfer: _Transfer,
        post_verify: bool,
    ) -> None:
        try:
            with self.inventory.staging(entry) as staged:
                sha256 = self._download(entry, staged, transfer)
                if sha256 != entry.checksum:
                    raise IntegrityError(
                        f"SHA256 mismatch for {entry}: expected {entry.checksum}, got {sha256}"
                    )
                record = self.inventory.commit(entry, staged, digest=sha256)
            if post_verify and not verify_file(record.path, entry.checksum):
                # Remove it so that the next run fetches it again.
                record.path.unlink(missing_ok=True)
                raise IntegrityError(f"SHA256 mismatch for {entry} after commit")
        except OSError as exc:
            raise StorageError(f"cannot store {entry}: {exc}") from exc

    def _download(self, entry: PackageEntry, staged: Path, transfer: _Transfer) -> str:
        """Stream the archive into the staged file and return its SHA256."""
        task_id = None
        if self.progress is not None:
            task_id = self.progress.add_task(str(entry), total=entry.size)
        try:
            try:
                response = self.session.get(entry.download_url, stream=True, timeout=self.timeout)
            except _TRANSIENT_EXCEPTIONS as exc:
                raise TransientDownloadError(f"cannot fetch {entry}: {exc}") from exc
            except requests.RequestException as exc:
                raise HTTPStatusError(f"cannot fetch {entry}: {exc}") from exc
            try:
                return self._stream(entry, response, staged, transfer, task_id)
            finally:
                response.close()
        finally:
            if task_id is not None:
                self.progress.remove_task(task_id)

    def _stream(
        self,
        entry: PackageEntry,
        response: requests.Response,
        staged: Path,
        transfer: _Transfer,
        task_id: TaskID | None,
    ) -> str:
        _raise_for_status(entry, response)

        content_length = _content_length(response)
        transfer.content_length = content_length
        if content_length is not None and entry.size is not None and content_length != entry.size:
            raise SizeMismatchError(
                f"size mismatch for {entry}: declared {entry.size} bytes, "
                f"server advertises {content_length}"
            )
        if task_id is not None and content_length is not None:
            self.progress.update(task_id, total=content_length)

        hasher = StreamingDigest()
        try:
            with open(staged, "wb") as fp:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    fp.write(chunk)
                    hasher.update(chunk)
                    transfer.bytes = hasher.size
                    if task_id is not None:
                        self.progress.update(task_id, advance=len(chunk))
        except _TRANSIENT_EXCEPTIONS as exc:
            raise TransientDownloadError(f"cannot fetch {entry}: {exc}") from exc
        except requests.RequestException as exc:
            raise HTTPStatusError(f"cannot fetch {entry}: {exc}") from exc

        if content_length is not None and hasher.size != content_length:
            raise SizeMismatchError(
                f"size mismatch for {entry}: received {hasher.size} bytes, "
                f"server advertised {content_length}"
            )
        if entry.size is not None and hasher.size != entry.size:
            raise SizeMismatchError(
                f"size mismatch for {entry}: received {hasher.size} bytes, "
                f"declared {entry.size}"
            )
        return hasher.hexdigest()

    def _record(
        self,
        item: WorkItem,
        t0: datetime,
        transfer: _Transfer,
        outcome: JobOutcome,
    ) -> None:
        if self.spans is None:
            return
        span = {
            "t0": format_time(t0),
            "t": format_time(now()),
            "worker_id": threading.get_ident(),
            "name": item.entry.name,
            "version": item.entry.version,
            "reason": item.reason.value,
            "url": item.entry.download_url,
            "content_length": transfer.content_length,
            "bytes": transfer.bytes,
            "ok": outcome.ok,
            "kind": outcome.kind.value if outcome.kind is not None else None,
            "error": outcome.error,
        }
        try:
            self.spans.write(span)
        except OSError as exc:
            log.warning("cannot record span for %s in %s: %s", item.entry, self.spans.path, exc)


def _raise_for_status(entry: PackageEntry, response: requests.Response) -> None:
    try:
        response.raise_for_status()
    except requests.HTTPError as exc:
        status = exc.response.status_code if exc.response is not None else None
        if status is not None and (status >= 500 or status in _TRANSIENT_STATUSES):
            raise TransientDownloadError(f"cannot fetch {entry}: {exc}") from exc
        raise HTTPStatusError(f"cannot fetch {entry}: {exc}", status=status) from exc


def _content_length(response: requests.Response) -> int | None:
    """Return the advertised body size, or None when it does not describe the bytes we read."""
    if response.headers.get("Content-Encoding", "identity") != "identity":
        return None
    value = response.headers.get("Content-Length")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None
