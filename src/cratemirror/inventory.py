"""Module to manage the on-disk archives of a cache."""

from __future__ import annotations

import logging
import os
import shutil
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Final

from .digest import compute_sha256, verify
from .errors import IntegrityError
from .index.package import PackageEntry

ARCHIVE_FILENAME: Final[str] = "download"
STAGING_PREFIX: Final[str] = ".staging-"

log = logging.getLogger("cratemirror/inventory")


@dataclass(frozen=True, kw_only=True)
class ArchiveRecord:
    """
    What is on disk for a given entry.

    Attributes:
        path: the canonical path of the archive.
        present: whether a file exists at the canonical path.
        size: observed size in bytes, or None when absent.
        digest: observed SHA256, or None when absent or not computed.
    """

    path: Path
    present: bool
    size: int | None = None
    digest: str | None = None


class CacheInventory:
    """
    Answers what is on disk for each PackageEntry and commits new archives.

    Archives live at `archives/<name>/<version>/download`. Writes go through
    a staging directory next to the canonical path followed by `os.replace`,
    so a partially written archive is never visible at its canonical path.
    """

    def __init__(self, archives_dir: str | Path) -> None:
        self.archives_dir = Path(archives_dir)
        self._memo: dict[Path, tuple[int, int, str]] = {}
        self._memo_lock = threading.Lock()

    def locate(self, entry: PackageEntry) -> Path:
        """Return the canonical path for the entry (which may not exist)."""
        return self.archives_dir / entry.name / entry.version / ARCHIVE_FILENAME

    def lookup(self, entry: PackageEntry, *, rehash: bool = False) -> ArchiveRecord:
        """
        Return the ArchiveRecord for the given entry.

        With rehash=False the digest is only filled in when memoized for the
        same size and mtime. With rehash=True the digest is recomputed.
        """
        path = self.locate(entry)
        try:
            stat = path.stat()
        except FileNotFoundError:
            return ArchiveRecord(path=path, present=False)
        if not path.is_file():
            return ArchiveRecord(path=path, present=False)

        if rehash:
            sha256 = compute_sha256(path)
            self._remember(path, stat.st_size, stat.st_mtime_ns, sha256)
            return ArchiveRecord(path=path, present=True, size=stat.st_size, digest=sha256)

        with self._memo_lock:
            memo = self._memo.get(path)
        sha256 = None
        if memo is not None and memo[:2] == (stat.st_size, stat.st_mtime_ns):
            sha256 = memo[2]
        return ArchiveRecord(path=path, present=True, size=stat.st_size, digest=sha256)

    @contextmanager
    def staging(self, entry: PackageEntry) -> Iterator[Path]:
        """
        Yield a temporary file path on the same filesystem as the canonical path.

        The staging directory is removed on exit, whether or not the staged
        file was committed.
        """
        dest = self.locate(entry)
        dest.parent.mkdir(parents=True, exist_ok=True)
        # A staging directory next to `dest` keeps `os.replace()` atomic
        # and avoids cross-filesystem moves.
        with TemporaryDirectory(prefix=STAGING_PREFIX, dir=dest.parent) as tmp_dir:
            yield Path(tmp_dir) / dest.name

    def commit(
        self,
        entry: PackageEntry,
        staged: Path,
        *,
        digest: str | None = None,
    ) -> ArchiveRecord:
        """
        Atomically move a staged file onto the canonical path.

        The caller is responsible for having verified the staged bytes.
        """
        dest = self.locate(entry)
        with open(staged, "rb") as fp:
            os.fsync(fp.fileno())
        os.replace(staged, dest)
        stat = dest.stat()
        if digest is not None:
            self._remember(dest, stat.st_size, stat.st_mtime_ns, digest)
        log.debug("committed %s at %s", entry, dest)
        return ArchiveRecord(path=dest, present=True, size=stat.st_size, digest=digest)

    def write(self, entry: PackageEntry, data: bytes) -> ArchiveRecord:
        """
        Stage and commit the given bytes as the archive for entry.

        Raises:
            IntegrityError: if the bytes do not match the entry checksum.
        """
        if not verify(data, entry.checksum):
            raise IntegrityError(f"refusing to write {entry}: SHA256 mismatch")
        with self.staging(entry) as staged:
            staged.write_bytes(data)
            return self.commit(entry, staged, digest=entry.checksum)

    def untracked(self, entries: Iterable[PackageEntry]) -> Iterator[Path]:
        """Yield archive files that do not correspond to any of the entries."""
        expected = {self.locate(entry) for entry in entries}
        if not self.archives_dir.exists():
            return
        for path in sorted(self.archives_dir.rglob("*")):
            rel = path.relative_to(self.archives_dir)
            if any(part.startswith(STAGING_PREFIX) for part in rel.parts):
                continue
            if path.is_file() and path not in expected:
                yield path

    def remove_stale_staging(self) -> int:
        """
        Remove staging directories left behind by interrupted runs.

        Only directories created by `staging()` are touched. Returns the
        number of directories removed.
        """
        if not self.archives_dir.exists():
            return 0
        stale = [
            path for path in self.archives_dir.rglob(f"{STAGING_PREFIX}*") if path.is_dir()
        ]
        for path in stale:
            log.info("removing stale staging directory %s", path)
            shutil.rmtree(path, ignore_errors=True)
        return len(stale)

    def _remember(self, path: Path, size: int, mtime_ns: int, sha256: str) -> None:
        with self._memo_lock:
            self._memo[path] = (size, mtime_ns, sha256)
