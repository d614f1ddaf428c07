"""Module containing the IndexReader implementation."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from ..errors import IndexCorruptError, IndexUnavailableError
from .configuration import CONFIGURATION_FILENAME, IndexConfiguration, load_configuration
from .git import GitError, GitRunner, run_git
from .package import PackageEntry, parse_line

log = logging.getLogger("cratemirror/index")


@dataclass(frozen=True, kw_only=True)
class CatalogWarning:
    """A malformed index line that was skipped while building the catalog."""

    file: str
    line: int
    message: str

    def __str__(self) -> str:
        return f"{self.file}:{self.line}: {self.message}"


class IndexReader:
    """
    Keep a local working copy of the registry index and parse it.

    The working copy is only ever read or fast-forwarded: the reader never
    rewrites index history.
    """

    def __init__(self, path: str | Path, *, git: GitRunner = run_git) -> None:
        self.path = Path(path)
        self.git = git
        self.warnings: list[CatalogWarning] = []

    def refresh(self, url: str | None = None) -> None:
        """
        Bring the working copy up to date with its upstream.

        On first use, clones `url` into the working copy path. Otherwise
        fast-forwards the current branch from `url`, or from `origin` when
        no URL is given.

        Raises:
            IndexUnavailableError: when upstream cannot be reached.
            IndexCorruptError: when the working copy cannot be fast-forwarded.
            ValueError: when there is no working copy and no URL.
        """
        if not self.path.exists():
            if url is None:
                raise ValueError(f"no index at {self.path} and no upstream URL to clone")
            self._clone(url)
            return
        self._fast_forward(url)

    def _clone(self, url: str) -> None:
        log.info("cloning index from %s... start", url)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self.git(["clone", "--quiet", url, str(self.path)])
        except GitError as exc:
            log.warning("cloning index from %s... failure: %s", url, exc)
            raise IndexUnavailableError(f"cannot clone index from {url}: {exc}") from exc
        log.info("cloning index from %s... ok", url)

    def _fast_forward(self, url: str | None) -> None:
        try:
            toplevel = self.git(["rev-parse", "--show-toplevel"], cwd=self.path)
        except GitError as exc:
            raise IndexCorruptError(f"{self.path} is not a git working copy: {exc}") from exc
        if Path(toplevel).resolve() != self.path.resolve():
            raise IndexCorruptError(f"{self.path} is not the top level of a git working copy")

        try:
            branch = self.git(["symbolic-ref", "--quiet", "--short", "HEAD"], cwd=self.path)
            before = self.git(["rev-parse", "HEAD"], cwd=self.path)
        except GitError as exc:
            raise IndexCorruptError(f"unexpected index state: {exc}") from exc

        remote = url if url is not None else "origin"
        log.info("fetching index %s from %s... start", branch, remote)
        try:
            self.git(["fetch", "--quiet", remote, branch], cwd=self.path)
        except GitError as exc:
            log.warning("fetching index %s from %s... failure: %s", branch, remote, exc)
            raise IndexUnavailableError(f"cannot fetch index from {remote}: {exc}") from exc
        log.info("fetching index %s from %s... ok", branch, remote)

        try:
            self.git(["merge", "--ff-only", "--quiet", "FETCH_HEAD"], cwd=self.path)
            after = self.git(["rev-parse", "HEAD"], cwd=self.path)
        except GitError as exc:
            raise IndexCorruptError(f"cannot fast-forward index: {exc}") from exc

        if before == after:
            log.info("index is up to date at %s", after)
        else:
            log.info("index advanced from %s to %s", before, after)

    def configuration(self) -> IndexConfiguration:
        """Return the registry configuration stored in the working copy."""
        return load_configuration(self.path / CONFIGURATION_FILENAME)

    def catalog(self) -> list[PackageEntry]:
        """
        Parse every entry file of the working copy.

        Malformed lines are skipped and recorded in `self.warnings` rather
        than failing the whole catalog. The first occurrence wins when the
        same (name, version) appears more than once.

        Raises:
            IndexCorruptError: if the configuration is missing or invalid.
        """
        configuration = self.configuration()
        self.warnings = []
        entries: dict[tuple[str, str], PackageEntry] = {}
        for path in self._entry_files():
            rel = path.relative_to(self.path).as_posix()
            try:
                text = path.read_text(encoding="utf-8")
            except UnicodeDecodeError as exc:
                self._warn(rel, 0, f"not valid UTF-8: {exc}")
                continue
            for lineno, line in enumerate(text.splitlines(), start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = parse_line(line, configuration=configuration)
                except ValueError as exc:
                    self._warn(rel, lineno, str(exc))
                    continue
                if entry.key in entries:
                    self._warn(rel, lineno, f"duplicate entry for {entry}")
                    continue
                entries[entry.key] = entry
        log.info(
            "index catalog has %d entries (%d lines skipped)",
            len(entries),
            len(self.warnings),
        )
        return list(entries.values())

    def _entry_files(self) -> Iterator[Path]:
        # Entry files live below top-level directories. Top-level files
        # such as config.json are not entries.
        for top in sorted(self.path.iterdir()):
            if top.name.startswith(".") or not top.is_dir():
                continue
            for path in sorted(top.rglob("*")):
                rel = path.relative_to(self.path)
                if any(part.startswith(".") for part in rel.parts):
                    continue
                if path.is_file():
                    yield path

    def _warn(self, file: str, line: int, message: str) -> None:
        warning = CatalogWarning(file=file, line=line, message=message)
        log.warning("skipping index line %s", warning)
        self.warnings.append(warning)
