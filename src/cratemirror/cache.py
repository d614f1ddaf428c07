"""Module containing the on-disk cache directory layout."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Final

from filelock import BaseFileLock, FileLock

from .errors import CacheExistsError, CacheNotFoundError, IndexUnavailableError
from .index.git import GitRunner, run_git
from .index.reader import IndexReader
from .inventory import CacheInventory

CACHE_ARCHIVES_DIRNAME: Final[str] = "archives"
CACHE_DOTLOCK_FILENAME: Final[str] = ".lock"
CACHE_INDEX_DIRNAME: Final[str] = "index"
CACHE_STATE_DIRNAME: Final[str] = "state"

log = logging.getLogger("cratemirror/cache")


class Cache:
    """
    A cache directory holding an index working copy and downloaded archives.

    Layout:

        <path>/index/         git working copy of the registry index
        <path>/archives/      <name>/<version>/download files
        <path>/state/logs/    JSONL span logs
        <path>/.lock          single-writer lock

    Use `Cache.create` to initialize a new cache and `Cache.open` to
    use an existing one.
    """

    def __init__(self, path: str | Path, *, git: GitRunner = run_git) -> None:
        self.path = Path(path)
        self.reader = IndexReader(self.index_path, git=git)
        self.inventory = CacheInventory(self.archives_path)

    @property
    def index_path(self) -> Path:
        return self.path / CACHE_INDEX_DIRNAME

    @property
    def archives_path(self) -> Path:
        return self.path / CACHE_ARCHIVES_DIRNAME

    @property
    def logs_path(self) -> Path:
        return self.path / CACHE_STATE_DIRNAME / "logs"

    def lock(self, timeout: float = 0) -> BaseFileLock:
        """Return a FileLock guarding the cache against concurrent writers."""
        return FileLock(self.path / CACHE_DOTLOCK_FILENAME, timeout=timeout)

    @classmethod
    def open(cls, path: str | Path, *, git: GitRunner = run_git) -> Cache:
        """
        Open an existing cache.

        Raises:
            CacheNotFoundError: if path does not contain an index working copy.
        """
        cache = cls(path, git=git)
        if not cache.index_path.is_dir():
            raise CacheNotFoundError(f"no cache at {cache.path} (missing {CACHE_INDEX_DIRNAME}/)")
        cache.archives_path.mkdir(parents=True, exist_ok=True)
        return cache

    @classmethod
    def create(cls, path: str | Path, url: str, *, git: GitRunner = run_git) -> Cache:
        """
        Create a new cache by cloning the index at `url`.

        Raises:
            CacheExistsError: if path already contains an index.
            IndexUnavailableError: if the index cannot be cloned.
        """
        cache = cls(path, git=git)
        if cache.index_path.exists():
            raise CacheExistsError(f"a cache already exists at {cache.path}")
        log.info("creating cache at %s... start", cache.path)
        cache.path.mkdir(parents=True, exist_ok=True)
        try:
            cache.reader.refresh(url)
        except IndexUnavailableError:
            log.warning("creating cache at %s... failure", cache.path)
            raise
        cache.archives_path.mkdir(exist_ok=True)
        log.info("creating cache at %s... ok", cache.path)
        return cache
