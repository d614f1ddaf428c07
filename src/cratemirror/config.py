"""Settings shared by the command line tool."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .scheduler import DEFAULT_TIMEOUT

DEFAULT_JOBS = 4


@dataclass(frozen=True, kw_only=True)
class Settings:
    """
    Global options given to the `cratemirror` command.

    Attributes:
        path: the cache directory.
        jobs: maximum number of concurrent downloads.
        timeout: per-request timeout in seconds.
        contact: optional contact information sent in the User-Agent.
        log_level: name of the logging level.
    """

    path: Path
    jobs: int = DEFAULT_JOBS
    timeout: float = DEFAULT_TIMEOUT
    contact: str | None = None
    log_level: str = "INFO"

    def __post_init__(self):
        if self.jobs < 1:
            raise ValueError(f"jobs must be >= 1, got {self.jobs}")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {self.timeout}")


def cache_dir_or_default(path: str | Path | None) -> Path:
    """
    Return path as a Path if not empty. Otherwise return the
    default cache directory (i.e., the current working directory).
    """
    return Path.cwd() if path is None else Path(path)
