"""Shared pytest fixtures for cratemirror tests."""

from __future__ import annotations

import hashlib
import io
import json
import threading
import time
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest
import requests

from cratemirror.cache import Cache
from cratemirror.index.git import GitError
from cratemirror.index.package import package_prefix
from cratemirror.orchestrator import SyncOrchestrator
from cratemirror.scheduler import DownloadJobScheduler
from cratemirror.spans import SpanLog

DL = "https://registry.example.com/api/v1/crates"


def _sha256(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def _response(url: str, content: bytes, *, status: int = 200, headers=None) -> requests.Response:
    """Build a real requests.Response streaming the given bytes."""
    resp = requests.Response()
    resp.status_code = status
    resp.url = url
    resp.reason = "OK" if status < 400 else "Error"
    resp.raw = io.BytesIO(content)
    resp.headers["Content-Length"] = str(len(content))
    if headers:
        resp.headers.update(headers)
    return resp


class FakeRegistry:
    """
    Simulated registry: writes an index working copy and serves archives.

    Instances act as a requests.Session replacement for the scheduler. They
    record every requested URL and the maximum number of concurrent
    requests they observed.
    """

    def __init__(self) -> None:
        self.archives: dict[tuple[str, str], bytes] = {}
        self.checksums: dict[tuple[str, str], str] = {}
        self.yanked: set[tuple[str, str]] = set()
        self.failures: dict[str, Exception | int] = {}
        self.bodies: dict[str, bytes] = {}
        self.calls: list[str] = []
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def add(
        self,
        name: str,
        version: str,
        content: bytes,
        *,
        yanked: bool = False,
        cksum: str | None = None,
    ) -> None:
        self.archives[(name, version)] = content
        self.checksums[(name, version)] = cksum if cksum is not None else _sha256(content)
        if yanked:
            self.yanked.add((name, version))

    def url(self, name: str, version: str) -> str:
        return f"{DL}/{name}/{version}/download"

    def write_index(self, index_dir: Path, *, extra_lines: dict[str, Sequence[str]] | None = None):
        """Write config.json and one entry file per package name."""
        index_dir.mkdir(parents=True, exist_ok=True)
        (index_dir / "config.json").write_text(json.dumps({"dl": DL, "api": DL}))
        files: dict[str, list[str]] = {}
        for (name, version), content in sorted(self.archives.items()):
            line = {
                "name": name,
                "vers": version,
                "deps": [],
                "cksum": self.checksums[(name, version)],
                "features": {},
                "yanked": (name, version) in self.yanked,
            }
            rel = f"{package_prefix(name)}/{name}"
            files.setdefault(rel, []).append(json.dumps(line))
        for rel, lines in (extra_lines or {}).items():
            files.setdefault(rel, []).extend(lines)
        for rel, lines in files.items():
            path = index_dir / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("\n".join(lines) + "\n")

    def get(self, url: str, stream: bool = False, timeout: float | None = None):
        with self._lock:
            self.calls.append(url)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
        finally:
            with self._lock:
                self.in_flight -= 1

        failure = self.failures.get(url)
        if isinstance(failure, Exception):
            raise failure
        if isinstance(failure, int):
            return _response(url, b"", status=failure)
        if url in self.bodies:
            return _response(url, self.bodies[url])
        for (name, version), content in self.archives.items():
            if self.url(name, version) == url:
                return _response(url, content)
        return _response(url, b"not found", status=404)


class FakeGit:
    """
    Stand-in for the git executable.

    Answers the queries IndexReader makes against an existing working copy
    and raises the configured GitError for the named subcommands.
    """

    def __init__(self, on_clone: Callable[[Path], None] | None = None) -> None:
        self.calls: list[list[str]] = []
        self.failures: dict[str, GitError] = {}
        self.on_clone = on_clone

    def __call__(self, args: Sequence[str], *, cwd: Path | None = None) -> str:
        args = list(args)
        self.calls.append(args)
        if args[0] in self.failures:
            raise self.failures[args[0]]
        if args[0] == "clone":
            dest = Path(args[-1])
            dest.mkdir(parents=True)
            if self.on_clone is not None:
                self.on_clone(dest)
            return ""
        if args[:2] == ["rev-parse", "--show-toplevel"]:
            return str(cwd)
        if args[0] == "symbolic-ref":
            return "main"
        if args[:2] == ["rev-parse", "HEAD"]:
            return "0" * 40
        return ""


@pytest.fixture
def registry() -> FakeRegistry:
    """Return an empty simulated registry."""
    return FakeRegistry()


@pytest.fixture
def fake_git() -> FakeGit:
    return FakeGit()


@pytest.fixture
def cache(tmp_path: Path, registry: FakeRegistry, fake_git: FakeGit) -> Cache:
    """Return a cache whose index is written from the registry fixture."""
    path = tmp_path / "mirror"
    registry.write_index(path / "index")
    return Cache.open(path, git=fake_git)


@pytest.fixture
def make_orchestrator(cache: Cache, registry: FakeRegistry):
    """Return a factory building an orchestrator over the cache fixture."""

    def factory(*, jobs: int = 2, refresh_index: bool = True) -> SyncOrchestrator:
        scheduler = DownloadJobScheduler(
            cache.inventory,
            registry,
            jobs=jobs,
            timeout=5,
            spans=SpanLog(cache.logs_path / "test.jsonl"),
        )
        return SyncOrchestrator(cache=cache, scheduler=scheduler, refresh_index=refresh_index)

    return factory
