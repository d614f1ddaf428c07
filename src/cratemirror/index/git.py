"""Thin wrapper around the git executable."""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

log = logging.getLogger("cratemirror/git")


class GitError(Exception):
    """A git command failed or git is not available."""

    def __init__(self, args: Sequence[str], message: str, *, returncode: int | None = None):
        super().__init__(f"git {' '.join(args)}: {message}")
        self.command = list(args)
        self.returncode = returncode


class GitRunner(Protocol):
    """
    Run a git command and return its standard output.

    Implementations raise GitError on failure.
    """

    def __call__(self, args: Sequence[str], *, cwd: Path | None = None) -> str: ...


def run_git(args: Sequence[str], *, cwd: Path | None = None) -> str:
    """Run git with the given arguments and return its stripped stdout."""
    # Never block waiting for credentials on a terminal.
    env = {**os.environ, "GIT_TERMINAL_PROMPT": "0"}
    log.debug("git %s (cwd=%s)", " ".join(args), cwd)
    try:
        completed = subprocess.run(
            ["git", *args],
            cwd=cwd,
            env=env,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError as exc:
        raise GitError(args, "git executable not found") from exc
    if completed.returncode != 0:
        raise GitError(args, completed.stderr.strip(), returncode=completed.returncode)
    return completed.stdout.strip()
