"""Offline mirror of a Cargo-style package registry.

This library keeps a local cache of a registry index (a git repository)
and of the package archives it references, downloading missing archives
and repairing corrupt ones.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("cratemirror")
except PackageNotFoundError:  # pragma: no cover - running from a source tree
    __version__ = "0.0.0"

from .cache import Cache  # noqa: E402
from .orchestrator import Operation, Phase, RunReport, SyncOrchestrator  # noqa: E402
from .reconcile import Policy, Reason, WorkItem  # noqa: E402
from .scheduler import DownloadJobScheduler  # noqa: E402

__all__ = [
    "Cache",
    "DownloadJobScheduler",
    "Operation",
    "Phase",
    "Policy",
    "Reason",
    "RunReport",
    "SyncOrchestrator",
    "WorkItem",
    "__version__",
]
