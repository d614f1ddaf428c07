"""
Registry index access.

The index is a git repository laid out like the Cargo registry index:

    config.json                 {"dl": "https://.../api/v1/crates", "api": "..."}
    1/a                         entries for one-letter names
    2/ab                        entries for two-letter names
    3/s/syn                     entries for three-letter names
    se/rd/serde                 everything else

Each entry file holds one JSON object per line, one line per version:

    {"name": "serde", "vers": "1.0.0", "cksum": "<sha256>", "yanked": false, ...}
"""

from .configuration import CONFIGURATION_FILENAME, IndexConfiguration, load_configuration
from .git import GitError, GitRunner, run_git
from .package import PackageEntry, package_prefix, parse_line
from .reader import CatalogWarning, IndexReader

__all__ = [
    "CONFIGURATION_FILENAME",
    "CatalogWarning",
    "GitError",
    "GitRunner",
    "IndexConfiguration",
    "IndexReader",
    "PackageEntry",
    "load_configuration",
    "package_prefix",
    "parse_line",
    "run_git",
]
