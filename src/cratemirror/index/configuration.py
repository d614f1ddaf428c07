"""The registry index configuration (`config.json`)."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from dacite import DaciteError, from_dict

from ..errors import IndexCorruptError
from .package import package_prefix

CONFIGURATION_FILENAME = "config.json"

_TEMPLATE_MARKERS = (
    "{crate}",
    "{version}",
    "{prefix}",
    "{lowerprefix}",
    "{sha256-checksum}",
)


@dataclass(frozen=True, kw_only=True)
class IndexConfiguration:
    """
    Registry configuration stored at the root of the index.

    Attributes:
        dl: download URL template for archives.
        api: optional base URL of the registry web API.
    """

    dl: str
    api: str | None = None

    def __post_init__(self):
        base = urlparse(self.dl.split("{", 1)[0])
        if base.scheme not in ("http", "https", "file") or (
            base.scheme != "file" and not base.netloc
        ):
            raise ValueError(f"Unsupported download template: {self.dl}")

    def locate(self, *, name: str, version: str, checksum: str) -> str:
        """
        Return the download URL for the given package version.

        When the template contains none of the known markers, the
        `/{crate}/{version}/download` suffix is appended to it.
        """
        if not any(marker in self.dl for marker in _TEMPLATE_MARKERS):
            return f"{self.dl.rstrip('/')}/{name}/{version}/download"
        prefix = package_prefix(name)
        return (
            self.dl.replace("{crate}", name)
            .replace("{version}", version)
            .replace("{prefix}", prefix)
            .replace("{lowerprefix}", prefix.lower())
            .replace("{sha256-checksum}", checksum)
        )


def load_configuration(path: Path) -> IndexConfiguration:
    """
    Load the index configuration from the given file.

    Raises:
        IndexCorruptError: if the file is missing or malformed.
    """
    try:
        with open(path) as filep:
            data = json.load(filep)
        return from_dict(IndexConfiguration, data)
    except FileNotFoundError as exc:
        raise IndexCorruptError(f"index configuration not found: {path}") from exc
    except (OSError, ValueError, TypeError, DaciteError) as exc:
        raise IndexCorruptError(f"index configuration is corrupt: {exc}") from exc
