"""Parsing of registry index entry lines."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from dacite import DaciteError, from_dict

from ..digest import normalize_checksum

if TYPE_CHECKING:
    from .configuration import IndexConfiguration

_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
_VERSION_PATTERN = re.compile(r"^[A-Za-z0-9+_-][A-Za-z0-9.+_-]*$")


@dataclass(frozen=True, kw_only=True)
class IndexLine:
    """
    Subset of a registry index line that the mirror needs.

    Every other key in the line (deps, features, links, ...) is ignored.
    """

    name: str
    vers: str
    cksum: str
    yanked: bool | None = False
    size: int | None = None


@dataclass(frozen=True, kw_only=True)
class PackageEntry:
    """
    A single (name, version) row of the index.

    Attributes:
        name: the package name.
        version: the package version.
        checksum: lower-case hex SHA256 of the archive bytes.
        download_url: where to fetch the archive from.
        size: declared archive size in bytes, if the index provides one.
        yanked: whether the version was yanked (still mirrored).
    """

    name: str
    version: str
    checksum: str
    download_url: str
    size: int | None = None
    yanked: bool = False

    @property
    def key(self) -> tuple[str, str]:
        """Return the (name, version) pair identifying this entry."""
        return self.name, self.version

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"


def package_prefix(name: str) -> str:
    """Return the index directory prefix used for the given package name."""
    if not name:
        raise ValueError("empty package name")
    if len(name) == 1:
        return "1"
    if len(name) == 2:
        return "2"
    if len(name) == 3:
        return f"3/{name[0]}"
    return f"{name[0:2]}/{name[2:4]}"


def validate_name(name: str) -> str:
    """Ensure the package name is safe to use as a path component."""
    if not _NAME_PATTERN.match(name):
        raise ValueError(f"invalid package name: {name!r}")
    return name


def validate_version(version: str) -> str:
    """Ensure the version is safe to use as a path component."""
    if not _VERSION_PATTERN.match(version):
        raise ValueError(f"invalid package version: {version!r}")
    return version


def parse_line(line: str, *, configuration: IndexConfiguration) -> PackageEntry:
    """
    Parse a single JSON line of an index file.

    Raises:
        ValueError: if the line is not valid JSON, lacks required fields,
            or contains an unsafe name, version, or checksum.
    """
    data = json.loads(line)
    if not isinstance(data, dict):
        raise ValueError("index line is not a JSON object")
    try:
        raw = from_dict(IndexLine, data)
    except DaciteError as exc:
        raise ValueError(str(exc)) from exc
    # JSON booleans are ints to dacite.
    if isinstance(raw.size, bool):
        raise ValueError(f"size is not an integer: {raw.size}")
    if raw.size is not None and raw.size < 0:
        raise ValueError(f"negative size: {raw.size}")

    name = validate_name(raw.name)
    version = validate_version(raw.vers)
    checksum = normalize_checksum(raw.cksum)
    return PackageEntry(
        name=name,
        version=version,
        checksum=checksum,
        download_url=configuration.locate(name=name, version=version, checksum=checksum),
        size=raw.size,
        yanked=bool(raw.yanked),
    )
