"""SHA256 helpers used to verify archives."""

from __future__ import annotations

import hashlib
import re
from pathlib import Path

CHUNK_SIZE = 65536

_SHA256_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")


def normalize_checksum(value: str) -> str:
    """
    Return the lower-case form of a hex SHA256 digest.

    Raises:
        ValueError: if value is not a 64 characters hex string.
    """
    if not isinstance(value, str) or not _SHA256_PATTERN.match(value):
        raise ValueError(f"invalid sha256 checksum: {value!r}")
    return value.lower()


def digest(data: bytes) -> str:
    """Compute the SHA256 hex digest of the given bytes."""
    return hashlib.sha256(data).hexdigest()


def verify(data: bytes, expected: str) -> bool:
    """Return whether the digest of data matches the expected digest."""
    return digest(data) == expected.lower()


class StreamingDigest:
    """Incrementally hash a byte stream while counting its size."""

    def __init__(self) -> None:
        self._sha256 = hashlib.sha256()
        self.size = 0

    def update(self, chunk: bytes) -> None:
        self._sha256.update(chunk)
        self.size += len(chunk)

    def hexdigest(self) -> str:
        return self._sha256.hexdigest()


def compute_sha256(path: Path) -> str:
    """Compute SHA256 hash of a file."""
    sha256 = hashlib.sha256()
    with open(path, "rb") as fp:
        while chunk := fp.read(CHUNK_SIZE):
            sha256.update(chunk)
    return sha256.hexdigest()


def verify_file(path: Path, expected: str) -> bool:
    """Return whether the file at path has the expected digest."""
    return compute_sha256(path) == expected.lower()
