"""Diff between the index catalog and the archives on disk."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from .index.package import PackageEntry
from .inventory import CacheInventory

log = logging.getLogger("cratemirror/reconcile")


class Policy(str, Enum):
    """
    How much to trust what is already on disk.

    SYNC trusts any archive present at its canonical path, since archives
    are verified before being committed. VERIFY trusts nothing and rehashes
    every archive.
    """

    SYNC = "sync"
    VERIFY = "verify"


class Reason(str, Enum):
    """Why an entry needs to be (re)downloaded."""

    MISSING = "missing"
    CHECKSUM_MISMATCH = "checksum_mismatch"
    TRUNCATED = "truncated"


@dataclass(frozen=True, kw_only=True)
class WorkItem:
    """A single archive that must be fetched and committed."""

    entry: PackageEntry
    reason: Reason

    def __str__(self) -> str:
        return f"{self.entry} ({self.reason.value})"


def reconcile(
    catalog: Iterable[PackageEntry],
    inventory: CacheInventory,
    policy: Policy,
    *,
    on_checked: Callable[[PackageEntry], None] | None = None,
) -> list[WorkItem]:
    """
    Compute the work needed to bring the inventory in line with the catalog.

    Args:
        catalog: entries parsed from the index.
        inventory: the archives currently on disk.
        policy: SYNC or VERIFY.
        on_checked: optional callback invoked after each entry is checked.

    Returns:
        A list of WorkItem without duplicate (name, version) keys. The order
        of the list carries no meaning.
    """
    work: list[WorkItem] = []
    seen: set[tuple[str, str]] = set()
    for entry in catalog:
        if entry.key in seen:
            continue
        seen.add(entry.key)
        reason = _check(entry, inventory, policy)
        if reason is not None:
            log.debug("%s needs work: %s", entry, reason.value)
            work.append(WorkItem(entry=entry, reason=reason))
        if on_checked is not None:
            on_checked(entry)
    log.info(
        "reconciled %d entries with policy %s: %d need work", len(seen), policy.value, len(work)
    )
    return work


def _check(entry: PackageEntry, inventory: CacheInventory, policy: Policy) -> Reason | None:
    record = inventory.lookup(entry)
    if not record.present:
        return Reason.MISSING
    if policy is Policy.SYNC:
        return None

    # Cheap size check before hashing.
    if entry.size is not None and record.size is not None and record.size < entry.size:
        return Reason.TRUNCATED

    try:
        record = inventory.lookup(entry, rehash=True)
    except OSError as exc:
        # An unreadable archive is as good as a corrupt one.
        log.warning("cannot read archive of %s: %s", entry, exc)
        return Reason.CHECKSUM_MISMATCH
    if record.digest != entry.checksum:
        return Reason.CHECKSUM_MISMATCH
    return None
