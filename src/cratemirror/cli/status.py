"""Cache status command."""

import click
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn

from ..config import Settings
from ..errors import IndexCorruptError
from ..reconcile import Policy, Reason, reconcile
from . import cli
from .run import fail, open_cache

_STATE_CHARS: dict[Reason | None, tuple[str, str]] = {
    Reason.MISSING: ("D", "red"),
    Reason.CHECKSUM_MISMATCH: ("M", "yellow"),
    Reason.TRUNCATED: ("T", "yellow"),
    None: (" ", "dim"),
}


@cli.command()
@click.option("-a", "--all", "show_all", is_flag=True, help="Include matching (unchanged) archives")
@click.pass_obj
def status(settings: Settings, show_all: bool) -> None:
    """Show cache status relative to the index working copy.

    Neither fetches the index nor downloads anything. Each archive is
    prefixed with a status letter:

    \b
      'D'  needs download (in index, not on disk)
      'M'  modified (on disk, hash differs from index)
      'T'  truncated (on disk, smaller than declared)
      'A'  added locally (on disk, not in index)

    Use `-a, --all` to see unmodified archives as well, which are
    printed using the ' ' status letter.
    """
    cache = open_cache(settings)
    try:
        catalog = cache.reader.catalog()
    except IndexCorruptError as exc:
        fail(str(exc))

    console = Console()
    with Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
        transient=True,
    ) as progress:
        task_id = progress.add_task("Checking archives", total=len(catalog))
        work_list = reconcile(
            catalog,
            cache.inventory,
            Policy.VERIFY,
            on_checked=lambda _: progress.advance(task_id),
        )
    work = {item.entry.key: item.reason for item in work_list}

    for entry in sorted(catalog, key=lambda e: e.key):
        reason = work.get(entry.key)
        if reason is None and not show_all:
            continue
        char, color = _STATE_CHARS[reason]
        console.print(f"[{color}]{char}[/] {escape(entry.name)} {escape(entry.version)}")

    for path in cache.inventory.untracked(catalog):
        rel = path.relative_to(cache.archives_path).as_posix()
        console.print(f"[green]A[/] {escape(rel)}")
