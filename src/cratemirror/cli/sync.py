"""The sync and verify commands."""

import click

from ..config import Settings
from ..orchestrator import Operation
from . import cli
from .run import run_operation

_NO_REFRESH_HELP = "Use the index working copy as is, without fetching upstream"


@cli.command()
@click.option("--no-refresh", is_flag=True, help=_NO_REFRESH_HELP)
@click.pass_obj
def sync(settings: Settings, no_refresh: bool) -> None:
    """Download archives missing from the cache.

    Archives already present in the cache are trusted since they were
    verified before being written. Use `verify` to rehash them.

    \b
    Exit code:
      0  every archive is in the cache
      1  some downloads failed (run again to retry them)
      3  the run could not start
    """
    run_operation(settings, Operation.SYNC, refresh_index=not no_refresh)


@cli.command()
@click.option("--no-refresh", is_flag=True, help=_NO_REFRESH_HELP)
@click.pass_obj
def verify(settings: Settings, no_refresh: bool) -> None:
    """Rehash every archive and (re)download missing or corrupt ones.

    Files under archives/ that do not correspond to an index entry are
    left untouched.

    \b
    Exit code:
      0  every archive matches its index checksum
      1  some downloads failed (run again to retry them)
      3  the run could not start
    """
    run_operation(settings, Operation.VERIFY, refresh_index=not no_refresh)
