"""The new command."""

import click

from ..cache import Cache
from ..config import Settings
from ..errors import CacheExistsError, IndexUnavailableError
from . import cli
from .run import fail


@cli.command()
@click.option("-u", "--url", required=True, help="URL of the registry index git repository")
@click.pass_obj
def new(settings: Settings, url: str) -> None:
    """Create a new cache by cloning the registry index."""
    try:
        Cache.create(settings.path, url)
    except (CacheExistsError, IndexUnavailableError) as exc:
        fail(str(exc))
    click.echo(f"Created cache at {settings.path}.")
    click.echo("Run `cratemirror sync` to download the archives.")
