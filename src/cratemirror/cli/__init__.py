"""cratemirror command-line interface."""

from importlib.metadata import version
from pathlib import Path

import click

from ..config import DEFAULT_JOBS, Settings, cache_dir_or_default
from ..scheduler import DEFAULT_TIMEOUT
from .logger import LOG_LEVELS, configure_logging

_PACKAGE_NAME = "cratemirror"


def _get_version() -> str:
    """Return the installed package version string."""
    return version(_PACKAGE_NAME)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(message="%(version)s", package_name=_PACKAGE_NAME)
@click.option(
    "-p",
    "--path",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    envvar="CRATEMIRROR_PATH",
    help="Cache directory (default: current directory)",
)
@click.option(
    "-j",
    "--jobs",
    type=click.IntRange(min=1),
    default=DEFAULT_JOBS,
    envvar="CRATEMIRROR_JOBS",
    show_default=True,
    help="Number of parallel downloads",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=DEFAULT_TIMEOUT,
    show_default=True,
    help="Per-request timeout in seconds",
)
@click.option(
    "-c",
    "--contact",
    default=None,
    envvar="CRATEMIRROR_CONTACT",
    help="Contact information to send in the User-Agent",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="INFO",
    envvar="CRATEMIRROR_LOG_LEVEL",
    show_default=True,
    help="Minimum level of log messages",
)
@click.option("-v", "--verbose", is_flag=True, help="Same as --log-level DEBUG")
@click.pass_context
def cli(
    ctx: click.Context,
    path: Path | None,
    jobs: int,
    timeout: float,
    contact: str | None,
    log_level: str,
    verbose: bool,
) -> None:
    """Mirror a Cargo-style package registry for offline use."""
    settings = Settings(
        path=cache_dir_or_default(path),
        jobs=jobs,
        timeout=timeout,
        contact=contact,
        log_level="DEBUG" if verbose else log_level.upper(),
    )
    configure_logging(settings.log_level)
    ctx.obj = settings


@cli.command(hidden=True)
def help() -> None:
    """Show usage information."""
    click.echo('Use "cratemirror --help" for usage information.')
    click.echo('Use "cratemirror <command> --help" for help on a specific command.')


@cli.command("version")
def version_cmd() -> None:
    """Print the version number."""
    click.echo(_get_version())


# Register subcommands (must be after cli is defined)
from . import new as _new  # noqa: E402, F401
from . import status as _status  # noqa: E402, F401
from . import sync as _sync  # noqa: E402, F401
