"""Tandem CLI main entry point.

Administrative commands for the resilience layer: inspect and override
persisted circuit breaker state and show the effective configuration.
"""

import logging
from pathlib import Path
from typing import Optional

import click

from tandem import __version__
from tandem.core.config import ConfigManager
from tandem.exceptions import ConfigurationError
from tandem.logging import get_logger
from tandem.services import TandemFactory

from .commands.breaker import breaker
from .commands.config import config


def setup_logging(factory: TandemFactory, verbose: int = 0) -> None:
    """Set up logging from the Tandem configuration.

    The CLI stays quiet unless asked: -v for INFO, -vv for DEBUG.
    """
    level = logging.DEBUG if verbose > 1 else logging.INFO if verbose else logging.WARNING
    try:
        factory.configure_logging(level=level)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    get_logger("tandem.cli").debug("Tandem CLI started", version=__version__, verbose_level=verbose)


@click.group()
@click.version_option(version=__version__, prog_name="tandem")
@click.option(
    "--config", "-c", "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Configuration file path (default: ./tandem.toml)",
)
@click.option(
    "--verbose", "-v",
    count=True,
    help="Increase verbosity (-v for INFO, -vv for DEBUG)",
)
@click.pass_context
def cli(ctx: click.Context, config_file: Optional[Path], verbose: int) -> None:
    """Tandem: resilience layer for dual-variant backends.

    \b
    Examples:
        tandem breaker status
        tandem breaker trip payments-graphql
        tandem breaker reset payments-graphql
        tandem config show --format json
    """
    ctx.ensure_object(dict)

    config_manager = ConfigManager(config_file)
    ctx.obj["config_manager"] = config_manager
    factory = TandemFactory(config_manager)
    ctx.obj["factory"] = factory
    ctx.obj["verbose"] = verbose

    setup_logging(factory, verbose)


cli.add_command(breaker)
cli.add_command(config)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
