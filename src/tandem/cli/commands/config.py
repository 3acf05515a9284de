"""
Configuration commands.
"""

import json

import click
from rich.console import Console
from rich.syntax import Syntax

from tandem.core.config import ConfigManager, TandemConfig

console = Console()


@click.group()
def config():
    """Show and initialize Tandem configuration."""
    pass


@config.command()
@click.option(
    "--format", "-f", "output_format",
    type=click.Choice(["toml", "json"]),
    default="toml",
    help="Output format",
)
@click.pass_context
def show(ctx: click.Context, output_format: str):
    """Show the effective configuration (file plus environment overrides)."""
    config_manager: ConfigManager = ctx.obj["config_manager"]
    loaded = config_manager.load_config()

    if output_format == "json":
        click.echo(json.dumps(loaded.model_dump(mode="json"), indent=2))
        return

    console.print(Syntax(config_manager.dump_toml(loaded), "toml", theme="ansi_dark"))
    console.print(f"[dim]Source: {config_manager.config_file}[/dim]")


@config.command()
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.pass_context
def init(ctx: click.Context, force: bool):
    """Write a configuration file with default values."""
    config_manager: ConfigManager = ctx.obj["config_manager"]
    if config_manager.config_file.exists() and not force:
        raise click.ClickException(
            f"{config_manager.config_file} already exists (use --force to overwrite)"
        )
    config_manager.save_config(TandemConfig())
    console.print(f"[green]Wrote default configuration to {config_manager.config_file}[/green]")
