"""voicerelay CLI — command line interface."""

import asyncio
import sys

import click
from rich.console import Console

from . import __version__

console = Console()


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="voicerelay")
@click.pass_context
def cli(ctx):
    """voicerelay — Telegram ↔ LLM relay with voice notes"""
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@cli.command()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def start(debug):
    """Start the Telegram bot and the keepalive server."""
    from .config import load_settings
    from .main import run, setup_logging

    settings = load_settings()
    setup_logging(debug or settings.debug)

    missing = settings.missing_secrets()
    if missing:
        console.print(f"[bold red]Missing required settings:[/bold red] {', '.join(missing)}")
        sys.exit(1)

    console.print("[bold blue]Starting voicerelay...[/bold blue]")
    try:
        code = asyncio.run(run(settings))
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


@cli.command()
@click.option("--override", default=None, help="Custom persona text (as set via /setprompt)")
def prompt(override):
    """Show the system prompt sent to the model."""
    from .prompts import build_system_prompt

    console.print(build_system_prompt(override), markup=False, highlight=False, soft_wrap=True)


def main():
    cli()


if __name__ == "__main__":
    main()
