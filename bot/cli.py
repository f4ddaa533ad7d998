#!/usr/bin/env python3

from __future__ import annotations
import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from shared.log import configure_root_logging, get_logger
from .config import BotConfig, ConfigError, ConfigNotFoundError, find_config_file, load_config
from .emojis import load_emoji_table
from .supervisor import Supervisor

app = typer.Typer(help="Emoji chat bot for CollabVM servers")
console = Console()
logger = get_logger(__name__)

EXIT_CONFIG = 1


def _load(config_path: Optional[Path]) -> BotConfig:
    """Locate and validate the config, exiting non-zero before any connection."""
    try:
        path = find_config_file(config_path)
        return load_config(path)
    except ConfigNotFoundError as e:
        logger.error(str(e))
        raise typer.Exit(code=EXIT_CONFIG)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        raise typer.Exit(code=EXIT_CONFIG)


ConfigOption = typer.Option(None, "--config", "-c", help="Path to config.json / config.yaml")


@app.command()
def run(config_path: Optional[Path] = ConfigOption):
    """Load the emoji list and connect to every configured VM."""
    config = _load(config_path)
    configure_root_logging(config.log_level)

    async def main_loop() -> None:
        emojis = await load_emoji_table(config.emojilist_url)
        supervisor = Supervisor(config, emojis)
        try:
            await supervisor.run()
        finally:
            await supervisor.stop()

    try:
        asyncio.run(main_loop())
    except KeyboardInterrupt:
        console.print("[dim]Interrupted, shutting down[/]")


@app.command("check-config")
def check_config(config_path: Optional[Path] = ConfigOption):
    """Validate the configuration and print a summary."""
    config = _load(config_path)
    console.print(f"[bold green]Configuration OK[/] username={config.username} prefix={config.prefix!r}")
    console.print(f"auth={config.auth_type} login_as={config.login_as} colon_emoji={config.colon_emoji}")
    table = Table(title="VMs")
    table.add_column("Node")
    table.add_column("URL")
    table.add_column("Origin")
    for endpoint in config.endpoints:
        table.add_row(endpoint.node_id, endpoint.url, endpoint.origin)
    console.print(table)


@app.command()
def emojis(config_path: Optional[Path] = ConfigOption):
    """Fetch the emoji list and print it."""
    config = _load(config_path)
    table_data = asyncio.run(load_emoji_table(config.emojilist_url))
    if not len(table_data):
        console.print("[yellow]No emojis loaded.[/]")
        return
    table = Table(title=f"Emojis ({len(table_data)})")
    table.add_column("Name")
    table.add_column("Description")
    table.add_column("File")
    for emoji in table_data:
        table.add_row(emoji.name, emoji.description, emoji.file)
    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
