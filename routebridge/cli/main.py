#!/usr/bin/env python3
"""
Main CLI entry point for routebridge.

- ``serve``: run the aggregator and supervise the reconciler until SIGINT or
  SIGTERM, optionally seeding routes from a static routes file
- ``render``: print the snapshot a static routes file would produce
"""

import asyncio
import signal
import sys
from pathlib import Path

import click
from loguru import logger
from pydantic import ValidationError
from rich.console import Console

from routebridge.config import RouteBridgeSettings, load_settings, missing_bigip_fields
from routebridge.core.errors import (
    ConfigurationError,
    FatalError,
    SignalDeliveryError,
)
from routebridge.core.logging import configure_logging
from routebridge.datastructures.type_aliases import SignalNumber
from routebridge.router.aggregator import Aggregator
from routebridge.router.config_model import ConfigModel, RouteDefaults
from routebridge.router.driver import Driver
from routebridge.router.registry import RouteEvent, read_view
from routebridge.router.sink import FileConfigSink
from routebridge.router.snapshot import SnapshotSerializer
from routebridge.router.static_routes import load_static_routes, seed_routes

console = Console(stderr=True)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)
EXIT_CONFIGURATION = 2


def _load_settings_or_exit(path: str | None) -> RouteBridgeSettings:
    try:
        return load_settings(path)
    except (OSError, ValueError, ValidationError) as e:
        console.print(f"[red]Invalid settings: {e}[/red]")
        sys.exit(EXIT_CONFIGURATION)


async def serve_forever(
    settings: RouteBridgeSettings, routes_path: Path | None = None
) -> None:
    """Run the aggregator and the driver until a shutdown signal is handled."""
    sink = FileConfigSink(settings.config_file)
    aggregator = Aggregator(settings, sink)
    driver = Driver(
        config_file=sink.get_output_filename(),
        driver_cmd=settings.driver.command,
        interpreter=settings.driver.interpreter,
    )

    aggregator_signals: asyncio.Queue[SignalNumber] = asyncio.Queue()
    driver_signals: asyncio.Queue[SignalNumber] = asyncio.Queue()

    def _on_signal(sig: signal.Signals) -> None:
        logger.info("Received {}, shutting down", sig.name)
        aggregator_signals.put_nowait(sig)
        driver_signals.put_nowait(sig)

    loop = asyncio.get_running_loop()
    for sig in SHUTDOWN_SIGNALS:
        loop.add_signal_handler(sig, _on_signal, sig)

    if routes_path is not None:
        registry = load_static_routes(routes_path)
        issued = seed_routes(aggregator, registry)
        logger.info("Seeded {} static routes from {}", issued, routes_path)

    try:
        await asyncio.gather(
            aggregator.run(aggregator_signals, asyncio.Event()),
            driver.run(driver_signals, asyncio.Event()),
        )
    finally:
        for sig in SHUTDOWN_SIGNALS:
            loop.remove_signal_handler(sig)
        await driver.shutdown()


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """routebridge: route registry to BIG-IP configuration bridge."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@cli.command()
@click.option(
    "--settings",
    "-s",
    "settings_path",
    type=click.Path(exists=True, dir_okay=False),
    help="JSON settings file (environment variables apply otherwise)",
)
@click.option(
    "--routes",
    "-r",
    "routes_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Static routes file to seed the registry with",
)
@click.pass_context
def serve(ctx: click.Context, settings_path: str | None, routes_path: Path | None) -> None:
    """Run the aggregator and supervise the config driver."""
    settings = _load_settings_or_exit(settings_path)
    level = "DEBUG" if ctx.obj.get("verbose") else settings.log_level
    configure_logging(level, debug_scopes=settings.debug_scopes)

    try:
        asyncio.run(serve_forever(settings, routes_path))
    except ConfigurationError as e:
        logger.error("Configuration error: {}", e)
        sys.exit(EXIT_CONFIGURATION)
    except FatalError as e:
        logger.critical("Fatal: {}", e)
        sys.exit(e.exit_code)
    except SignalDeliveryError as e:
        logger.error("Shutdown incomplete: {}", e)
        sys.exit(1)


@cli.command()
@click.option(
    "--settings",
    "-s",
    "settings_path",
    type=click.Path(exists=True, dir_okay=False),
    help="JSON settings file (environment variables apply otherwise)",
)
@click.option(
    "--routes",
    "-r",
    "routes_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Static routes file to render",
)
def render(settings_path: str | None, routes_path: Path) -> None:
    """Print the snapshot a static routes file produces, without writing it."""
    settings = _load_settings_or_exit(settings_path)
    missing = missing_bigip_fields(settings.bigip)
    if missing:
        console.print(f"[red]BIG-IP settings missing: {', '.join(missing)}[/red]")
        sys.exit(EXIT_CONFIGURATION)

    try:
        registry = load_static_routes(routes_path)
    except (OSError, ValueError) as e:
        console.print(f"[red]Invalid routes file: {e}[/red]")
        sys.exit(EXIT_CONFIGURATION)

    model = ConfigModel(RouteDefaults.from_settings(settings))
    for uri, _ in registry.each_node_with_pool():
        node = registry.find_node(uri)
        if node is not None:
            model.apply(RouteEvent.ADD, uri, read_view(node))

    data = SnapshotSerializer(settings).serialize(model.snapshot())
    click.echo(data.decode("utf-8"), nl=False)
    console.print(
        f"[green]{len(model.route_configs)} services, {len(model.rules)} rules[/green]"
    )


def main() -> None:
    """Main CLI entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(1)


if __name__ == "__main__":
    main()
