from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from rich.console import Console
from rich.table import Table

from .config import AppConfig, default_config_path, load_config
from .notifications import CoalescingScheduler, DiscordTransport, FanOutDispatcher, build_session
from .persistence import RawEventLog
from .utils import redact_url
from .version import __version__

LOGGER = logging.getLogger(__name__)

CONSOLE = Console()

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s\n%(message)s\n"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(
    level: int = logging.INFO,
    *,
    console_level: Optional[int] = None,
    log_file: Optional[Path] = None,
) -> None:
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(console_level if console_level is not None else level)
    root.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        root.addHandler(file_handler)

    root.setLevel(min(level, console_handler.level))
    # urllib3 logs every pooled connection at DEBUG
    logging.getLogger("urllib3").setLevel(max(level, logging.INFO))


def _resolve_level(name: Optional[str], default: int) -> int:
    if not name:
        return default
    value = logging.getLevelName(name.upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level '{name}'")
    return value


def _setup_logging_from_args(args: argparse.Namespace) -> None:
    default_level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    level = _resolve_level(getattr(args, "log_level", None), default_level)
    console_level = _resolve_level(getattr(args, "console_level", None), level)
    configure_logging(level, console_level=console_level, log_file=getattr(args, "log_file", None))


def render_config_table(config: AppConfig) -> Table:
    table = Table(title="plexcord Configuration", show_header=True, header_style="bold")
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value")

    relay = config.relay
    table.add_row("Debounce window", f"{relay.debounce_seconds:g}s" if relay.debounce_seconds else "[yellow]off[/yellow]")
    table.add_row("Max age", f"{relay.max_age_seconds:g}s" if relay.max_age_seconds is not None else "[dim]none[/dim]")
    table.add_row("Queue capacity", str(relay.queue_capacity))
    table.add_row("Pending groups", f"{relay.max_pending_groups} ({relay.overflow_policy})")
    table.add_row("Delivery", f"timeout {relay.delivery_timeout:g}s, {relay.max_workers} worker(s)")
    table.add_row("Events", ", ".join(relay.events))
    table.add_row("Listen", f"{config.server.host}:{config.server.port}")
    table.add_row("Raw event log", str(config.server.log_dir) if config.server.log_dir else "[dim]disabled[/dim]")
    if relay.endpoints:
        for endpoint in relay.endpoints:
            table.add_row(f"Endpoint {endpoint.name}", redact_url(endpoint.url))
    else:
        table.add_row("Endpoints", "[red]none configured[/red]")
    return table


def _load(args: argparse.Namespace) -> Optional[AppConfig]:
    try:
        return load_config(args.config)
    except FileNotFoundError:
        LOGGER.error("Config file not found: %s", args.config)
    except ValueError as exc:
        LOGGER.error("Invalid configuration in %s: %s", args.config, exc)
    return None


def run_validate_config(args: argparse.Namespace) -> int:
    try:
        config = load_config(args.config)
    except FileNotFoundError:
        CONSOLE.print(f"[red]✗ Config file not found:[/red] {args.config}")
        return 1
    except ValueError as exc:
        CONSOLE.print(f"[red]✗ Validation error:[/red] {exc}")
        return 1

    CONSOLE.print(render_config_table(config))
    if not config.relay.endpoints:
        CONSOLE.print("[yellow]⚠ No endpoints configured; 'serve' will refuse to start.[/yellow]")
        return 1
    CONSOLE.print("[green]✓ Configuration passed validation[/green]")
    return 0


def run_serve(args: argparse.Namespace) -> int:
    _setup_logging_from_args(args)
    config = _load(args)
    if config is None:
        return 1
    if not config.relay.endpoints:
        LOGGER.error("No endpoints configured; add at least one under 'endpoints'")
        return 1

    import uvicorn

    from .plex.receiver import create_app

    CONSOLE.print(render_config_table(config))

    relay = config.relay
    workers = max(relay.max_workers, len(relay.endpoints))
    transport = DiscordTransport(build_session(workers), timeout=relay.delivery_timeout)
    dispatcher = FanOutDispatcher(transport, relay.endpoints, max_workers=workers)
    scheduler = CoalescingScheduler(relay, dispatcher)
    event_log = RawEventLog(config.server.log_dir) if config.server.log_dir else None
    app = create_app(config, scheduler, event_log=event_log)

    scheduler.start()
    try:
        uvicorn.run(
            app,
            host=config.server.host,
            port=config.server.port,
            log_level=logging.getLevelName(logging.getLogger().level).lower(),
            log_config=None,
        )
    finally:
        LOGGER.info("Shutting down; flushing pending notifications")
        scheduler.stop()
        dispatcher.shutdown(wait=True)
        transport.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="plexcord",
        description="Relay Plex webhook events to Discord, coalescing bursts into single messages.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=Path,
        default=default_config_path(),
        help="Path to plexcord YAML config (default: $PLEXCORD_CONFIG or /config/plexcord.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command")
    parser.set_defaults(func=run_serve, command="serve")

    serve = subparsers.add_parser("serve", help="Receive Plex webhooks and relay them")
    serve.add_argument("--verbose", action="store_true", help="Enable debug logging")
    serve.add_argument("--log-level", dest="log_level", help="Log level for the log file and console")
    serve.add_argument("--console-level", dest="console_level", help="Override the console log level")
    serve.add_argument("--log-file", dest="log_file", type=Path, help="Also write logs to this file")
    serve.set_defaults(func=run_serve)

    validate = subparsers.add_parser("validate-config", help="Load the config and print its effective values")
    validate.set_defaults(func=run_validate_config)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
