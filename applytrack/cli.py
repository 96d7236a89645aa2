"""applytrack CLI - inspect and drive the offline action queue.

Usage:
    applytrack sync status           Show queue length and connectivity
    applytrack sync list             List queued actions
    applytrack sync flush            Deliver queued actions now
    applytrack sync remove <id>      Drop one queued action
    applytrack sync clear            Drop every queued action
    applytrack --version             Show version information
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import NoReturn

from rich.console import Console
from rich.table import Table
from rich.text import Text

from applytrack.config import ApplytrackConfig, get_config, load_config
from applytrack.errors import ApplytrackError, ConfigurationError, PersistenceError, SyncError
from applytrack.sync import ActionQueue, create_action_queue
from applytrack.utils.logging import setup_logging

console = Console()
logger = logging.getLogger(__name__)

QueueCommand = Callable[[ActionQueue, argparse.Namespace], Awaitable[int]]

PRIORITY_STYLES = {"high": "red", "medium": "yellow", "low": "dim"}


def _format_error(error: ApplytrackError) -> None:
    """Display an applytrack error with a hint where one helps."""
    console.print(f"[red]Error: {error.message}[/red]")

    if isinstance(error, ConfigurationError) and error.details.get("config_path"):
        console.print(f"[yellow]Config file: {error.details['config_path']}[/yellow]")
    elif isinstance(error, PersistenceError) and error.details.get("location"):
        console.print(f"[yellow]Queue storage: {error.details['location']}[/yellow]")

    logger.debug(f"Error details: code={error.code}, details={error.details}")


def _format_timestamp(value: float | None) -> str:
    if value is None:
        return "never"
    return datetime.fromtimestamp(value, tz=UTC).strftime("%Y-%m-%d %H:%M:%S UTC")


def _load_settings(args: argparse.Namespace) -> ApplytrackConfig:
    if args.config:
        return load_config(Path(args.config))
    return get_config()


async def _probe(queue: ActionQueue) -> bool | None:
    """Probe connectivity if a probe URL is configured, else None (unknown)."""
    if not queue.connectivity.probe_configured:
        return None
    return await queue.connectivity.probe()


async def cmd_sync_status(queue: ActionQueue, args: argparse.Namespace) -> int:
    """Display queue status.

    Args:
        queue: Offline action queue.
        args: Parsed arguments.

    Returns:
        Exit code.
    """
    online = await _probe(queue)
    status = queue.get_status()
    stats = queue.get_stats()

    table = Table(title="Offline Sync Status")
    table.add_column("Metric", style="bold")
    table.add_column("Value")

    if online is None:
        connectivity = Text("unknown (no probe_url)", style="dim")
    elif online:
        connectivity = Text("online", style="green")
    else:
        connectivity = Text("offline", style="red")
    table.add_row("Connectivity", connectivity)
    table.add_row("Queued actions", str(status.queue_length))
    for priority, count in stats["by_priority"].items():
        table.add_row(f"  {priority}", str(count))
    table.add_row("Last sync attempt", _format_timestamp(status.last_sync_attempt))

    console.print(table)
    return 0


async def cmd_sync_list(queue: ActionQueue, args: argparse.Namespace) -> int:
    """List queued actions.

    Args:
        queue: Offline action queue.
        args: Parsed arguments.

    Returns:
        Exit code.
    """
    actions = queue.snapshot()
    if not actions:
        console.print("[dim]No queued actions.[/dim]")
        return 0

    table = Table(title=f"Queued Actions ({len(actions)})")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Kind", style="bold")
    table.add_column("Method")
    table.add_column("Endpoint")
    table.add_column("Priority")
    table.add_column("Retries")
    table.add_column("Created")

    for action in actions:
        table.add_row(
            action.id,
            action.kind,
            action.method.value,
            action.endpoint,
            Text(action.priority.value, style=PRIORITY_STYLES.get(action.priority.value, "")),
            f"{action.retry_count}/{action.max_retries}",
            _format_timestamp(action.created_at),
        )

    console.print(table)
    return 0


async def cmd_sync_flush(queue: ActionQueue, args: argparse.Namespace) -> int:
    """Deliver queued actions now and report per-action results.

    Args:
        queue: Offline action queue.
        args: Parsed arguments.

    Returns:
        Exit code (1 if offline or any delivery failed).
    """
    online = await _probe(queue)
    if online is False:
        console.print("[yellow]Offline: nothing was sent.[/yellow]")
        return 1

    if not len(queue):
        console.print("[dim]Queue is empty, nothing to flush.[/dim]")
        return 0

    dead: list[SyncError] = []
    queue.on_error(dead.append)

    kinds = {action.id: action.kind for action in queue.snapshot()}
    results = await queue.sync_now()

    table = Table(title="Sync Results")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Kind", style="bold")
    table.add_column("Result")

    for result in results:
        if result.success:
            outcome = Text("ok", style="green")
        else:
            outcome = Text(f"failed: {result.error}", style="red")
        table.add_row(result.action_id, kinds.get(result.action_id, "?"), outcome)

    console.print(table)

    failed = sum(1 for r in results if not r.success)
    console.print(
        f"{len(results) - failed} delivered, {failed} failed, {len(queue)} still queued"
    )
    for error in dead:
        console.print(f"[red]{error.message}[/red]")

    return 1 if failed else 0


async def cmd_sync_remove(queue: ActionQueue, args: argparse.Namespace) -> int:
    """Remove one queued action by id.

    Args:
        queue: Offline action queue.
        args: Parsed arguments.

    Returns:
        Exit code.
    """
    if queue.remove(args.action_id):
        console.print(f"[green]Removed {args.action_id}[/green]")
        return 0

    console.print(f"[yellow]No queued action with id {args.action_id}[/yellow]")
    return 1


async def cmd_sync_clear(queue: ActionQueue, args: argparse.Namespace) -> int:
    """Remove every queued action.

    Args:
        queue: Offline action queue.
        args: Parsed arguments.

    Returns:
        Exit code.
    """
    count = len(queue)
    queue.clear()
    console.print(f"[green]Cleared {count} queued actions[/green]")
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    """Display version information."""
    from applytrack import __version__

    console.print(f"applytrack v{__version__}")
    return 0


async def _run_queue_command(
    handler: QueueCommand, args: argparse.Namespace, settings: ApplytrackConfig
) -> int:
    queue = create_action_queue(settings.sync)
    try:
        return await handler(queue, args)
    finally:
        await queue.close()


SYNC_COMMANDS: dict[str, QueueCommand] = {
    "status": cmd_sync_status,
    "list": cmd_sync_list,
    "flush": cmd_sync_flush,
    "remove": cmd_sync_remove,
    "clear": cmd_sync_clear,
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all subcommands.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog="applytrack",
        description="applytrack - offline-first job application tracker",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="enable debug logging for troubleshooting",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="show version information and exit",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="config file (default: ~/.applytrack/config.json)",
    )

    subparsers = parser.add_subparsers(dest="command", title="commands")

    sync_parser = subparsers.add_parser("sync", help="inspect and deliver offline actions")
    sync_sub = sync_parser.add_subparsers(dest="sync_command", title="sync commands")

    sync_sub.add_parser("status", help="show queue length and connectivity")
    sync_sub.add_parser("list", help="list queued actions")
    sync_sub.add_parser("flush", help="deliver queued actions now")

    remove_parser = sync_sub.add_parser("remove", help="drop one queued action")
    remove_parser.add_argument("action_id", help="id of the action to remove")

    sync_sub.add_parser("clear", help="drop every queued action")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Command-line arguments. Uses sys.argv if None.

    Returns:
        Exit code.
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.version:
        return cmd_version(args)

    if args.command != "sync" or not getattr(args, "sync_command", None):
        parser.print_help()
        return 1

    settings = _load_settings(args)
    setup_logging(logging.DEBUG if args.verbose else getattr(logging, settings.log_level))

    return asyncio.run(_run_queue_command(SYNC_COMMANDS[args.sync_command], args, settings))


def run() -> NoReturn:
    """Entry point that handles cleanup and exit."""
    try:
        exit_code = main()
    except KeyboardInterrupt:
        console.print("\n[dim]Interrupted.[/dim]")
        exit_code = 130
    except ApplytrackError as e:
        _format_error(e)
        logger.exception("applytrack error")
        exit_code = 1
    except Exception as e:
        console.print(f"[red]Unexpected error: {e}[/red]")
        logger.exception("Unexpected error")
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    run()
