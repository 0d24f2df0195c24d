"""CLI commands for contractbot.

Provides subcommands for talking to the query understanding engine.

Commands:
    contractbot chat      - Interactive conversation (creation flows included)
    contractbot parse     - Show how one utterance is understood
    contractbot correct   - Show spelling corrections for one utterance
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import uuid
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.table import Table

from .config import AppConfig
from .core.dictionary import DictionaryStore
from .core.router import Understanding, create_router
from .core.spelling import SpellCorrector

console = Console()

EXIT_WORDS = {"/quit", "/exit"}


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure logging with rotation.

    Logs are written to ~/.contractbot/logs/ with owner-only permissions.
    Set CONTRACTBOT_DEBUG=1 for DEBUG level.
    """
    log_dir = Path.home() / ".contractbot" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_dir.chmod(0o700)

    log_file = log_dir / "contractbot.log"

    if os.environ.get("CONTRACTBOT_DEBUG"):
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, level.upper(), logging.INFO)

    # 5 MB per file, keep 3 backups
    handler = RotatingFileHandler(
        log_file,
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.addHandler(handler)

    return logging.getLogger(__name__)


def load_config(args: argparse.Namespace) -> AppConfig:
    return AppConfig.load(Path(args.project_path).resolve())


def understanding_table(result: Understanding) -> Table:
    """Render an Understanding as a two-column table."""
    table = Table(title="Understanding")
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("Original", result.original_text)
    table.add_row("Corrected", result.corrected_text)
    table.add_row("Domain", result.domain.value)
    table.add_row("Intent", result.intent)
    table.add_row("Query type", result.query_type.value)
    table.add_row("Action type", result.action_type.value)
    table.add_row("Confidence", f"{result.confidence:.2f} ({result.band.value})")
    for name, value in result.entities.items():
        table.add_row(f"Entity: {name}", value)
    for criteria in result.filters:
        value = f"{criteria.value} and {criteria.value2}" if criteria.value2 else str(criteria.value)
        table.add_row("Filter", f"{criteria.field} {criteria.operator} {value}")
    if result.session_step is not None:
        table.add_row("Session step", str(result.session_step))
    if result.next_prompt:
        table.add_row("Next prompt", result.next_prompt)
    return table


def chat(args: argparse.Namespace) -> int:
    """Interactive conversation loop.

    Args:
        args: Parsed arguments (session, verbose)

    Returns:
        Exit code (0 for success)
    """
    router = create_router(load_config(args))
    session_id = args.session or uuid.uuid4().hex[:8]

    console.print(f"[bold]contractbot[/bold] session [cyan]{session_id}[/cyan]. Type /quit to leave.")
    while True:
        try:
            text = console.input("[bold green]you>[/bold green] ")
        except EOFError:
            break
        if text.strip().lower() in EXIT_WORDS:
            break

        result = router.understand(text, session_id)
        console.print(result.response, markup=False)
        if args.verbose:
            console.print(understanding_table(result))
        if result.intent == "cmd.goodbye":
            break

    return 0


def parse(args: argparse.Namespace) -> int:
    """Show how one utterance is understood.

    Args:
        args: Parsed arguments (text)

    Returns:
        Exit code (0 for success)
    """
    router = create_router(load_config(args))
    result = router.understand(" ".join(args.text), args.session)
    console.print(understanding_table(result))
    console.print(result.response, markup=False)
    return 0


def correct(args: argparse.Namespace) -> int:
    """Show spelling corrections for one utterance.

    Args:
        args: Parsed arguments (text)

    Returns:
        Exit code (0 for success)
    """
    config = load_config(args)
    corrector = SpellCorrector(DictionaryStore.load(config.dictionary_path, config.overrides_path))
    result = corrector.correct(" ".join(args.text))

    console.print(result.corrected, markup=False)
    if not result.changed:
        console.print("[dim]No corrections.[/dim]")
        return 0

    table = Table(title="Corrections")
    table.add_column("Original", style="red")
    table.add_column("Corrected", style="green")
    table.add_column("Source", style="dim")
    table.add_column("Distance", justify="right")
    for c in result.corrections:
        table.add_row(c.original, c.corrected, c.source, str(c.distance))
    console.print(table)
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser.

    Returns:
        Configured ArgumentParser
    """
    parser = argparse.ArgumentParser(
        prog="contractbot",
        description="contractbot: contract, checklist and parts query assistant",
    )
    parser.add_argument(
        "--project",
        "-p",
        dest="project_path",
        default=".",
        help="Path to project directory holding .contractbot/config.yaml (default: current directory)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # =========================================================================
    # chat
    # =========================================================================
    chat_parser = subparsers.add_parser("chat", help="Start an interactive conversation")
    chat_parser.add_argument("--session", "-s", help="Session id (default: random)")
    chat_parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show the understanding table after every reply",
    )
    chat_parser.set_defaults(func=chat)

    # =========================================================================
    # parse
    # =========================================================================
    parse_parser = subparsers.add_parser("parse", help="Show how an utterance is understood")
    parse_parser.add_argument("text", nargs="+", help="Utterance to analyse")
    parse_parser.add_argument("--session", "-s", default="cli", help="Session id (default: cli)")
    parse_parser.set_defaults(func=parse)

    # =========================================================================
    # correct
    # =========================================================================
    correct_parser = subparsers.add_parser("correct", help="Show spelling corrections")
    correct_parser.add_argument("text", nargs="+", help="Text to correct")
    correct_parser.set_defaults(func=correct)

    return parser


def run_cli(args: list[str] | None = None, configure_logging: bool = False) -> int:
    """Run the CLI.

    Args:
        args: Command-line arguments (defaults to sys.argv[1:])
        configure_logging: Set up file logging at the project's configured level

    Returns:
        Exit code
    """
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not hasattr(parsed, "func"):
        parser.print_help()
        return 0

    try:
        if configure_logging:
            setup_logging(load_config(parsed).log_level)
        return parsed.func(parsed)
    except KeyboardInterrupt:
        console.print("\n[dim]Cancelled.[/dim]")
        return 130
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        return 1


def main() -> None:
    """Console script entry point."""
    sys.exit(run_cli(configure_logging=True))


__all__ = [
    "chat",
    "correct",
    "create_parser",
    "main",
    "parse",
    "run_cli",
    "setup_logging",
]
