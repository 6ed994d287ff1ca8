"""Command-line entry point.

    python -m agent_cli providers [--check]
    python -m agent_cli run --model sonnet "Summarize the README"
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .providers import (
    ConfigurationError,
    MessageKind,
    ProviderRegistry,
    Query,
    create_default_registry,
)

logger = logging.getLogger(__name__)


def _providers_table(registry: ProviderRegistry, check: bool) -> Table:
    table = Table(title="CLI providers", show_lines=False)
    table.add_column("Provider", style="bold")
    table.add_column("Models")
    table.add_column("Strategy")
    table.add_column("Location")
    if check:
        table.add_column("Version")

    for provider in registry.list_all():
        patterns = ", ".join(provider.descriptor.model_patterns) or "-"
        try:
            state = provider.locate()
        except ConfigurationError as e:
            row = [provider.name, patterns, "[red]unsupported[/red]", str(e)]
            if check:
                row.append("-")
            table.add_row(*row)
            continue

        if state.is_resolved:
            strategy = state.location.strategy.value
            location = state.location.display
        else:
            strategy = "[yellow]unavailable[/yellow]"
            location = state.reason
        row = [provider.name, patterns, strategy, location]
        if check:
            row.append((provider.check_version() or "-") if state.is_resolved else "-")
        table.add_row(*row)
    return table


def cmd_providers(args: argparse.Namespace, console: Console) -> int:
    registry = create_default_registry(args.config)
    console.print(_providers_table(registry, args.check))
    return 0


async def _run_query(args: argparse.Namespace, console: Console) -> int:
    registry = create_default_registry(args.config)
    if args.provider:
        provider = registry.get_by_name(args.provider)
    elif args.model:
        provider = registry.get_for_model(args.model)
    else:
        provider = registry.list_all()[0]

    query = Query(prompt=args.prompt, cwd=args.cwd, model=args.model, timeout=args.timeout)
    exit_code = 0
    # Leaving the block (including on Ctrl-C) stops the CLI process.
    async with provider.execute(query) as run:
        async for message in run:
            if message.kind is MessageKind.TEXT_DELTA:
                console.print(message.text, end="", markup=False, highlight=False)
            elif message.kind is MessageKind.TOOL_INVOCATION:
                console.print(f"\n[dim]-> {message.tool_call.name}[/dim]")
            elif message.kind is MessageKind.ERROR:
                console.print(f"\n[red]{message.error.kind.value}:[/red] {message.error}")
                exit_code = 1
            elif message.kind is MessageKind.COMPLETION:
                console.print()
    return exit_code


def cmd_run(args: argparse.Namespace, console: Console) -> int:
    try:
        return asyncio.run(_run_query(args, console))
    except KeyboardInterrupt:
        return 130


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="agent_cli",
        description="Uniform execution layer over AI agent CLIs",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Path to .env file (default: .env)",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Provider overrides file, JSON or YAML (default: $AGENT_CLI_PROVIDERS_CONFIG)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    providers_parser = subparsers.add_parser("providers", help="List providers and where their CLIs are")
    providers_parser.add_argument(
        "--check",
        action="store_true",
        help="Also run each located CLI with --version",
    )

    run_parser = subparsers.add_parser("run", help="Run one prompt and stream the answer")
    run_parser.add_argument("prompt", help="Prompt to send")
    run_parser.add_argument("--model", "-m", help="Model id or alias; selects the provider")
    run_parser.add_argument("--provider", "-p", help="Provider name (overrides --model routing)")
    run_parser.add_argument("--cwd", help="Working directory for the CLI")
    run_parser.add_argument("--timeout", type=float, help="Seconds before the run is stopped")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    if load_dotenv(args.env_file):
        logger.debug(f"Loaded environment from {args.env_file}")

    console = Console()
    try:
        if args.command == "providers":
            return cmd_providers(args, console)
        return cmd_run(args, console)
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
