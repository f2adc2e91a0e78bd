"""
CLI for Browser Copilot.

Provides the command-line interface using argparse.
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .agent import AgentCallbacks
from .approver import get_approver
from .config import DEFAULTS, MAX_TURNS, MIN_TURNS, AgentConfig
from .logger import RunLogger
from .providers import PROVIDER_DEFAULT_MODELS, PROVIDER_DISPLAY_NAMES, CapabilityMatrix, Provider
from .runner import LOOP_CHOICES, choose_loop, open_browser, run_task
from .types import VisualEvent


def setup_logging(debug: bool = False) -> None:
    """Route library logging through rich."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=debug)],
        force=True,
    )
    # httpx logs every request at INFO/DEBUG
    logging.getLogger("httpx").setLevel(logging.WARNING)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="browser-copilot",
        description="Browser Copilot - a language model drives your browser, with a human in the loop.",
        epilog="""
Examples:
  # Read something off a page
  browser-copilot run "Open example.com and tell me the title"

  # Use a local OpenAI-compatible model
  browser-copilot run "Search for Playwright docs" --provider lm_studio --model qwen2.5:7b

  # Force the screenshot-driven loop
  browser-copilot run "Find the pricing page" --provider google --loop visual

  # Show which loop each provider gets
  browser-copilot providers
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Browser Copilot {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser(
        "run",
        help="Run the browser copilot on a task",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    run_parser.add_argument(
        "task",
        type=str,
        help="The task to accomplish in natural language",
    )

    run_parser.add_argument(
        "--provider",
        type=str,
        default=None,
        choices=[p.value for p in Provider],
        help=f"LLM provider (default: {DEFAULTS['provider']}, or BROWSER_COPILOT_PROVIDER)",
    )

    run_parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="LLM model name (default: the provider's default model)",
    )

    run_parser.add_argument(
        "--model-endpoint",
        type=str,
        default=None,
        help="LLM API endpoint (default: the provider's endpoint)",
    )

    run_parser.add_argument(
        "--max-turns",
        type=int,
        default=DEFAULTS["max_turns"],
        help=f"Maximum model turns, {MIN_TURNS}-{MAX_TURNS} (default: {DEFAULTS['max_turns']})",
    )

    run_parser.add_argument(
        "--headless",
        action="store_true",
        default=DEFAULTS["headless"],
        help="Run browser in headless mode",
    )

    run_parser.add_argument(
        "--start-url",
        type=str,
        default=None,
        help="Page to open before the task starts",
    )

    run_parser.add_argument(
        "--auto-approve",
        action="store_true",
        default=DEFAULTS["auto_approve"],
        help="Approve confirm-level actions without asking",
    )

    run_parser.add_argument(
        "--loop",
        choices=LOOP_CHOICES,
        default=DEFAULTS["loop"],
        help="Control loop: pick from provider capabilities, or force one (default: auto)",
    )

    run_parser.add_argument(
        "-d", "--debug",
        action="store_true",
        default=False,
        help="Enable verbose debug logging",
    )

    subparsers.add_parser(
        "providers",
        help="Show the provider capability matrix",
    )

    return parser


def _print_visual_event(console: Console, event: VisualEvent) -> None:
    if event.type == "text" and event.content.strip():
        console.print(event.content.strip(), markup=False)
    elif event.type == "result" and event.result and not event.result.get("success", True):
        console.print(f"  [red]✗[/red] {event.result.get('error') or event.result.get('message')}")


async def _run_async(config: AgentConfig, task: str, run_logger: RunLogger, console: Console) -> str:
    approver = get_approver("cli", auto_approve=config.auto_approve)
    callbacks = AgentCallbacks(
        on_thinking=run_logger.print_thinking,
        on_error=lambda e: run_logger.print_error(f"{type(e).__name__}: {e}"),
    )
    async with open_browser(config) as (bridge, surface):
        return await run_task(
            task,
            config,
            bridge,
            surface,
            approver=approver,
            callbacks=callbacks,
            on_event=lambda event: _print_visual_event(console, event),
            run_logger=run_logger,
        )


def run_command(args: argparse.Namespace) -> int:
    """Execute the run command.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    console = Console()
    setup_logging(args.debug)

    config = AgentConfig.from_cli_args(
        provider=args.provider,
        model=args.model,
        model_endpoint=args.model_endpoint,
        max_turns=args.max_turns,
        headless=args.headless,
        start_url=args.start_url,
        auto_approve=args.auto_approve,
        loop=args.loop,
        debug=args.debug,
    )

    provider_config = config.provider_config
    valid, error = provider_config.validate()
    if not valid:
        console.print(f"[bold red]{error}[/bold red] (set BROWSER_COPILOT_API_KEY)")
        return 1

    try:
        loop = choose_loop(config, CapabilityMatrix())
    except ValueError as e:
        console.print(f"[bold red]{e}[/bold red]")
        return 1

    config.ensure_directories()
    run_logger = RunLogger(args.task)
    run_logger.print_header(provider_config.display_name, provider_config.effective_model, loop.value)

    try:
        answer = asyncio.run(_run_async(config, args.task, run_logger, console))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        return 130
    except Exception as e:
        logging.getLogger(__name__).debug("Run failed", exc_info=True)
        console.print(f"[bold red]Fatal error: {e}[/bold red]")
        return 1

    run_logger.print_final_answer(answer)
    run_logger.print_summary()
    return 0


def providers_command() -> int:
    """Print the capability matrix as a table."""
    console = Console()
    matrix = CapabilityMatrix()

    table = Table(title="Provider Capabilities")
    table.add_column("Provider", style="cyan")
    table.add_column("Name")
    table.add_column("Default model", style="dim")
    table.add_column("Tool calls", justify="center")
    table.add_column("Vision", justify="center")
    table.add_column("Computer use", justify="center")
    table.add_column("Mode")
    table.add_column("Loop")

    def mark(flag: bool) -> str:
        return "[green]✓[/green]" if flag else "[dim]-[/dim]"

    for provider in Provider:
        caps = matrix.get(provider)
        table.add_row(
            provider.value,
            PROVIDER_DISPLAY_NAMES.get(provider, provider.value),
            PROVIDER_DEFAULT_MODELS.get(provider, ""),
            mark(caps.supports_structured_calls),
            mark(caps.supports_vision),
            mark(caps.supports_computer_use),
            matrix.select_mode(provider).value,
            matrix.select_loop(provider).value,
        )

    console.print(table)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point.

    Args:
        argv: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "run":
        return run_command(args)

    if args.command == "providers":
        return providers_command()

    # Unknown command
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
