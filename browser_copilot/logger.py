"""
Logging and artifact management for Browser Copilot.

Handles JSONL step logging and rich console output for a single run.
"""

import json
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .config import get_runs_dir
from .types import ActionKind, ActionResult, BrowserAction, ConfirmLevel, VisualEvent
from .utils import CARD_NUMBER_PATTERN, format_action_for_history, is_password_field, truncate_text


REDACTED = "[REDACTED]"


def slugify(text: str, max_length: int = 30) -> str:
    """Convert text to a filesystem-safe slug."""
    slug = re.sub(r'[^\w\s-]', '', text.lower())
    slug = re.sub(r'[-\s]+', '_', slug).strip('_')
    return slug[:max_length]


def redact_card_numbers(text: str) -> str:
    """Mask anything shaped like a payment card number."""
    return CARD_NUMBER_PATTERN.sub(REDACTED, text)


def sanitize_action(action: BrowserAction) -> dict[str, Any]:
    """Remove sensitive data from an action before logging."""
    params = dict(action.params or {})

    if action.kind == ActionKind.TYPE and isinstance(params.get("text"), str):
        selector = str(params.get("selector") or "")
        if is_password_field(selector) or params.get("password"):
            params["text"] = REDACTED
        else:
            params["text"] = redact_card_numbers(params["text"])

    return {"action": action.kind.value, "params": params}


CONFIRM_LEVEL_STYLES = {
    ConfirmLevel.AUTO: "green",
    ConfirmLevel.NOTIFY: "cyan",
    ConfirmLevel.CONFIRM: "yellow",
    ConfirmLevel.BLOCK: "red",
}


class RunLogger:
    """Manages logging and artifacts for a single agent run."""

    def __init__(
        self,
        task: str,
        enable_console: bool = True,
        runs_dir: Optional[Path] = None,
    ):
        """Initialize the run logger.

        Args:
            task: The task being executed (used for directory naming)
            enable_console: Whether to print to console
            runs_dir: Parent directory for run folders (defaults to ~/.browser_copilot/runs)
        """
        self.task = task
        self.console = Console() if enable_console else None

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.run_dir = (runs_dir or get_runs_dir()) / f"{timestamp}_{slugify(task)}"
        self.run_dir.mkdir(parents=True, exist_ok=True)

        self.steps_file = self.run_dir / "steps.jsonl"
        self.steps_file.touch()

        self.step_count = 0
        self.turn_count = 0
        self.skipped_count = 0

    def _append(self, record: dict[str, Any]) -> None:
        record["timestamp"] = datetime.now().isoformat()
        with open(self.steps_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")

    def log_turn(self, turn: int, response_text: str, action_count: int) -> None:
        """Log one model turn."""
        self.turn_count = turn
        self._append({
            "type": "turn",
            "turn": turn,
            "response": redact_card_numbers(truncate_text(response_text, 2000)),
            "actions": action_count,
        })

    def log_action(
        self,
        turn: int,
        action: BrowserAction,
        level: ConfirmLevel,
        result: Optional[ActionResult],
        page_url: str = "",
    ) -> None:
        """Log a single action to the JSONL file.

        Args:
            turn: Turn the action belongs to
            action: The proposed action
            level: Its confirm level
            result: The execution result, or None if the action was skipped
            page_url: Url of the page the action ran against
        """
        self.step_count += 1
        sanitized = sanitize_action(action)
        if result is None:
            self.skipped_count += 1
        outcome = (
            format_action_for_history(sanitized["action"], sanitized["params"], result.message)
            if result else {"action": sanitized["action"], "params": sanitized["params"], "result": "skipped"}
        )
        self._append({
            "type": "action",
            "step": self.step_count,
            "turn": turn,
            "url": page_url,
            "confirm_level": level.value,
            "success": result.success if result else None,
            **outcome,
        })

    def log_visual_event(self, event: VisualEvent) -> None:
        """Log a visual-loop action or result event."""
        if event.type == "action":
            self.step_count += 1
            self._append({"type": "visual_action", "step": self.step_count, "action": event.action})
        elif event.type == "result":
            result = {k: v for k, v in (event.result or {}).items() if k != "screenshot"}
            self._append({"type": "visual_result", "step": self.step_count, "result": result})

    def print_header(self, provider: str, model: str, loop: str) -> None:
        """Print the run header to console."""
        if not self.console:
            return

        self.console.print()
        self.console.print(Panel(
            f"[bold cyan]Task:[/bold cyan] {self.task}\n"
            f"[dim]Provider:[/dim] {provider}  [dim]Model:[/dim] {model}  [dim]Loop:[/dim] {loop}",
            title="Browser Copilot",
            border_style="cyan",
        ))
        self.console.print()

    def print_thinking(self, message: str) -> None:
        if not self.console:
            return
        self.console.print(f"[dim]{message}[/dim]")

    def print_action(self, action: BrowserAction, level: ConfirmLevel) -> None:
        """Print a proposed action with its confirm level."""
        if not self.console:
            return

        color = CONFIRM_LEVEL_STYLES.get(level, "white")
        params = sanitize_action(action)["params"]
        step_text = Text()
        step_text.append(f"  {action.kind.value}", style="bold cyan")
        args_str = ", ".join(f"{k}={truncate_text(repr(v), 60)}" for k, v in params.items())
        if args_str:
            step_text.append(f"({args_str})", style="dim")
        step_text.append(f" [{level.value}]", style=color)
        self.console.print(step_text)

    def print_result(self, success: bool, message: str) -> None:
        """Print an action result to console.

        Args:
            success: Whether the action succeeded
            message: Result message
        """
        if not self.console:
            return

        if success:
            self.console.print(f"    [green]✓[/green] {message}")
        else:
            self.console.print(f"    [red]✗[/red] {message}")

    def print_skipped(self, action: BrowserAction) -> None:
        if not self.console:
            return
        self.console.print(f"    [yellow]⊘[/yellow] {action.kind.value} skipped")

    def print_error(self, error: str) -> None:
        """Print an error message to console."""
        if not self.console:
            return
        self.console.print(f"  [bold red]Error:[/bold red] {error}")

    def print_final_answer(self, answer: str) -> None:
        """Print the final answer to console."""
        if not self.console:
            return

        self.console.print()
        self.console.print(Panel(
            answer or "(no answer)",
            title="Final Answer",
            border_style="green",
        ))

    def print_summary(self, state: Optional[str] = None) -> None:
        """Print the run summary to console."""
        if not self.console:
            return

        table = Table(title="Run Summary", show_header=False)
        table.add_column("Property", style="dim")
        table.add_column("Value")

        if state:
            table.add_row("Final State", state)
        table.add_row("Turns", str(self.turn_count))
        table.add_row("Actions Logged", str(self.step_count))
        table.add_row("Actions Skipped", str(self.skipped_count))
        table.add_row("Steps Log", str(self.steps_file))

        self.console.print()
        self.console.print(table)
