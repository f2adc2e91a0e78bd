"""
Confirmation channel for Browser Copilot.

Provides a unified interface for confirming gated actions from the CLI or
from a UI actor. Every wait is bounded and fails closed.
"""

import asyncio
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm

from .types import BrowserAction


logger = logging.getLogger(__name__)


class Approver(ABC):
    """Abstract base class for action confirmation handlers."""

    @abstractmethod
    async def request_confirmation(self, message: str, action: BrowserAction) -> bool:
        """Ask the user whether a gated action may run.

        Args:
            message: Human-readable description of the pending action
            action: The action awaiting confirmation

        Returns:
            True if the user approved the action
        """
        pass


class ConsoleApprover(Approver):
    """CLI confirmation via Rich prompts.

    The blocking prompt runs on its own daemon thread and reports back
    through a loop future, so an abandoned prompt never holds up the event
    loop or its shutdown. Only one prompt owns stdin at a time; requests
    made while a timed-out prompt is still waiting for input are denied.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self._prompt_thread: Optional[threading.Thread] = None

    @property
    def prompt_pending(self) -> bool:
        return self._prompt_thread is not None and self._prompt_thread.is_alive()

    async def request_confirmation(self, message: str, action: BrowserAction) -> bool:
        if self.prompt_pending:
            logger.warning("Earlier confirmation prompt still waiting for input, denying: %s", message)
            return False

        self.console.print()
        self.console.print(Panel(
            f"{message}\n\n[dim]{action.to_dict()}[/dim]",
            title="[bold yellow]Confirmation required[/bold yellow]",
            border_style="yellow",
        ))

        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def settle(approved: bool) -> None:
            if not future.done():
                future.set_result(approved)

        def ask() -> None:
            try:
                approved = Confirm.ask(
                    "[yellow]Allow this action?[/yellow]", default=False, console=self.console
                )
            except Exception as e:
                logger.warning("Confirmation prompt failed: %s", e)
                approved = False
            try:
                loop.call_soon_threadsafe(settle, bool(approved))
            except RuntimeError:
                # Loop already closed; the answer came too late to matter
                logger.debug("Discarding late confirmation answer")

        self._prompt_thread = threading.Thread(target=ask, name="confirm-prompt", daemon=True)
        self._prompt_thread.start()
        return await future


class AutoApprover(Approver):
    """Automatically approve all actions.

    Used when:
    - auto-approve mode is enabled
    - Testing
    """

    async def request_confirmation(self, message: str, action: BrowserAction) -> bool:
        return True


@dataclass
class ConfirmationRequest:
    """A pending confirmation handed to a UI actor."""
    id: int
    message: str
    action: BrowserAction
    future: asyncio.Future = field(repr=False)


class ChannelApprover(Approver):
    """Request/response confirmation over an asyncio queue.

    A UI actor consumes `requests` and answers with `respond`. Requests
    left unanswered are settled by the caller's timeout.
    """

    def __init__(self):
        self.requests: asyncio.Queue[ConfirmationRequest] = asyncio.Queue()
        self._pending: dict[int, ConfirmationRequest] = {}
        self._ids = itertools.count(1)

    async def request_confirmation(self, message: str, action: BrowserAction) -> bool:
        future = asyncio.get_running_loop().create_future()
        request = ConfirmationRequest(next(self._ids), message, action, future)
        self._pending[request.id] = request
        await self.requests.put(request)
        try:
            return bool(await future)
        finally:
            self._pending.pop(request.id, None)

    def respond(self, request_id: int, approved: bool) -> bool:
        """Answer a pending request.

        Returns:
            False if the request is unknown or already settled
        """
        request = self._pending.get(request_id)
        if request is None or request.future.done():
            return False
        request.future.set_result(approved)
        return True

    @property
    def pending(self) -> list[ConfirmationRequest]:
        return list(self._pending.values())


async def confirm_with_timeout(
    approver: Approver,
    message: str,
    action: BrowserAction,
    timeout_s: float,
) -> bool:
    """Await a confirmation with a bounded wait.

    Args:
        approver: Confirmation channel
        message: Description shown to the user
        action: The gated action
        timeout_s: Maximum seconds to wait

    Returns:
        True only on an explicit approval; timeouts and errors deny
    """
    try:
        return bool(await asyncio.wait_for(approver.request_confirmation(message, action), timeout_s))
    except asyncio.TimeoutError:
        logger.warning("Confirmation timed out after %.0fs: %s", timeout_s, message)
        return False
    except Exception as e:
        # On any error, deny
        logger.warning("Confirmation failed (%s: %s): %s", type(e).__name__, e, message)
        return False


def get_approver(mode: str = "cli", auto_approve: bool = False) -> Approver:
    """Get the appropriate approver for the given mode.

    Args:
        mode: "cli", "channel", or "auto"
        auto_approve: If True, always return AutoApprover

    Returns:
        Appropriate Approver instance
    """
    if auto_approve or mode == "auto":
        return AutoApprover()

    if mode == "channel":
        return ChannelApprover()

    # Default: CLI mode
    return ConsoleApprover()
