"""
Agent core for Browser Copilot.

Provides the structural agent loop: a bounded, multi-turn conversation in
which the model proposes browser actions, the safety classifier gates them
and the dispatcher executes them against the page.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from .approver import Approver, ConsoleApprover, confirm_with_timeout
from .bridge import ExecutionBridge
from .config import AgentConfig
from .llm_client import create_action_parser
from .logger import RunLogger
from .prompts import (
    build_fallback_prompt,
    build_outcome_message,
    build_system_prompt,
    build_user_message,
)
from .providers import CapabilityMatrix
from .safety import SafetyClassifier, describe_action, format_confirm_message
from .tool_schemas import BROWSER_ACTION_TOOL
from .tools import ActionDispatcher
from .types import (
    ActionResult,
    BrowserAction,
    ConfirmLevel,
    ConversationMessage,
    ModelResponse,
    PageSummary,
)


logger = logging.getLogger(__name__)


STOPPED_MARKER = "\n\n[Stopped by user]"
MAX_TURNS_MARKER = "\n\n[Reached maximum turns]"


class ChatClient(Protocol):
    async def chat(
        self, messages: list[ConversationMessage], tools: Optional[list[dict]] = None
    ) -> ModelResponse: ...


class AgentState(str, Enum):
    """Lifecycle of a single run."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    EXHAUSTED_TURNS = "exhausted_turns"
    FAILED = "failed"


@dataclass
class AgentCallbacks:
    """Optional progress hooks. Each is called synchronously from the loop."""
    on_thinking: Optional[Callable[[str], None]] = None
    on_action_start: Optional[Callable[[BrowserAction], None]] = None
    on_action_complete: Optional[Callable[[BrowserAction, ActionResult], None]] = None
    on_page_summary: Optional[Callable[[PageSummary], None]] = None
    on_error: Optional[Callable[[BaseException], None]] = None


@dataclass
class AgentRunResult:
    """Outcome of the most recent run."""
    output: str
    state: AgentState
    turns: int
    actions_executed: int
    actions_skipped: int


class BrowserAgent:
    """Structural agent loop that addresses elements by index."""

    def __init__(
        self,
        llm_client: ChatClient,
        bridge: ExecutionBridge,
        provider: str,
        config: Optional[AgentConfig] = None,
        matrix: Optional[CapabilityMatrix] = None,
        approver: Optional[Approver] = None,
        callbacks: Optional[AgentCallbacks] = None,
        run_logger: Optional[RunLogger] = None,
        dispatcher: Optional[ActionDispatcher] = None,
        classifier: Optional[SafetyClassifier] = None,
    ):
        """Initialize the browser agent.

        Args:
            llm_client: Model client exposing `chat(messages, tools)`
            bridge: Execution bridge for the active page
            provider: Provider id, looked up in the capability matrix
            config: Agent configuration
            matrix: Capability matrix (defaults to the static table)
            approver: Confirmation channel for gated actions
            callbacks: Progress hooks
            run_logger: Optional JSONL/console run logger
            dispatcher: Action dispatcher (defaults to one over `bridge`)
            classifier: Safety classifier
        """
        self.llm_client = llm_client
        self.bridge = bridge
        self.provider = provider
        self.config = config or AgentConfig()
        self.matrix = matrix or CapabilityMatrix()
        self.approver = approver or ConsoleApprover()
        self.callbacks = callbacks or AgentCallbacks()
        self.run_logger = run_logger
        self.dispatcher = dispatcher or ActionDispatcher(bridge)
        self.classifier = classifier or SafetyClassifier()

        # Strategy is fixed for the agent's lifetime
        self.mode = self.matrix.select_mode(provider)
        self.uses_structured_calls = self.matrix.uses_structured_parsing(provider)
        self.parser = create_action_parser(self.uses_structured_calls)
        self.tools = [BROWSER_ACTION_TOOL] if self.uses_structured_calls else None

        self.state = AgentState.IDLE
        self.messages: list[ConversationMessage] = []
        self.last_result: Optional[AgentRunResult] = None
        self._abort = asyncio.Event()
        self._turns = 0
        self._executed = 0
        self._skipped = 0

    def stop(self) -> None:
        """Request a stop. Takes effect at the next turn boundary."""
        self._abort.set()

    def _emit(self, name: str, *args: Any) -> None:
        callback = getattr(self.callbacks, name)
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Callback %s failed", name)

    async def _observe(self) -> PageSummary:
        """Capture the page summary, or the placeholder if the page is unreachable."""
        try:
            page = await self.bridge.get_page_summary(self.config.visible_text_max_chars)
        except Exception as e:
            logger.warning("Page summary unavailable (%s: %s)", type(e).__name__, e)
            page = PageSummary.unknown()
        self._emit("on_page_summary", page)
        return page

    def _finish(self, state: AgentState, output: str) -> str:
        self.state = state
        self.last_result = AgentRunResult(
            output=output,
            state=state,
            turns=self._turns,
            actions_executed=self._executed,
            actions_skipped=self._skipped,
        )
        logger.info(
            "Run finished: %s after %d turn(s), %d executed, %d skipped",
            state.value, self._turns, self._executed, self._skipped,
        )
        return output

    async def run(self, task: str) -> str:
        """Run the agent on a task.

        Args:
            task: Natural-language task

        Returns:
            The model's final text, with a marker appended when the run was
            stopped or ran out of turns

        Raises:
            httpx.HTTPError: On model/network errors, after on_error is called
        """
        self._abort = asyncio.Event()
        self.state = AgentState.RUNNING
        self._turns = self._executed = self._skipped = 0
        max_turns = self.config.effective_max_turns

        page = await self._observe()
        system_prompt = (
            build_system_prompt(self.mode)
            if self.uses_structured_calls
            else build_fallback_prompt(self.mode)
        )
        self.messages = [
            ConversationMessage("system", system_prompt),
            ConversationMessage("user", build_user_message(task, page)),
        ]

        last_response = ""
        while self._turns < max_turns:
            if self._abort.is_set():
                return self._finish(AgentState.STOPPED, last_response + STOPPED_MARKER)

            self._emit("on_thinking", f"Turn {self._turns + 1}/{max_turns}")

            try:
                response = await self.llm_client.chat(self.messages, self.tools)
            except asyncio.CancelledError:
                if self._abort.is_set():
                    return self._finish(AgentState.STOPPED, last_response + STOPPED_MARKER)
                raise
            except Exception as e:
                self._emit("on_error", e)
                self._finish(AgentState.FAILED, last_response)
                raise

            last_response = response.content
            actions = self.parser.parse(response)
            if self.run_logger:
                self.run_logger.log_turn(self._turns + 1, response.content, len(actions))

            if not actions:
                if not response.content and not response.tool_calls:
                    logger.warning("Model returned an empty response; ending run")
                return self._finish(AgentState.COMPLETED, response.content)

            results = []
            for action in actions:
                results.append(await self._handle_action(action, page))

            page = await self._observe()
            self.messages.append(ConversationMessage(
                "assistant", response.content or f"Executed {len(actions)} action(s)"
            ))
            self.messages.append(ConversationMessage("user", build_outcome_message(results, page)))
            self._turns += 1

        return self._finish(AgentState.EXHAUSTED_TURNS, last_response + MAX_TURNS_MARKER)

    async def _handle_action(self, action: BrowserAction, page: PageSummary) -> ActionResult:
        """Gate, dispatch and record one action."""
        level = self.classifier.classify(action, page)
        if self.run_logger:
            self.run_logger.print_action(action, level)

        if level == ConfirmLevel.CONFIRM:
            approved = await confirm_with_timeout(
                self.approver,
                format_confirm_message(action, page),
                action,
                self.config.confirm_timeout_s,
            )
            if not approved:
                return self._skip(action, level, page, "Action cancelled by user")

        if level == ConfirmLevel.BLOCK:
            return self._skip(action, level, page, "Action blocked for safety")

        self._emit("on_action_start", action)
        result = await self.dispatcher.dispatch(action)
        self._emit("on_action_complete", action, result)
        self._executed += 1
        if self.run_logger:
            self.run_logger.log_action(self._turns + 1, action, level, result, page.url)
            self.run_logger.print_result(result.success, result.message)

        await asyncio.sleep(self.config.action_settle_ms / 1000)
        return result

    def _skip(self, action: BrowserAction, level: ConfirmLevel, page: PageSummary, reason: str) -> ActionResult:
        logger.info("Skipped %s: %s", describe_action(action), reason)
        self._skipped += 1
        if self.run_logger:
            self.run_logger.log_action(self._turns + 1, action, level, None, page.url)
            self.run_logger.print_skipped(action)
        return ActionResult(success=False, message=reason)
