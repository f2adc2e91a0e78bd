"""
Visual control loop for Browser Copilot.

Provides the screenshot-driven strategy for providers with a computer-use
endpoint. The model sees the page as an image, answers with function calls
on a normalized 1000x1000 grid, and every call is executed directly on the
visual surface before a fresh screenshot goes back.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Iterable, Optional, Protocol, Union

from .bridge import PageContext, VisualSurface
from .config import AgentConfig
from .prompts import VISUAL_SYSTEM_PROMPT
from .types import ConversationMessage, VisualEvent
from .utils import ensure_scheme


logger = logging.getLogger(__name__)


GRID_SIZE = 1000
DEFAULT_VIEWPORT = (1400, 900)

STOPPED_MARKER = "\n\n[Stopped by user]"
# Model-requested waits are capped at a minute
MAX_WAIT_S = 60

CLICK_ACTIONS = frozenset({"click", "click_at", "mouse_click"})
TYPE_ACTIONS = frozenset({"type", "type_text", "type_text_at", "keyboard_input"})
SCROLL_ACTIONS = frozenset({"scroll", "scroll_down", "scroll_up", "mouse_scroll", "scroll_document"})
NAVIGATE_ACTIONS = frozenset({"navigate", "open_web_browser", "navigate_to", "go_to"})
WAIT_ACTIONS = frozenset({"wait", "sleep", "delay"})
SCREENSHOT_ACTIONS = frozenset({"get_screenshot", "screenshot"})

# Actions after which the page may load a new document
NAVIGATION_ACTIONS = NAVIGATE_ACTIONS | CLICK_ACTIONS | frozenset(
    {"go_back", "back", "go_forward", "forward"}
)


class ComputerUseClient(Protocol):
    async def generate(
        self, contents: list[dict[str, Any]], system_instruction: Optional[str] = None
    ) -> Optional[dict[str, Any]]: ...


def scale_coordinates(
    x: float,
    y: float,
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> tuple[int, int]:
    """Map grid coordinates to viewport pixels.

    Each axis scales independently as round(v / 1000 * dimension). An
    unknown viewport falls back to 1400x900.
    """
    width = width or DEFAULT_VIEWPORT[0]
    height = height or DEFAULT_VIEWPORT[1]
    return round(x / GRID_SIZE * width), round(y / GRID_SIZE * height)


def _point(args: dict[str, Any]) -> tuple[float, float]:
    coordinate = args.get("coordinate") or {}
    x = args.get("x", coordinate.get("x", 0)) or 0
    y = args.get("y", coordinate.get("y", 0)) or 0
    return float(x), float(y)


def _image_part(data: str) -> dict[str, Any]:
    return {"inline_data": {"mime_type": "image/png", "data": data}}


class VisualControlLoop:
    """Screenshot-driven control loop over a visual surface."""

    def __init__(
        self,
        client: ComputerUseClient,
        surface: VisualSurface,
        config: Optional[AgentConfig] = None,
        system_prompt: str = VISUAL_SYSTEM_PROMPT,
    ):
        """Initialize the visual loop.

        Args:
            client: Computer-use model client exposing `generate(contents, system_instruction)`
            surface: Screenshot and point-action surface
            config: Agent configuration (turn ceiling, settle delays)
            system_prompt: System instruction sent with every request
        """
        self.client = client
        self.surface = surface
        self.config = config or AgentConfig()
        self.system_prompt = system_prompt
        self._abort = asyncio.Event()

    def stop(self) -> None:
        """Request a stop. Takes effect at the next turn boundary."""
        self._abort.set()

    async def _viewport(self) -> PageContext:
        try:
            return await self.surface.get_page_context()
        except Exception as e:
            logger.debug("Page context unavailable: %s", e)
            return PageContext(url="about:blank", width=DEFAULT_VIEWPORT[0], height=DEFAULT_VIEWPORT[1])

    async def _scaled(self, args: dict[str, Any]) -> tuple[int, int]:
        context = await self._viewport()
        x, y = _point(args)
        return scale_coordinates(x, y, context.width, context.height)

    async def execute_action(self, name: str, args: dict[str, Any]) -> dict[str, Any]:
        """Execute one model function call on the surface. Never raises.

        Args:
            name: Function name from the model (aliases accepted)
            args: Function arguments

        Returns:
            Result payload with at least a "success" flag
        """
        try:
            return await self._execute(name, args or {})
        except Exception as e:
            logger.warning("Visual action %s failed: %s", name, e)
            return {"success": False, "error": f"{type(e).__name__}: {e}"}

    async def _execute(self, name: str, args: dict[str, Any]) -> dict[str, Any]:
        if name in CLICK_ACTIONS:
            x, y = await self._scaled(args)
            return await self.surface.click_at(x, y)

        if name in TYPE_ACTIONS:
            text = args.get("text") or args.get("content") or ""
            if args.get("x") is not None and args.get("y") is not None:
                x, y = await self._scaled(args)
                await self.surface.click_at(x, y)
                await asyncio.sleep(self.config.interaction_settle_ms / 1000)
            return await self.surface.type_into_focused(text)

        if name in SCROLL_ACTIONS:
            direction = -1 if name == "scroll_up" or args.get("direction") == "up" else 1
            amount = args.get("amount") or args.get("pixels") or args.get("delta") or 500
            return await self.surface.scroll_by(direction * int(amount))

        if name in NAVIGATE_ACTIONS:
            url = args.get("url") or args.get("address") or args.get("uri")
            if not url:
                return {"success": False, "error": "No URL provided for navigation"}
            return await self.surface.navigate(ensure_scheme(url))

        if name in WAIT_ACTIONS:
            seconds = args.get("seconds") or (
                args["milliseconds"] / 1000 if args.get("milliseconds") else 1
            )
            seconds = min(max(float(seconds), 0.0), MAX_WAIT_S)
            await asyncio.sleep(seconds)
            return {"success": True, "message": f"Waited {seconds}s"}

        if name == "wait_5_seconds":
            await asyncio.sleep(5)
            return {"success": True, "message": "Waited 5 seconds"}

        if name in SCREENSHOT_ACTIONS:
            # The fresh screenshot is attached to every function response
            return {"success": True, "message": "Screenshot captured"}

        return {"success": False, "error": f"Unknown function: {name}"}

    async def _capture(self):
        await self.surface.wait_for_load(self.config.load_wait_timeout_s)
        return await self.surface.capture_screenshot()

    async def stream(
        self,
        task: str,
        history: Iterable[Union[ConversationMessage, dict[str, str]]] = (),
    ) -> AsyncIterator[VisualEvent]:
        """Run the task, yielding events as they happen.

        Args:
            task: Natural-language task
            history: Earlier chat messages to replay as context

        Yields:
            VisualEvent items: text, action, result, and a final complete
        """
        self._abort = asyncio.Event()

        screenshot = await self._capture()
        if not screenshot.data:
            raise ValueError("Screenshot data is empty")

        contents: list[dict[str, Any]] = []
        for msg in history:
            role = msg.role if isinstance(msg, ConversationMessage) else msg.get("role", "user")
            text = msg.content if isinstance(msg, ConversationMessage) else msg.get("content", "")
            contents.append({"role": "user" if role == "user" else "model", "parts": [{"text": text}]})
        contents.append({"role": "user", "parts": [{"text": task}, _image_part(screenshot.data)]})

        response_text = ""
        for turn in range(self.config.visual_max_turns):
            if self._abort.is_set():
                response_text += STOPPED_MARKER
                break

            content = await self.client.generate(contents, self.system_prompt)
            if content is None:
                break
            parts = content.get("parts") or []
            contents.append(content)

            calls = [p["functionCall"] for p in parts if p.get("functionCall")]
            for part in parts:
                if isinstance(part.get("text"), str):
                    response_text += part["text"] if not calls else part["text"] + "\n"
                    yield VisualEvent(type="text", content=part["text"])

            if not calls:
                break

            function_responses = []
            for call in calls:
                name = call.get("name", "")
                args = call.get("args") or {}

                yield VisualEvent(type="text", content=f"\n**[Executing: {name}]**\n")
                yield VisualEvent(type="action", action={"name": name, "args": args})

                result = await self.execute_action(name, args)

                settle_ms = (
                    self.config.navigation_settle_ms
                    if name in NAVIGATION_ACTIONS
                    else self.config.interaction_settle_ms
                )
                await asyncio.sleep(settle_ms / 1000)

                screenshot = await self._capture()
                context = await self._viewport()
                function_responses.append({
                    "name": name,
                    "response": {
                        **result,
                        "url": context.url,
                        "viewport_info": (
                            f" Viewport: {context.width}x{context.height}" if context.width else ""
                        ),
                        "success": result.get("success") is not False,
                    },
                })

                if result.get("success"):
                    yield VisualEvent(type="text", content=result.get("message") or "Action completed successfully")
                else:
                    yield VisualEvent(
                        type="text",
                        content=f" {result.get('error') or result.get('message') or 'Action failed'}",
                    )
                yield VisualEvent(type="result", result=result)

            user_parts: list[dict[str, Any]] = [{"function_response": fr} for fr in function_responses]
            if screenshot and screenshot.data:
                user_parts.append(_image_part(screenshot.data))
            contents.append({"role": "user", "parts": user_parts})
            logger.debug("Visual turn %d: %d call(s)", turn + 1, len(calls))

        yield VisualEvent(type="complete", content=response_text)
