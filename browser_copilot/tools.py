"""
Action dispatcher for Browser Copilot.

Provides translation of validated browser actions into execution-bridge
primitives. Dispatch never raises: every failure becomes a failed
ActionResult so the agent loop can report it to the model.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError
from pydantic import BaseModel, ValidationError

from .bridge import BridgeError, ExecutionBridge
from .tool_schemas import (
    ClickParams,
    DragDropParams,
    ElementAddress,
    ExecuteJSParams,
    GetElementDetailsParams,
    GetElementsParams,
    HoverParams,
    NavigateParams,
    PressKeyParams,
    ScrollParams,
    SelectParams,
    SwitchTabParams,
    TypeParams,
    UploadFileParams,
    WaitParams,
    get_schema_for_action,
)
from .types import ActionKind, ActionResult, BrowserAction
from .utils import truncate_text


logger = logging.getLogger(__name__)


def _format_validation_error(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "params"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


class ActionDispatcher:
    """Executes browser actions against an execution bridge."""

    def __init__(self, bridge: ExecutionBridge):
        """Initialize the dispatcher.

        Args:
            bridge: Execution bridge for the active page
        """
        self.bridge = bridge
        self._handlers: dict[ActionKind, Callable[[Any, Optional[int]], Awaitable[ActionResult]]] = {
            ActionKind.GET_ELEMENTS: self.get_elements,
            ActionKind.GET_ELEMENT_DETAILS: self.get_element_details,
            ActionKind.CLICK: self.click,
            ActionKind.TYPE: self.type_text,
            ActionKind.SCROLL: self.scroll,
            ActionKind.NAVIGATE: self.navigate,
            ActionKind.WAIT: self.wait,
            ActionKind.HOVER: self.hover,
            ActionKind.SELECT: self.select,
            ActionKind.PRESS_KEY: self.press_key,
            ActionKind.GO_BACK: self.go_back,
            ActionKind.GO_FORWARD: self.go_forward,
            ActionKind.REFRESH: self.refresh,
            ActionKind.SCREENSHOT: self.screenshot,
            ActionKind.SWITCH_TAB: self.switch_tab,
            ActionKind.EXECUTE_JS: self.execute_js,
            ActionKind.DRAG_DROP: self.drag_drop,
            ActionKind.UPLOAD_FILE: self.upload_file,
        }

    async def dispatch(self, action: BrowserAction) -> ActionResult:
        """Execute one action.

        Args:
            action: The action to execute

        Returns:
            ActionResult with success status and message; never raises
        """
        kind = ActionKind.parse(action.kind)
        handler = self._handlers.get(kind) if kind else None
        if handler is None:
            return ActionResult(success=False, message=f"Unknown action: {action.kind}")

        raw = action.params or {}
        try:
            params = get_schema_for_action(kind).model_validate(raw)
        except ValidationError as e:
            return ActionResult(
                success=False,
                message=f"Invalid parameters for {kind.value}: {_format_validation_error(e)}",
            )

        # Optional snapshot id pins index addressing to one enumeration
        snapshot = raw.get("snapshot")
        snapshot_id = snapshot if isinstance(snapshot, int) else None

        try:
            result = await handler(params, snapshot_id)
        except BridgeError as e:
            result = ActionResult(success=False, message=str(e))
        except PlaywrightTimeoutError as e:
            result = ActionResult(success=False, message=f"Timeout: {str(e)}")
        except PlaywrightError as e:
            result = ActionResult(success=False, message=f"Browser error: {str(e)}")
        except Exception as e:
            result = ActionResult(success=False, message=f"Error: {type(e).__name__}: {str(e)}")

        if result.success:
            logger.debug("%s -> ok: %s", kind.value, truncate_text(result.message, 200))
        else:
            logger.warning("%s failed: %s", kind.value, truncate_text(result.message, 200))
        return result

    # -- discovery -----------------------------------------------------------

    async def get_elements(self, params: GetElementsParams, snapshot_id: Optional[int]) -> ActionResult:
        snapshot = await self.bridge.get_elements(params.type, params.visible)
        return ActionResult(
            success=True,
            message=f"Found {len(snapshot.elements)} elements (snapshot {snapshot.snapshot_id})",
            data=[element.to_dict() for element in snapshot.elements],
        )

    async def get_element_details(
        self, params: GetElementDetailsParams, snapshot_id: Optional[int]
    ) -> ActionResult:
        details = await self.bridge.get_element_details(params.indices, snapshot_id)
        return ActionResult(
            success=True,
            message=f"Got details for {len(details)} elements",
            data=[d.to_dict() for d in details],
        )

    async def screenshot(self, params: BaseModel, snapshot_id: Optional[int]) -> ActionResult:
        shot = await self.bridge.screenshot()
        return ActionResult(
            success=True,
            message=f"Screenshot captured ({shot.width}x{shot.height})",
            data=shot.data,
        )

    # -- element interaction -------------------------------------------------

    async def _focus(self, address: ElementAddress, snapshot_id: Optional[int]) -> None:
        if address.index is not None:
            await self.bridge.focus_index(address.index, snapshot_id)
        elif address.selector:
            await self.bridge.focus_selector(address.selector)
        elif address.has_point:
            await self.bridge.click_point(address.x, address.y)

    async def click(self, params: ClickParams, snapshot_id: Optional[int]) -> ActionResult:
        # Precedence: index, then selector, then coordinates
        if params.index is not None:
            await self.bridge.click_index(params.index, snapshot_id)
            return ActionResult(success=True, message=f"Clicked element #{params.index}")
        if params.selector:
            await self.bridge.click_selector(params.selector)
            return ActionResult(success=True, message=f"Clicked {params.selector}")
        if params.has_point:
            await self.bridge.click_point(params.x, params.y)
            return ActionResult(success=True, message=f"Clicked at ({params.x}, {params.y})")
        return ActionResult(success=False, message="click needs an index, selector or x/y")

    async def type_text(self, params: TypeParams, snapshot_id: Optional[int]) -> ActionResult:
        await self._focus(params, snapshot_id)
        if params.clear:
            await self.bridge.clear_focused()
        await self.bridge.type_text(params.text)
        return ActionResult(
            success=True,
            message=f"Typed \"{truncate_text(params.text, 30)}\"",
        )

    async def hover(self, params: HoverParams, snapshot_id: Optional[int]) -> ActionResult:
        if params.index is not None:
            await self.bridge.hover_index(params.index, snapshot_id)
            target = f"element #{params.index}"
        elif params.selector:
            await self.bridge.hover_selector(params.selector)
            target = params.selector
        elif params.has_point:
            await self.bridge.hover_point(params.x, params.y)
            target = f"({params.x}, {params.y})"
        else:
            return ActionResult(success=False, message="hover needs an index, selector or x/y")
        return ActionResult(success=True, message=f"Hovered {target}")

    async def select(self, params: SelectParams, snapshot_id: Optional[int]) -> ActionResult:
        selected = await self.bridge.select_option(
            params.value, index=params.index, selector=params.selector, snapshot_id=snapshot_id
        )
        if not selected:
            return ActionResult(success=False, message=f"Option not found: {params.value}")
        return ActionResult(success=True, message=f"Selected {params.value}", data=selected)

    async def upload_file(self, params: UploadFileParams, snapshot_id: Optional[int]) -> ActionResult:
        await self.bridge.upload_files(
            params.files, index=params.index, selector=params.selector, snapshot_id=snapshot_id
        )
        return ActionResult(success=True, message=f"Attached {len(params.files)} file(s)")

    async def drag_drop(self, params: DragDropParams, snapshot_id: Optional[int]) -> ActionResult:
        start = (params.from_.x, params.from_.y)
        end = (params.to.x, params.to.y)
        await self.bridge.drag_drop(start, end)
        return ActionResult(success=True, message=f"Dragged from {start} to {end}")

    # -- page-level actions --------------------------------------------------

    async def scroll(self, params: ScrollParams, snapshot_id: Optional[int]) -> ActionResult:
        position = await self.bridge.scroll(params.direction, params.amount, params.selector)
        return ActionResult(
            success=True,
            message=f"Scrolled {params.direction} by {params.amount}px",
            data=position,
        )

    async def navigate(self, params: NavigateParams, snapshot_id: Optional[int]) -> ActionResult:
        info = await self.bridge.navigate(params.url)
        return ActionResult(
            success=True,
            message=f"Navigated to {info.get('url', params.url)}",
            data=info,
        )

    async def wait(self, params: WaitParams, snapshot_id: Optional[int]) -> ActionResult:
        await asyncio.sleep(params.ms / 1000)
        return ActionResult(success=True, message=f"Waited {params.ms}ms")

    async def press_key(self, params: PressKeyParams, snapshot_id: Optional[int]) -> ActionResult:
        combination = params.combination()
        await self.bridge.press_keys(combination)
        return ActionResult(success=True, message=f"Pressed {combination}")

    async def go_back(self, params: BaseModel, snapshot_id: Optional[int]) -> ActionResult:
        url = await self.bridge.go_back()
        return ActionResult(success=True, message=f"Navigated back to {url}")

    async def go_forward(self, params: BaseModel, snapshot_id: Optional[int]) -> ActionResult:
        url = await self.bridge.go_forward()
        return ActionResult(success=True, message=f"Navigated forward to {url}")

    async def refresh(self, params: BaseModel, snapshot_id: Optional[int]) -> ActionResult:
        await self.bridge.reload()
        return ActionResult(success=True, message="Page refreshed")

    async def switch_tab(self, params: SwitchTabParams, snapshot_id: Optional[int]) -> ActionResult:
        if params.index is None and not params.url:
            return ActionResult(success=False, message="index or url required")
        url = await self.bridge.switch_tab(index=params.index, url=params.url)
        target = f"tab {params.index}" if params.index is not None else f"tab with URL {params.url}"
        return ActionResult(success=True, message=f"Switched to {target}", data={"url": url})

    async def execute_js(self, params: ExecuteJSParams, snapshot_id: Optional[int]) -> ActionResult:
        value = await self.bridge.evaluate(params.code)
        message = "JS executed"
        if value is not None and not isinstance(value, (list, dict)):
            message += f": {truncate_text(str(value), 500)}"
        return ActionResult(success=True, message=message, data=value)
