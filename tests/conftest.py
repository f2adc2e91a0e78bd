"""
Shared fakes for the Browser Copilot tests.

Provides an in-memory execution bridge, a visual surface and scripted
model clients so the loops can run without a browser or network.
"""

from typing import Any, Optional

import pytest

from browser_copilot.bridge import (
    BridgeError,
    ElementSnapshot,
    ExecutionBridge,
    PageContext,
    StaleElementError,
    VisualSurface,
)
from browser_copilot.config import AgentConfig
from browser_copilot.types import (
    ElementDetails,
    ElementInfo,
    ModelResponse,
    PageSummary,
    ScreenshotData,
    ToolCall,
    Viewport,
)


class FakeBridge(ExecutionBridge):
    """Records every primitive call against an in-memory page."""

    def __init__(self, page: Optional[PageSummary] = None, elements: Optional[list[ElementInfo]] = None):
        self.page = page or PageSummary(url="https://example.com/", title="Example", viewport=Viewport(1400, 900))
        self.elements = elements if elements is not None else [
            ElementInfo(index=0, tag="button", text="Search"),
            ElementInfo(index=1, tag="input", type="text", placeholder="Query"),
        ]
        self.calls: list[tuple[str, tuple]] = []
        self.snapshot_id = 0
        self.summary_error: Optional[Exception] = None
        self.fail_with: dict[str, Exception] = {}
        self.summary_calls = 0

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if name in self.fail_with:
            raise self.fail_with[name]

    def _check(self, index: int, snapshot_id: Optional[int]) -> None:
        if self.snapshot_id == 0:
            raise StaleElementError("No element snapshot yet; call getElements first")
        if snapshot_id is not None and snapshot_id != self.snapshot_id:
            raise StaleElementError(f"Snapshot {snapshot_id} is stale")
        if not 0 <= index < len(self.elements):
            raise StaleElementError(f"Element #{index} is no longer on the page")

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def get_page_summary(self, max_text_chars: int = 2000) -> PageSummary:
        self.summary_calls += 1
        if self.summary_error:
            raise self.summary_error
        return self.page

    async def get_elements(self, filter_type: str = "all", visible_only: bool = False) -> ElementSnapshot:
        self._record("get_elements", filter_type, visible_only)
        self.snapshot_id += 1
        return ElementSnapshot(snapshot_id=self.snapshot_id, elements=list(self.elements))

    async def get_element_details(self, indices, snapshot_id=None):
        self._record("get_element_details", tuple(indices), snapshot_id)
        for i in indices:
            self._check(i, snapshot_id)
        return [
            ElementDetails(**self.elements[i].__dict__, selector=f"#el{i}", xpath=f"/html/body/el[{i + 1}]")
            for i in indices
        ]

    async def click_index(self, index, snapshot_id=None):
        self._record("click_index", index, snapshot_id)
        self._check(index, snapshot_id)

    async def click_selector(self, selector):
        self._record("click_selector", selector)

    async def click_point(self, x, y):
        self._record("click_point", x, y)

    async def focus_index(self, index, snapshot_id=None):
        self._record("focus_index", index, snapshot_id)
        self._check(index, snapshot_id)

    async def focus_selector(self, selector):
        self._record("focus_selector", selector)

    async def clear_focused(self):
        self._record("clear_focused")

    async def type_text(self, text):
        self._record("type_text", text)

    async def scroll(self, direction, amount, selector=None):
        self._record("scroll", direction, amount, selector)
        return {"x": 0, "y": amount if direction == "down" else 0}

    async def navigate(self, url):
        self._record("navigate", url)
        self.page = PageSummary(url=url, title="Navigated", viewport=self.page.viewport)
        return {"url": url, "title": "Navigated"}

    async def hover_index(self, index, snapshot_id=None):
        self._record("hover_index", index, snapshot_id)

    async def hover_selector(self, selector):
        self._record("hover_selector", selector)

    async def hover_point(self, x, y):
        self._record("hover_point", x, y)

    async def select_option(self, value, index=None, selector=None, snapshot_id=None):
        self._record("select_option", value, index, selector)
        return [value]

    async def press_keys(self, combination):
        self._record("press_keys", combination)

    async def go_back(self):
        self._record("go_back")
        return "https://example.com/previous"

    async def go_forward(self):
        self._record("go_forward")
        return "https://example.com/next"

    async def reload(self):
        self._record("reload")
        return self.page.url

    async def screenshot(self):
        self._record("screenshot")
        return ScreenshotData(data="iVBORw0KGgo=", width=1400, height=900)

    async def switch_tab(self, index=None, url=None):
        self._record("switch_tab", index, url)
        if index not in (None, 0):
            raise BridgeError(f"Tab {index} not found")
        return self.page.url

    async def evaluate(self, code):
        self._record("evaluate", code)
        return "Example"

    async def drag_drop(self, start, end):
        self._record("drag_drop", start, end)

    async def upload_files(self, files, index=None, selector=None, snapshot_id=None):
        self._record("upload_files", tuple(files), index, selector)


class ScriptedLLM:
    """Chat client that replays canned responses and records requests."""

    def __init__(self, responses: list[ModelResponse]):
        self.responses = list(responses)
        self.requests: list[tuple[list, Optional[list]]] = []
        self.on_call = None

    async def chat(self, messages, tools=None):
        self.requests.append((list(messages), tools))
        if self.on_call:
            self.on_call(len(self.requests))
        if not self.responses:
            return ModelResponse(content="done")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def action_call(action: str, **params: Any) -> ToolCall:
    """A browser_action tool call."""
    return ToolCall(name="browser_action", arguments={"action": action, "params": params})


class FakeSurface(VisualSurface):
    """Visual surface recording point actions on a 1400x900 page."""

    def __init__(self, url: str = "https://example.com/", width: Optional[int] = 1400, height: Optional[int] = 900):
        self.url = url
        self.width = width
        self.height = height
        self.calls: list[tuple[str, tuple]] = []
        self.captures = 0

    async def wait_for_load(self, timeout_s):
        self.calls.append(("wait_for_load", (timeout_s,)))

    async def capture_screenshot(self):
        self.captures += 1
        return ScreenshotData(data=f"shot{self.captures}", width=self.width or 0, height=self.height or 0)

    async def get_page_context(self):
        return PageContext(url=self.url, width=self.width, height=self.height)

    async def click_at(self, x, y):
        self.calls.append(("click_at", (x, y)))
        return {"success": True, "message": "Clicked button", "element": "BUTTON"}

    async def type_into_focused(self, text):
        self.calls.append(("type_into_focused", (text,)))
        return {"success": True, "message": f"Typed {len(text)} characters"}

    async def scroll_by(self, delta_y):
        self.calls.append(("scroll_by", (delta_y,)))
        return {"success": True, "message": f"Scrolled by {delta_y}px"}

    async def navigate(self, url):
        self.calls.append(("navigate", (url,)))
        self.url = url
        return {"success": True, "url": url}


class ScriptedComputerUse:
    """Computer-use client replaying candidate contents."""

    def __init__(self, contents: list[Optional[dict]]):
        self.contents = list(contents)
        self.requests: list[list[dict]] = []

    async def generate(self, contents, system_instruction=None):
        self.requests.append(list(contents))
        if not self.contents:
            return {"role": "model", "parts": [{"text": "finished"}]}
        return self.contents.pop(0)


@pytest.fixture
def fast_config() -> AgentConfig:
    """Configuration with every settle delay at zero."""
    return AgentConfig(
        provider="openai",
        api_key="test-key",
        action_settle_ms=0,
        interaction_settle_ms=0,
        navigation_settle_ms=0,
        load_wait_timeout_s=0,
        confirm_timeout_s=1,
    )


@pytest.fixture
def bridge() -> FakeBridge:
    return FakeBridge()


@pytest.fixture
def surface() -> FakeSurface:
    return FakeSurface()
