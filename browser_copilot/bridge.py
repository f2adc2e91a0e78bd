"""
Execution-context bridge for Browser Copilot.

The page runs in a separate, unsynchronized context. This module exposes
it through asynchronous primitives that may fail at any time; failures
raise BridgeError and are turned into failed results by the dispatcher.

Element indices are scoped to one enumeration. Every getElements call
re-tags the page with a fresh snapshot id, so an index from an older
enumeration never resolves to an element from a newer one.
"""

import base64
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from playwright.async_api import (
    BrowserContext,
    Locator,
    Page,
    TimeoutError as PlaywrightTimeoutError,
)

from .types import ElementDetails, ElementInfo, PageSummary, ScreenshotData


logger = logging.getLogger(__name__)


class BridgeError(Exception):
    """The execution context is unreachable or refused a primitive."""


class StaleElementError(BridgeError):
    """An element index no longer resolves in the current snapshot."""


@dataclass
class ElementSnapshot:
    """One element enumeration; indices are valid only for this snapshot."""
    snapshot_id: int
    elements: list[ElementInfo] = field(default_factory=list)


@dataclass
class PageContext:
    """Url and logical viewport of the visual surface."""
    url: str
    width: Optional[int] = None
    height: Optional[int] = None


class ExecutionBridge(ABC):
    """Asynchronous primitives against the active page."""

    @abstractmethod
    async def get_page_summary(self, max_text_chars: int = 2000) -> PageSummary:
        """Observe the current page."""

    @abstractmethod
    async def get_elements(self, filter_type: str = "all", visible_only: bool = False) -> ElementSnapshot:
        """Enumerate interactive elements, starting a new snapshot."""

    @abstractmethod
    async def get_element_details(
        self, indices: list[int], snapshot_id: Optional[int] = None
    ) -> list[ElementDetails]:
        """Detail elements from the latest snapshot."""

    @abstractmethod
    async def click_index(self, index: int, snapshot_id: Optional[int] = None) -> None: ...

    @abstractmethod
    async def click_selector(self, selector: str) -> None: ...

    @abstractmethod
    async def click_point(self, x: float, y: float) -> None: ...

    @abstractmethod
    async def focus_index(self, index: int, snapshot_id: Optional[int] = None) -> None: ...

    @abstractmethod
    async def focus_selector(self, selector: str) -> None: ...

    @abstractmethod
    async def clear_focused(self) -> None: ...

    @abstractmethod
    async def type_text(self, text: str) -> None: ...

    @abstractmethod
    async def scroll(self, direction: str, amount: int, selector: Optional[str] = None) -> dict[str, int]: ...

    @abstractmethod
    async def navigate(self, url: str) -> dict[str, str]: ...

    @abstractmethod
    async def hover_index(self, index: int, snapshot_id: Optional[int] = None) -> None: ...

    @abstractmethod
    async def hover_selector(self, selector: str) -> None: ...

    @abstractmethod
    async def hover_point(self, x: float, y: float) -> None: ...

    @abstractmethod
    async def select_option(
        self,
        value: str,
        index: Optional[int] = None,
        selector: Optional[str] = None,
        snapshot_id: Optional[int] = None,
    ) -> list[str]: ...

    @abstractmethod
    async def press_keys(self, combination: str) -> None: ...

    @abstractmethod
    async def go_back(self) -> str: ...

    @abstractmethod
    async def go_forward(self) -> str: ...

    @abstractmethod
    async def reload(self) -> str: ...

    @abstractmethod
    async def screenshot(self) -> ScreenshotData: ...

    @abstractmethod
    async def switch_tab(self, index: Optional[int] = None, url: Optional[str] = None) -> str: ...

    @abstractmethod
    async def evaluate(self, code: str) -> Any: ...

    @abstractmethod
    async def drag_drop(self, start: tuple[float, float], end: tuple[float, float]) -> None: ...

    @abstractmethod
    async def upload_files(
        self,
        files: list[str],
        index: Optional[int] = None,
        selector: Optional[str] = None,
        snapshot_id: Optional[int] = None,
    ) -> None: ...


class VisualSurface(ABC):
    """Minimal primitives used by the visual control loop."""

    @abstractmethod
    async def wait_for_load(self, timeout_s: float) -> None:
        """Wait, bounded, for the page to finish loading. Never raises on timeout."""

    @abstractmethod
    async def capture_screenshot(self) -> ScreenshotData: ...

    @abstractmethod
    async def get_page_context(self) -> PageContext: ...

    @abstractmethod
    async def click_at(self, x: int, y: int) -> dict[str, Any]: ...

    @abstractmethod
    async def type_into_focused(self, text: str) -> dict[str, Any]: ...

    @abstractmethod
    async def scroll_by(self, delta_y: int) -> dict[str, Any]: ...

    @abstractmethod
    async def navigate(self, url: str) -> dict[str, Any]: ...


# =============================================================================
# In-page scripts
# =============================================================================

INDEX_ATTR = "data-copilot-index"
SNAPSHOT_ATTR = "data-copilot-snapshot"

CATEGORY_SELECTORS = {
    "button": 'button, input[type="button"], input[type="submit"], input[type="reset"], [role="button"]',
    "input": (
        'input:not([type="button"]):not([type="submit"]):not([type="reset"]):not([type="hidden"]),'
        ' textarea, [contenteditable=""], [contenteditable="true"]'
    ),
    "link": "a[href]",
    "select": "select",
    "image": "img",
}

_DESCRIBE_FN = """
const isVisible = (el) => {
  const style = window.getComputedStyle(el);
  if (style.display === 'none' || style.visibility === 'hidden' || style.opacity === '0') return false;
  const rect = el.getBoundingClientRect();
  return rect.width > 0 && rect.height > 0;
};
const describe = (el, index, maxText) => {
  const rect = el.getBoundingClientRect();
  const label = (el.innerText || el.value || el.getAttribute('aria-label') || el.getAttribute('alt')
    || el.getAttribute('title') || el.getAttribute('placeholder') || '');
  const hasValue = typeof el.value === 'string' && el.type !== 'password';
  return {
    index,
    tag: el.tagName.toLowerCase(),
    text: String(label).replace(/\\s+/g, ' ').trim().slice(0, maxText),
    role: el.getAttribute('role') || null,
    type: el.getAttribute('type') || null,
    placeholder: el.getAttribute('placeholder') || null,
    href: el.getAttribute('href') || null,
    value: hasValue ? el.value.slice(0, maxText) : null,
    isVisible: isVisible(el),
    isEnabled: !el.disabled && el.getAttribute('aria-disabled') !== 'true',
    rect: { x: rect.x, y: rect.y, width: rect.width, height: rect.height },
  };
};
"""

ENUMERATE_SCRIPT = """({ filterType, visibleOnly, snapshotId, maxText }) => {
  const CATEGORIES = __CATEGORIES__;
  __DESCRIBE__
  document.querySelectorAll('[__INDEX_ATTR__]').forEach((el) => {
    el.removeAttribute('__INDEX_ATTR__');
    el.removeAttribute('__SNAPSHOT_ATTR__');
  });
  const selector = CATEGORIES[filterType] || Object.values(CATEGORIES).join(', ');
  const results = [];
  let index = 0;
  for (const el of document.querySelectorAll(selector)) {
    if (visibleOnly && !isVisible(el)) continue;
    el.setAttribute('__INDEX_ATTR__', String(index));
    el.setAttribute('__SNAPSHOT_ATTR__', String(snapshotId));
    results.push(describe(el, index, maxText));
    index++;
  }
  return results;
}"""

SUMMARY_SCRIPT = """({ maxText, snapshotId }) => {
  const CATEGORIES = __CATEGORIES__;
  const count = (sel) => document.querySelectorAll(sel).length;
  const active = document.activeElement;
  let focused = null;
  if (active && active !== document.body
      && active.getAttribute('__SNAPSHOT_ATTR__') === String(snapshotId)) {
    focused = { tag: active.tagName.toLowerCase(), index: Number(active.getAttribute('__INDEX_ATTR__')) };
  }
  const text = (document.body ? document.body.innerText : '').replace(/\\s+/g, ' ').trim();
  return {
    url: location.href,
    title: document.title,
    viewport: { width: window.innerWidth, height: window.innerHeight },
    scrollPosition: { x: Math.round(window.scrollX), y: Math.round(window.scrollY) },
    elements: {
      buttons: count(CATEGORIES.button),
      inputs: count(CATEGORIES.input),
      links: count(CATEGORIES.link),
      selects: count(CATEGORIES.select),
      images: count(CATEGORIES.image),
      forms: count('form'),
    },
    visibleText: text.slice(0, maxText),
    focusedElement: focused,
  };
}"""

DETAILS_SCRIPT = """({ indices, snapshotId, maxText }) => {
  __DESCRIBE__
  const buildSelector = (element) => {
    if (element.id) return '#' + CSS.escape(element.id);
    const path = [];
    let current = element;
    while (current && current !== document.body) {
      let selector = current.tagName.toLowerCase();
      if (current.className && typeof current.className === 'string') {
        const classes = current.className.trim().split(/\\s+/).filter((c) => c).slice(0, 2);
        if (classes.length) selector += '.' + classes.map((c) => CSS.escape(c)).join('.');
      }
      const parent = current.parentElement;
      if (parent) {
        const siblings = Array.from(parent.children).filter((c) => c.tagName === current.tagName);
        if (siblings.length > 1) selector += ':nth-of-type(' + (siblings.indexOf(current) + 1) + ')';
      }
      path.unshift(selector);
      current = parent;
    }
    return path.join(' > ');
  };
  const buildXPath = (element) => {
    const parts = [];
    let current = element;
    while (current && current.nodeType === Node.ELEMENT_NODE) {
      let index = 1;
      let sibling = current.previousElementSibling;
      while (sibling) {
        if (sibling.tagName === current.tagName) index++;
        sibling = sibling.previousElementSibling;
      }
      parts.unshift(current.tagName.toLowerCase() + '[' + index + ']');
      current = current.parentElement;
    }
    return '/' + parts.join('/');
  };
  return indices.map((i) => {
    const el = document.querySelector(
      '[__SNAPSHOT_ATTR__="' + snapshotId + '"][__INDEX_ATTR__="' + i + '"]');
    if (!el) return null;
    const attributes = {};
    for (const attr of el.attributes) {
      if (attr.name !== '__INDEX_ATTR__' && attr.name !== '__SNAPSHOT_ATTR__') {
        attributes[attr.name] = attr.value.slice(0, maxText);
      }
    }
    const parentText = el.parentElement
      ? el.parentElement.innerText.replace(/\\s+/g, ' ').trim().slice(0, maxText) : null;
    return Object.assign(describe(el, i, maxText), {
      attributes,
      selector: buildSelector(el),
      xpath: buildXPath(el),
      parentText,
      childCount: el.children.length,
    });
  });
}"""

CLEAR_FOCUSED_SCRIPT = """() => {
  const el = document.activeElement;
  if (!el || el === document.body) return false;
  if ('value' in el) {
    el.value = '';
  } else if (el.isContentEditable) {
    el.textContent = '';
  } else {
    return false;
  }
  el.dispatchEvent(new Event('input', { bubbles: true }));
  return true;
}"""

EVALUATE_SCRIPT = """(code) => {
  try {
    const value = (0, eval)(code);
    return { ok: true, value: value === undefined ? null : JSON.parse(JSON.stringify(value)) };
  } catch (e) {
    return { ok: false, error: String(e) };
  }
}"""

SCROLL_SCRIPT = """({ dx, dy, selector }) => {
  const target = selector ? document.querySelector(selector) : null;
  if (selector && !target) return null;
  (target || window).scrollBy(dx, dy);
  return { x: Math.round(window.scrollX), y: Math.round(window.scrollY) };
}"""

CLICK_AT_POINT_SCRIPT = """({ x, y }) => {
  const element = document.elementFromPoint(x, y);
  if (!element) return { success: false, message: 'No element found at point' };
  element.dispatchEvent(new MouseEvent('click', {
    bubbles: true, cancelable: true, view: window, clientX: x, clientY: y,
  }));
  if (typeof element.focus === 'function') element.focus();
  return { success: true, message: 'Clicked ' + element.tagName.toLowerCase(), element: element.tagName };
}"""

TYPE_INTO_FOCUSED_SCRIPT = """(text) => {
  const el = document.activeElement;
  if (el && (el.tagName === 'INPUT' || el.tagName === 'TEXTAREA')) {
    el.value = (el.value || '') + text;
    el.dispatchEvent(new Event('input', { bubbles: true }));
    return { success: true, message: 'Typed ' + text.length + ' characters' };
  }
  if (el && el.isContentEditable) {
    el.textContent = (el.textContent || '') + text;
    el.dispatchEvent(new Event('input', { bubbles: true }));
    return { success: true, message: 'Typed ' + text.length + ' characters' };
  }
  return { success: false, error: 'No focused element' };
}"""


def _render(script: str) -> str:
    return (
        script
        .replace("__DESCRIBE__", _DESCRIBE_FN)
        .replace("__CATEGORIES__", json.dumps(CATEGORY_SELECTORS))
        .replace("__INDEX_ATTR__", INDEX_ATTR)
        .replace("__SNAPSHOT_ATTR__", SNAPSHOT_ATTR)
    )


_ENUMERATE_JS = _render(ENUMERATE_SCRIPT)
_SUMMARY_JS = _render(SUMMARY_SCRIPT)
_DETAILS_JS = _render(DETAILS_SCRIPT)

SCROLL_DELTAS = {
    "up": (0, -1),
    "down": (0, 1),
    "left": (-1, 0),
    "right": (1, 0),
}


# =============================================================================
# Playwright implementations
# =============================================================================

class PlaywrightBridge(ExecutionBridge):
    """Execution bridge over a Playwright async browser context."""

    def __init__(
        self,
        context: BrowserContext,
        page: Optional[Page] = None,
        action_timeout: int = 10000,
        max_element_text: int = 80,
    ):
        """Initialize the bridge.

        Args:
            context: Browser context owning the tabs
            page: Active page (defaults to the context's first page)
            action_timeout: Per-primitive timeout in milliseconds
            max_element_text: Character cap for element labels and values
        """
        self.context = context
        self._page = page
        self.action_timeout = action_timeout
        self.max_element_text = max_element_text
        self._snapshot_id = 0

    @property
    def page(self) -> Page:
        if self._page is None or self._page.is_closed():
            pages = [p for p in self.context.pages if not p.is_closed()]
            if not pages:
                raise BridgeError("No open page in the browser context")
            self._page = pages[-1]
        return self._page

    @property
    def snapshot_id(self) -> int:
        return self._snapshot_id

    # -- observation ---------------------------------------------------------

    async def get_page_summary(self, max_text_chars: int = 2000) -> PageSummary:
        data = await self.page.evaluate(
            _SUMMARY_JS, {"maxText": max_text_chars, "snapshotId": self._snapshot_id}
        )
        return PageSummary.from_dict(data or {})

    async def get_elements(self, filter_type: str = "all", visible_only: bool = False) -> ElementSnapshot:
        self._snapshot_id += 1
        raw = await self.page.evaluate(
            _ENUMERATE_JS,
            {
                "filterType": filter_type,
                "visibleOnly": visible_only,
                "snapshotId": self._snapshot_id,
                "maxText": self.max_element_text,
            },
        )
        elements = [ElementInfo.from_dict(item) for item in raw or []]
        logger.debug("Snapshot %d: %d elements (%s)", self._snapshot_id, len(elements), filter_type)
        return ElementSnapshot(snapshot_id=self._snapshot_id, elements=elements)

    async def get_element_details(
        self, indices: list[int], snapshot_id: Optional[int] = None
    ) -> list[ElementDetails]:
        self._check_snapshot(snapshot_id)
        raw = await self.page.evaluate(
            _DETAILS_JS,
            {"indices": indices, "snapshotId": self._snapshot_id, "maxText": self.max_element_text},
        )
        missing = [i for i, item in zip(indices, raw or []) if item is None]
        if missing:
            raise StaleElementError(
                f"Elements {missing} are no longer on the page; call getElements again"
            )
        return [ElementDetails.from_dict(item) for item in raw]

    # -- element addressing --------------------------------------------------

    def _check_snapshot(self, snapshot_id: Optional[int]) -> None:
        if self._snapshot_id == 0:
            raise StaleElementError("No element snapshot yet; call getElements first")
        if snapshot_id is not None and snapshot_id != self._snapshot_id:
            raise StaleElementError(
                f"Snapshot {snapshot_id} is stale (current is {self._snapshot_id}); call getElements again"
            )

    async def _locate(self, index: int, snapshot_id: Optional[int]) -> Locator:
        self._check_snapshot(snapshot_id)
        locator = self.page.locator(
            f'[{SNAPSHOT_ATTR}="{self._snapshot_id}"][{INDEX_ATTR}="{int(index)}"]'
        )
        if await locator.count() == 0:
            raise StaleElementError(
                f"Element #{index} is no longer on the page; call getElements again"
            )
        return locator.first

    async def _locate_selector(self, selector: str) -> Locator:
        locator = self.page.locator(selector)
        if await locator.count() == 0:
            raise BridgeError(f"No element matches selector: {selector}")
        return locator.first

    # -- interaction ---------------------------------------------------------

    async def click_index(self, index: int, snapshot_id: Optional[int] = None) -> None:
        locator = await self._locate(index, snapshot_id)
        await locator.click(timeout=self.action_timeout)

    async def click_selector(self, selector: str) -> None:
        locator = await self._locate_selector(selector)
        await locator.click(timeout=self.action_timeout)

    async def click_point(self, x: float, y: float) -> None:
        await self.page.mouse.click(x, y)

    async def focus_index(self, index: int, snapshot_id: Optional[int] = None) -> None:
        locator = await self._locate(index, snapshot_id)
        await locator.click(timeout=self.action_timeout)

    async def focus_selector(self, selector: str) -> None:
        locator = await self._locate_selector(selector)
        await locator.click(timeout=self.action_timeout)

    async def clear_focused(self) -> None:
        cleared = await self.page.evaluate(CLEAR_FOCUSED_SCRIPT)
        if not cleared:
            raise BridgeError("No focused field to clear")

    async def type_text(self, text: str) -> None:
        await self.page.keyboard.type(text)

    async def scroll(self, direction: str, amount: int, selector: Optional[str] = None) -> dict[str, int]:
        sx, sy = SCROLL_DELTAS.get(direction, (0, 1))
        position = await self.page.evaluate(
            SCROLL_SCRIPT, {"dx": sx * amount, "dy": sy * amount, "selector": selector}
        )
        if position is None:
            raise BridgeError(f"No element matches selector: {selector}")
        return position

    async def navigate(self, url: str) -> dict[str, str]:
        await self.page.goto(url, wait_until="domcontentloaded", timeout=self.action_timeout * 3)
        return {"url": self.page.url, "title": await self.page.title()}

    async def hover_index(self, index: int, snapshot_id: Optional[int] = None) -> None:
        locator = await self._locate(index, snapshot_id)
        await locator.hover(timeout=self.action_timeout)

    async def hover_selector(self, selector: str) -> None:
        locator = await self._locate_selector(selector)
        await locator.hover(timeout=self.action_timeout)

    async def hover_point(self, x: float, y: float) -> None:
        await self.page.mouse.move(x, y)

    async def select_option(
        self,
        value: str,
        index: Optional[int] = None,
        selector: Optional[str] = None,
        snapshot_id: Optional[int] = None,
    ) -> list[str]:
        if index is not None:
            locator = await self._locate(index, snapshot_id)
        elif selector:
            locator = await self._locate_selector(selector)
        else:
            raise BridgeError("select needs an index or selector")
        return await locator.select_option(value, timeout=self.action_timeout)

    async def press_keys(self, combination: str) -> None:
        await self.page.keyboard.press(combination)

    async def go_back(self) -> str:
        await self.page.go_back(wait_until="domcontentloaded", timeout=self.action_timeout)
        return self.page.url

    async def go_forward(self) -> str:
        await self.page.go_forward(wait_until="domcontentloaded", timeout=self.action_timeout)
        return self.page.url

    async def reload(self) -> str:
        await self.page.reload(wait_until="domcontentloaded", timeout=self.action_timeout * 3)
        return self.page.url

    async def screenshot(self) -> ScreenshotData:
        return await capture_page(self.page)

    async def switch_tab(self, index: Optional[int] = None, url: Optional[str] = None) -> str:
        pages = [p for p in self.context.pages if not p.is_closed()]
        target: Optional[Page] = None
        if index is not None:
            if 0 <= index < len(pages):
                target = pages[index]
            else:
                raise BridgeError(f"Tab {index} not found")
        elif url:
            target = next((p for p in pages if url in p.url), None)
            if target is None:
                raise BridgeError(f"Tab with URL {url} not found")
        else:
            raise BridgeError("index or url required")
        await target.bring_to_front()
        self._page = target
        return target.url

    async def evaluate(self, code: str) -> Any:
        outcome = await self.page.evaluate(EVALUATE_SCRIPT, code)
        if not outcome.get("ok"):
            raise BridgeError(outcome.get("error") or "JS execution failed")
        return outcome.get("value")

    async def drag_drop(self, start: tuple[float, float], end: tuple[float, float]) -> None:
        mouse = self.page.mouse
        await mouse.move(*start)
        await mouse.down()
        await mouse.move(*end, steps=10)
        await mouse.up()

    async def upload_files(
        self,
        files: list[str],
        index: Optional[int] = None,
        selector: Optional[str] = None,
        snapshot_id: Optional[int] = None,
    ) -> None:
        if index is not None:
            locator = await self._locate(index, snapshot_id)
        elif selector:
            locator = await self._locate_selector(selector)
        else:
            locator = await self._locate_selector('input[type="file"]')
        await locator.set_input_files(files, timeout=self.action_timeout)


async def capture_page(page: Page) -> ScreenshotData:
    """Capture a PNG screenshot plus the page's logical viewport."""
    png = await page.screenshot(type="png")
    size = page.viewport_size
    if size is None:
        size = await page.evaluate("() => ({ width: window.innerWidth, height: window.innerHeight })")
    return ScreenshotData(
        data=base64.b64encode(png).decode("ascii"),
        width=int(size["width"]),
        height=int(size["height"]),
    )


class PlaywrightVisualSurface(VisualSurface):
    """Visual-loop surface over a single Playwright page."""

    def __init__(self, page: Page, action_timeout: int = 10000):
        self.page = page
        self.action_timeout = action_timeout

    async def wait_for_load(self, timeout_s: float) -> None:
        try:
            await self.page.wait_for_load_state("load", timeout=timeout_s * 1000)
        except PlaywrightTimeoutError:
            logger.debug("Page still loading after %.1fs, capturing anyway", timeout_s)

    async def capture_screenshot(self) -> ScreenshotData:
        return await capture_page(self.page)

    async def get_page_context(self) -> PageContext:
        size = self.page.viewport_size
        return PageContext(
            url=self.page.url,
            width=size["width"] if size else None,
            height=size["height"] if size else None,
        )

    async def click_at(self, x: int, y: int) -> dict[str, Any]:
        return await self.page.evaluate(CLICK_AT_POINT_SCRIPT, {"x": x, "y": y})

    async def type_into_focused(self, text: str) -> dict[str, Any]:
        return await self.page.evaluate(TYPE_INTO_FOCUSED_SCRIPT, text)

    async def scroll_by(self, delta_y: int) -> dict[str, Any]:
        await self.page.evaluate("(dy) => window.scrollBy(0, dy)", delta_y)
        return {"success": True, "message": f"Scrolled by {delta_y}px"}

    async def navigate(self, url: str) -> dict[str, Any]:
        await self.page.goto(url, wait_until="domcontentloaded", timeout=self.action_timeout * 3)
        return {"success": True, "url": self.page.url}
