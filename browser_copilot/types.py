"""
Type definitions for Browser Copilot.

Provides typed dataclasses for the structures that flow through the
agent loops: actions, results, page summaries, element snapshots and
conversation messages.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ActionKind(str, Enum):
    """Closed vocabulary of browser actions."""
    CLICK = "click"
    TYPE = "type"
    SCROLL = "scroll"
    NAVIGATE = "navigate"
    SCREENSHOT = "screenshot"
    WAIT = "wait"
    HOVER = "hover"
    SELECT = "select"
    PRESS_KEY = "pressKey"
    GO_BACK = "goBack"
    GO_FORWARD = "goForward"
    REFRESH = "refresh"
    DRAG_DROP = "dragDrop"
    UPLOAD_FILE = "uploadFile"
    SWITCH_TAB = "switchTab"
    EXECUTE_JS = "executeJS"
    GET_ELEMENTS = "getElements"
    GET_ELEMENT_DETAILS = "getElementDetails"

    @classmethod
    def values(cls) -> list[str]:
        """All action kind names, in declaration order."""
        return [kind.value for kind in cls]

    @classmethod
    def parse(cls, value: Any) -> Optional["ActionKind"]:
        """Return the matching kind, or None for anything outside the vocabulary."""
        try:
            return cls(value)
        except ValueError:
            return None


class ConfirmLevel(str, Enum):
    """How much human gating an action needs before dispatch."""
    AUTO = "auto"
    NOTIFY = "notify"
    CONFIRM = "confirm"
    BLOCK = "block"


class AgentMode(str, Enum):
    """Operating mode derived from provider capabilities."""
    STRUCTURAL = "structural"
    VISUAL = "visual"
    HYBRID = "hybrid"


@dataclass
class BrowserAction:
    """A single action proposed by the model.

    Attributes:
        kind: The action kind
        params: Loosely-typed action parameters
    """
    kind: ActionKind
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire shape used in prompts and logs."""
        return {"action": self.kind.value, "params": self.params}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Optional["BrowserAction"]:
        """Build from {"action": ..., "params": {...}}; None if the kind is invalid."""
        kind = ActionKind.parse(data.get("action"))
        if kind is None:
            return None
        params = data.get("params") or {}
        if not isinstance(params, dict):
            params = {}
        return cls(kind=kind, params=params)


@dataclass
class ActionResult:
    """Result of dispatching an action. Always fully populated."""
    success: bool
    message: str
    data: Optional[Any] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {
            "success": self.success,
            "message": self.message,
        }
        if self.data is not None:
            result["data"] = self.data
        return result


@dataclass
class Viewport:
    width: int = 0
    height: int = 0


@dataclass
class ScrollPosition:
    x: int = 0
    y: int = 0


@dataclass
class ElementCounts:
    """Counts of interactive elements per category."""
    buttons: int = 0
    inputs: int = 0
    links: int = 0
    selects: int = 0
    images: int = 0
    forms: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "buttons": self.buttons,
            "inputs": self.inputs,
            "links": self.links,
            "selects": self.selects,
            "images": self.images,
            "forms": self.forms,
        }


@dataclass
class FocusedElement:
    tag: str
    index: int


@dataclass
class PageSummary:
    """Compact snapshot of the remote page shown to the model.

    Refreshed once per turn after actions run. Never reused across turns.

    Attributes:
        url: Current page URL
        title: Page title
        viewport: Viewport size in CSS pixels
        scroll: Current scroll offset
        elements: Counts per element category
        visible_text: Truncated visible text excerpt
        focused_element: Focused element reference, if any
    """
    url: str = ""
    title: str = ""
    viewport: Viewport = field(default_factory=Viewport)
    scroll: ScrollPosition = field(default_factory=ScrollPosition)
    elements: ElementCounts = field(default_factory=ElementCounts)
    visible_text: str = ""
    focused_element: Optional[FocusedElement] = None

    @classmethod
    def unknown(cls) -> "PageSummary":
        """Placeholder used when the page cannot be observed."""
        return cls(url="unknown", title="unknown")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PageSummary":
        """Create from the page-script payload."""
        viewport = data.get("viewport") or {}
        scroll = data.get("scrollPosition") or data.get("scroll") or {}
        counts = data.get("elements") or {}
        focused = data.get("focusedElement") or data.get("focused_element")
        return cls(
            url=data.get("url", "") or "",
            title=data.get("title", "") or "",
            viewport=Viewport(
                width=int(viewport.get("width", 0) or 0),
                height=int(viewport.get("height", 0) or 0),
            ),
            scroll=ScrollPosition(
                x=int(scroll.get("x", 0) or 0),
                y=int(scroll.get("y", 0) or 0),
            ),
            elements=ElementCounts(**{
                key: int(counts.get(key, 0) or 0)
                for key in ElementCounts().to_dict()
            }),
            visible_text=data.get("visibleText", "") or data.get("visible_text", "") or "",
            focused_element=(
                FocusedElement(tag=focused.get("tag", ""), index=int(focused.get("index", -1)))
                if focused else None
            ),
        )


@dataclass
class Rect:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


@dataclass
class ElementInfo:
    """Coarse element entry returned by getElements.

    The index is only valid for the enumeration it came from.
    """
    index: int
    tag: str
    text: str = ""
    role: Optional[str] = None
    type: Optional[str] = None
    placeholder: Optional[str] = None
    href: Optional[str] = None
    value: Optional[str] = None
    is_visible: bool = True
    is_enabled: bool = True
    rect: Rect = field(default_factory=Rect)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ElementInfo":
        rect = data.get("rect") or {}
        return cls(
            index=int(data["index"]),
            tag=data.get("tag", ""),
            text=data.get("text", "") or "",
            role=data.get("role"),
            type=data.get("type"),
            placeholder=data.get("placeholder"),
            href=data.get("href"),
            value=data.get("value"),
            is_visible=bool(data.get("isVisible", True)),
            is_enabled=bool(data.get("isEnabled", True)),
            rect=Rect(**{k: float(rect.get(k, 0) or 0) for k in ("x", "y", "width", "height")}),
        )

    def to_dict(self) -> dict[str, Any]:
        """Compact dictionary for the model, omitting empty fields."""
        result: dict[str, Any] = {"index": self.index, "tag": self.tag}
        for key in ("text", "role", "type", "placeholder", "href", "value"):
            value = getattr(self, key)
            if value:
                result[key] = value
        result["visible"] = self.is_visible
        result["enabled"] = self.is_enabled
        result["rect"] = {
            "x": round(self.rect.x),
            "y": round(self.rect.y),
            "width": round(self.rect.width),
            "height": round(self.rect.height),
        }
        return result


@dataclass
class ElementDetails(ElementInfo):
    """Expensive per-element detail returned by getElementDetails."""
    attributes: dict[str, str] = field(default_factory=dict)
    selector: str = ""
    xpath: str = ""
    parent_text: Optional[str] = None
    child_count: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ElementDetails":
        info = ElementInfo.from_dict(data)
        return cls(
            **info.__dict__,
            attributes=dict(data.get("attributes") or {}),
            selector=data.get("selector", ""),
            xpath=data.get("xpath", ""),
            parent_text=data.get("parentText"),
            child_count=int(data.get("childCount", 0) or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result.update({
            "attributes": self.attributes,
            "selector": self.selector,
            "xpath": self.xpath,
            "childCount": self.child_count,
        })
        if self.parent_text:
            result["parentText"] = self.parent_text
        return result


@dataclass
class ConversationMessage:
    """A single chat message. Conversations are append-only within a run."""
    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ScreenshotData:
    """Captured screenshot plus the logical viewport it covers."""
    data: str
    width: int
    height: int


@dataclass
class ToolCall:
    """A structured tool invocation returned by the model."""
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class ModelResponse:
    """Normalized model reply: free text plus any structured tool calls."""
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: Optional[dict[str, int]] = None


@dataclass
class VisualEvent:
    """Tagged event emitted by the visual control loop.

    Attributes:
        type: One of "text", "action", "result", "complete"
        content: Text for "text" and "complete" events
        action: {"name": ..., "args": {...}} for "action" events
        result: Execution result payload for "result" events
    """
    type: str
    content: str = ""
    action: Optional[dict[str, Any]] = None
    result: Optional[dict[str, Any]] = None
