"""
Typed tool schemas for Browser Copilot.

Provides Pydantic models for the parameters of every browser action and
the single `browser_action` tool definition advertised to models that
support structured calls.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .types import ActionKind
from .utils import ensure_scheme


# =============================================================================
# Shared parameter pieces
# =============================================================================

class Point(BaseModel):
    """A viewport coordinate in CSS pixels."""
    x: float
    y: float


class ElementAddress(BaseModel):
    """Addressing fields shared by element-targeting actions.

    Precedence when several are given: index, then selector, then x/y.
    """

    index: Optional[int] = Field(default=None, description="Element index from getElements")
    selector: Optional[str] = Field(default=None, description="CSS selector")
    x: Optional[float] = Field(default=None, description="X coordinate")
    y: Optional[float] = Field(default=None, description="Y coordinate")

    @property
    def has_point(self) -> bool:
        return self.x is not None and self.y is not None


# =============================================================================
# Per-action parameter schemas
# =============================================================================

class ClickParams(ElementAddress):
    """Click an element or a point."""
    text: Optional[str] = Field(
        default=None,
        description="Visible label of the target (used for safety checks)",
    )


class TypeParams(ElementAddress):
    """Type text into the focused or addressed field."""
    text: str = Field(description="Text to type")
    clear: bool = Field(default=False, description="Clear field before typing")


class ScrollParams(BaseModel):
    """Scroll the page or an element."""
    direction: Literal["up", "down", "left", "right"] = "down"
    amount: int = Field(default=500, description="Scroll amount in pixels")
    selector: Optional[str] = None


class NavigateParams(BaseModel):
    """Navigate the active tab."""
    url: str = Field(description="URL to navigate to")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("URL is required")
        return ensure_scheme(v)


class WaitParams(BaseModel):
    ms: int = Field(default=1000, ge=0, le=60000, description="Milliseconds to wait")


class HoverParams(ElementAddress):
    pass


class SelectParams(ElementAddress):
    """Choose an option in a <select>."""
    value: str = Field(description="Option value or label to select")


class PressKeyParams(BaseModel):
    key: str = Field(description="Key to press (Enter, Tab, Escape, ...)")
    modifiers: list[str] = Field(default_factory=list)

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Key cannot be empty")
        return v.strip()

    def combination(self) -> str:
        """Playwright-style combination such as 'Control+Shift+A'."""
        return "+".join([*self.modifiers, self.key])


class DragDropParams(BaseModel):
    from_: Point = Field(alias="from")
    to: Point


class UploadFileParams(BaseModel):
    index: Optional[int] = None
    selector: Optional[str] = None
    files: list[str] = Field(description="Local file paths to attach")

    @field_validator("files")
    @classmethod
    def validate_files(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("files cannot be empty")
        return v


class SwitchTabParams(BaseModel):
    index: Optional[int] = None
    url: Optional[str] = None


class ExecuteJSParams(BaseModel):
    code: str = Field(description="JavaScript code to execute")

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("code is required")
        return v


class GetElementsParams(BaseModel):
    type: Literal["button", "input", "link", "select", "image", "all"] = "all"
    visible: bool = Field(default=False, description="Only visible elements")


class GetElementDetailsParams(BaseModel):
    indices: list[int] = Field(description="Element indices from the latest getElements")


class EmptyParams(BaseModel):
    pass


ACTION_SCHEMAS: dict[ActionKind, type[BaseModel]] = {
    ActionKind.CLICK: ClickParams,
    ActionKind.TYPE: TypeParams,
    ActionKind.SCROLL: ScrollParams,
    ActionKind.NAVIGATE: NavigateParams,
    ActionKind.SCREENSHOT: EmptyParams,
    ActionKind.WAIT: WaitParams,
    ActionKind.HOVER: HoverParams,
    ActionKind.SELECT: SelectParams,
    ActionKind.PRESS_KEY: PressKeyParams,
    ActionKind.GO_BACK: EmptyParams,
    ActionKind.GO_FORWARD: EmptyParams,
    ActionKind.REFRESH: EmptyParams,
    ActionKind.DRAG_DROP: DragDropParams,
    ActionKind.UPLOAD_FILE: UploadFileParams,
    ActionKind.SWITCH_TAB: SwitchTabParams,
    ActionKind.EXECUTE_JS: ExecuteJSParams,
    ActionKind.GET_ELEMENTS: GetElementsParams,
    ActionKind.GET_ELEMENT_DETAILS: GetElementDetailsParams,
}


def get_schema_for_action(kind: ActionKind) -> type[BaseModel]:
    """Get the Pydantic schema for an action kind."""
    return ACTION_SCHEMAS[kind]


# =============================================================================
# Tool definition for structured calling
# =============================================================================

BROWSER_ACTION_TOOL_NAME = "browser_action"

BROWSER_ACTION_TOOL = {
    "name": BROWSER_ACTION_TOOL_NAME,
    "description": "Execute browser actions like clicking, typing, scrolling, and navigating.",
    "parameters": {
        "type": "object",
        "required": ["action"],
        "properties": {
            "action": {
                "type": "string",
                "enum": ActionKind.values(),
                "description": "The action to perform",
            },
            "params": {
                "type": "object",
                "description": "Action parameters (varies by action type)",
                "properties": {
                    "index": {"type": "number", "description": "Element index from getElements"},
                    "selector": {"type": "string", "description": "CSS selector"},
                    "x": {"type": "number", "description": "X coordinate"},
                    "y": {"type": "number", "description": "Y coordinate"},
                    "text": {"type": "string", "description": "Text to type, or label of the click target"},
                    "clear": {"type": "boolean", "description": "Clear field before typing"},
                    "direction": {"type": "string", "enum": ["up", "down", "left", "right"]},
                    "amount": {"type": "number", "description": "Scroll amount in pixels"},
                    "url": {"type": "string", "description": "URL to navigate to"},
                    "ms": {"type": "number", "description": "Milliseconds to wait"},
                    "value": {"type": "string", "description": "Option value to select"},
                    "key": {"type": "string", "description": "Key to press"},
                    "modifiers": {"type": "array", "items": {"type": "string"}},
                    "type": {
                        "type": "string",
                        "enum": ["button", "input", "link", "select", "image", "all"],
                    },
                    "visible": {"type": "boolean", "description": "Only visible elements"},
                    "indices": {"type": "array", "items": {"type": "number"}},
                    "code": {"type": "string", "description": "JavaScript code to execute"},
                    "files": {"type": "array", "items": {"type": "string"}},
                    "from": {
                        "type": "object",
                        "properties": {"x": {"type": "number"}, "y": {"type": "number"}},
                    },
                    "to": {
                        "type": "object",
                        "properties": {"x": {"type": "number"}, "y": {"type": "number"}},
                    },
                },
            },
        },
    },
}


def to_openai_tool(tool: dict) -> dict:
    """Convert a tool definition to OpenAI's function format."""
    return {"type": "function", "function": tool}


def to_anthropic_tool(tool: dict) -> dict:
    """Convert a tool definition to Anthropic's tool format."""
    return {
        "name": tool["name"],
        "description": tool["description"],
        "input_schema": tool["parameters"],
    }


def to_google_tools(tools: list[dict]) -> dict:
    """Convert tool definitions to a Google functionDeclarations block."""
    return {
        "functionDeclarations": [
            {
                "name": tool["name"],
                "description": tool["description"],
                "parameters": tool["parameters"],
            }
            for tool in tools
        ]
    }
