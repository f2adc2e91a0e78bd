"""
Prompt builders for Browser Copilot.

Renders the system instructions, the per-task user message and the
synthesized action-outcome turns.
"""

import json

from .types import ActionResult, AgentMode, PageSummary
from .utils import truncate_text


SYSTEM_PROMPT = """You are a browser automation assistant. Carry out the user's task on the current web page.

## Available actions
Use the browser_action tool with one of these actions:

### Discovery
- getElements: list interactive elements (params.type: button|input|link|select|image|all, params.visible: true to skip hidden ones)
- getElementDetails: full details for specific elements (params.indices: [0, 3, ...])
- screenshot: capture the current page

### Basic actions
- click: click an element (params.index, or params.selector, or params.x/params.y). Include params.text with the element's visible label.
- type: type text (params.text; params.clear: true to clear the field first; optional params.index or params.selector to focus a field)
- scroll: scroll the page (params.direction: up|down|left|right, params.amount: pixels)
- navigate: open a URL (params.url)
- wait: pause (params.ms: milliseconds)

### Navigation
- goBack, goForward, refresh

### Advanced
- hover: move the pointer over an element
- select: choose an option in a dropdown (params.value)
- pressKey: press a key (params.key: Enter|Tab|Escape|..., params.modifiers: ["Control", ...])
- switchTab: activate a tab (params.index or params.url)
- dragDrop: drag from params.from {x, y} to params.to {x, y}
- uploadFile: attach files (params.files) to a file input
- executeJS: run JavaScript in the page (params.code); always needs user confirmation

## Workflow
1. Call getElements first to learn which elements the page has.
2. Act on elements by their index (click, type, select, ...).
3. After each batch you receive the results and the new page state; decide the next step from them.
4. Indices are only valid until the next getElements call. Enumerate again after the page changes.
5. When the task is done, reply with a summary and no further actions.

## Notes
- Prefer index over selector or coordinates; it is the most reliable.
- Scroll elements into view before acting on them if needed.
- Click an input to focus it before typing.
- Submit forms by clicking the submit button or pressing Enter."""


COORDINATE_GUIDANCE = """

## Visual mode
This model can analyse page screenshots.
- You may act on coordinates (x, y) directly; positions in the screenshot match click positions.
- Combine the element list with what you see to decide."""


FALLBACK_CONTRACT = """

## Response format
You cannot call tools directly. Put the actions as JSON inside a fenced markdown code block:

```json
{"action": "getElements", "params": {"type": "button"}}
```

or several actions at once:

```json
[
  {"action": "click", "params": {"index": 0}},
  {"action": "type", "params": {"text": "hello"}}
]
```

Only the first JSON block is read. Reply without a JSON block when the task is complete."""


VISUAL_SYSTEM_PROMPT = """You are a browser assistant that controls a web browser from screenshots.

- Each turn you receive a screenshot of the current page, plus the url after every action.
- Coordinates are on a 1000x1000 grid covering the visible viewport.
- Act one step at a time and check the next screenshot before continuing.
- Ask the user before anything that pays, submits personal data or deletes something.
- When the task is complete, reply with a short summary and no function calls."""


def build_system_prompt(mode: AgentMode) -> str:
    """Build the system prompt for a mode.

    Args:
        mode: Operating mode; visual and hybrid add coordinate guidance

    Returns:
        System prompt text
    """
    if mode in (AgentMode.VISUAL, AgentMode.HYBRID):
        return SYSTEM_PROMPT + COORDINATE_GUIDANCE
    return SYSTEM_PROMPT


def build_fallback_prompt(mode: AgentMode) -> str:
    """System prompt plus the fenced-JSON output contract for models without tool calls."""
    return build_system_prompt(mode) + FALLBACK_CONTRACT


def _format_counts(page: PageSummary) -> str:
    parts = [
        f"{count} {category}"
        for category, count in page.elements.to_dict().items()
        if count > 0
    ]
    return ", ".join(parts) if parts else "(none found)"


def build_user_message(task: str, page: PageSummary) -> str:
    """Render the page context and the task as the opening user message."""
    return f"""## Current page
URL: {page.url}
Title: {page.title}
Viewport: {page.viewport.width}x{page.viewport.height}
Interactive elements: {_format_counts(page)}

Page content excerpt:
{page.visible_text}

## Task
{task}"""


def _format_result(index: int, result: ActionResult, max_data_chars: int) -> str:
    line = f"Action {index}: {'✓' if result.success else '✗'} {truncate_text(result.message, 500)}"
    # Screenshot payloads are plain base64 strings and stay out of the text
    if isinstance(result.data, (list, dict)):
        data = json.dumps(result.data, ensure_ascii=False)
        line += "\n" + truncate_text(data, max_data_chars)
    return line


def build_outcome_message(
    results: list[ActionResult],
    page: PageSummary,
    max_data_chars: int = 6000,
) -> str:
    """Render the synthesized user turn that reports action outcomes."""
    lines = [
        _format_result(i, r, max_data_chars)
        for i, r in enumerate(results, start=1)
    ]
    summary = "\n".join(lines) if lines else "(no actions ran)"
    return f"""## Action results
{summary}

## Current page state
URL: {page.url}
Title: {page.title}

Continue with the task, or summarize the result if it is complete."""
