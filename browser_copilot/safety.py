"""
Safety classification for Browser Copilot.

Decides how much human gating each proposed action needs, given the
current page summary.
"""

from typing import Any

from .types import ActionKind, BrowserAction, ConfirmLevel, PageSummary
from .utils import (
    contains_sensitive_keywords,
    is_destructive_label,
    is_sensitive_url,
    looks_like_card_number,
    truncate_text,
)


class SafetyClassifier:
    """Classifies browser actions into confirm levels.

    Classification is pure: the same action and page summary always
    produce the same level.
    """

    # Actions that always require confirmation
    ALWAYS_CONFIRM = frozenset({ActionKind.EXECUTE_JS, ActionKind.UPLOAD_FILE})

    SUBMIT_KEYS = frozenset({"enter", "return"})

    def classify(self, action: BrowserAction, page: PageSummary) -> ConfirmLevel:
        """Classify the confirm level of an action.

        Args:
            action: The proposed action
            page: Summary of the page the action would run against

        Returns:
            Confirm level for the action
        """
        if action.kind in self.ALWAYS_CONFIRM:
            return ConfirmLevel.CONFIRM

        params = action.params or {}

        if action.kind == ActionKind.CLICK:
            label = str(params.get("text") or params.get("label") or "")
            if label and is_destructive_label(label) and self._is_sensitive_page(page):
                return ConfirmLevel.CONFIRM

        if action.kind == ActionKind.PRESS_KEY:
            key = str(params.get("key") or "").lower()
            if key in self.SUBMIT_KEYS and self._is_sensitive_page(page):
                return ConfirmLevel.CONFIRM

        if action.kind == ActionKind.TYPE:
            text = str(params.get("text") or "")
            if looks_like_card_number(text):
                return ConfirmLevel.CONFIRM

        return ConfirmLevel.AUTO

    def _is_sensitive_page(self, page: PageSummary) -> bool:
        """Check the page url and visible text against the sensitive lexicons."""
        return is_sensitive_url(page.url) or contains_sensitive_keywords(page.visible_text)


def describe_action(action: BrowserAction) -> str:
    """Describe an action in one human-readable line."""
    params: dict[str, Any] = action.params or {}
    kind = action.kind

    if kind == ActionKind.CLICK:
        if params.get("index") is not None:
            label = f" \"{params['text']}\"" if params.get("text") else ""
            return f"Click element #{params['index']}{label}"
        if params.get("selector"):
            return f"Click {params['selector']}"
        if params.get("x") is not None:
            return f"Click at ({params.get('x')}, {params.get('y')})"
        return "Click"
    if kind == ActionKind.TYPE:
        return f"Type \"{truncate_text(str(params.get('text', '')), 23)}\""
    if kind == ActionKind.NAVIGATE:
        return f"Navigate to {params.get('url', '')}"
    if kind == ActionKind.PRESS_KEY:
        return f"Press key {params.get('key', '')}"
    if kind == ActionKind.EXECUTE_JS:
        return "Execute JavaScript"
    if kind == ActionKind.UPLOAD_FILE:
        return "Upload file"
    return kind.value


def format_confirm_message(action: BrowserAction, page: PageSummary) -> str:
    """Render the prompt shown to the user before a confirm-level action."""
    return f"Confirm action: {describe_action(action)} (page: {page.url})"


def classify_action(action: BrowserAction, page: PageSummary) -> ConfirmLevel:
    """Convenience function to classify an action with a fresh classifier."""
    return SafetyClassifier().classify(action, page)
