"""
Utility functions for Browser Copilot.

Provides helpers for text processing, JSON extraction and the lexicons
used by the safety classifier.
"""

import re
from typing import Any, Optional


def truncate_text(text: str, max_chars: int, suffix: str = "...") -> str:
    """Truncate text to a maximum number of characters.

    Args:
        text: Text to truncate
        max_chars: Maximum number of characters
        suffix: Suffix to add when truncated

    Returns:
        Truncated text
    """
    if len(text) <= max_chars:
        return text
    return text[:max_chars - len(suffix)] + suffix


_FENCED_JSON_PATTERN = re.compile(r'```(?:json)?[ \t]*\r?\n?([\s\S]*?)```', re.IGNORECASE)


def extract_fenced_json(response: str) -> Optional[str]:
    """Extract the first fenced code block that looks like JSON.

    Only objects and arrays count. Prose outside the fence is ignored.

    Args:
        response: Raw model text

    Returns:
        The JSON text inside the first matching fence, or None
    """
    for match in _FENCED_JSON_PATTERN.finditer(response):
        body = match.group(1).strip()
        if body.startswith(("{", "[")):
            return body
    return None


def ensure_scheme(url: str) -> str:
    """Prepend https:// when a URL has no scheme."""
    url = url.strip()
    if "://" in url or url.startswith(("about:", "data:")):
        return url
    return f"https://{url}"


def format_action_for_history(
    action: str,
    params: dict[str, Any],
    result: str
) -> dict[str, Any]:
    """Format an action for a log record, truncating long values."""
    formatted = {}
    for key, value in params.items():
        if isinstance(value, str) and len(value) > 100:
            formatted[key] = truncate_text(value, 100)
        else:
            formatted[key] = value

    return {
        "action": action,
        "params": formatted,
        "result": truncate_text(result, 200),
    }


# =============================================================================
# Safety lexicons
# =============================================================================

SENSITIVE_URL_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in (
        r"checkout", r"payment", r"pay/", r"billing",
        r"login", r"signin", r"signup", r"auth", r"oauth",
        r"delete", r"remove", r"cancel", r"unsubscribe",
        r"admin", r"settings", r"account", r"profile",
        r"bank", r"transfer", r"wire",
    )
]


def is_sensitive_url(url: str) -> bool:
    """Check if a URL points at a payment, auth, account or destructive page."""
    return any(p.search(url) for p in SENSITIVE_URL_PATTERNS)


SENSITIVE_KEYWORDS = {
    "确认支付", "立即支付", "删除账户", "注销", "取消订阅",
    "确认删除", "永久删除", "不可恢复",
    "confirm payment", "delete account", "unsubscribe",
    "permanently delete", "cannot be undone", "purchase", "buy now",
    "card number", "checkout",
}


def contains_sensitive_keywords(text: str) -> bool:
    """Check if page text contains payment or irreversible-action wording."""
    text_lower = text.lower()
    return any(kw in text_lower for kw in SENSITIVE_KEYWORDS)


DESTRUCTIVE_LABEL_PATTERNS = [
    re.compile(r"\b(submit|confirm|pay|purchase|buy|order|checkout)\b", re.IGNORECASE),
    re.compile(r"\b(delete|remove|cancel|unsubscribe|terminate|deactivate)\b", re.IGNORECASE),
    re.compile(r"(确认|提交|支付|付款|购买|下单|删除|移除|取消|注销)"),
]


def is_destructive_label(label: str) -> bool:
    """Check if a button/link label commits, pays or destroys something."""
    return any(p.search(label) for p in DESTRUCTIVE_LABEL_PATTERNS)


CARD_NUMBER_PATTERN = re.compile(r"\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}")


def looks_like_card_number(text: str) -> bool:
    """Check if text contains a 16-digit payment card shape."""
    return bool(CARD_NUMBER_PATTERN.search(text))


def is_password_field(selector: str) -> bool:
    """Check if a selector likely refers to a password field."""
    password_patterns = [
        r'password',
        r'type=["\']?password',
        r'#pass',
        r'\.pass',
        r'passwd',
        r'pwd',
    ]
    selector_lower = selector.lower()
    return any(re.search(p, selector_lower) for p in password_patterns)
