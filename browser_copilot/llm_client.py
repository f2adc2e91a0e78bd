"""
LLM client for Browser Copilot.

Provides the provider-neutral chat client and the two strategies that turn
a model reply into browser actions: native tool calls for providers that
support them, and a fenced JSON block for everything else.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Optional

from .adapters import LLMAdapter, create_adapter
from .providers import ProviderConfig
from .tool_schemas import BROWSER_ACTION_TOOL_NAME
from .types import BrowserAction, ConversationMessage, ModelResponse
from .utils import extract_fenced_json, truncate_text


logger = logging.getLogger(__name__)


class LLMClient:
    """Chat client over the adapter for the configured provider."""

    def __init__(
        self,
        provider_config: ProviderConfig,
        timeout: float = 60.0,
        max_retries: int = 3,
        adapter: Optional[LLMAdapter] = None,
    ):
        """Initialize the LLM client.

        Args:
            provider_config: Provider, model, endpoint and key
            timeout: Request timeout in seconds
            max_retries: Maximum retries on rate limit or transport errors
            adapter: Pre-built adapter (defaults to one created from the config)
        """
        self.provider_config = provider_config
        self.adapter = adapter or create_adapter(
            provider_config.provider, provider_config, timeout=timeout, max_retries=max_retries
        )

    @property
    def model(self) -> str:
        return self.adapter.model

    async def chat(
        self,
        messages: list[ConversationMessage],
        tools: Optional[list[dict]] = None,
    ) -> ModelResponse:
        """Send the conversation to the model.

        Args:
            messages: Full conversation, system message first
            tools: Optional tool definitions to advertise

        Returns:
            Normalized model response

        Raises:
            httpx.HTTPError: On network errors after retries exhausted
        """
        response = await self.adapter.chat(messages, tools)
        logger.debug(
            "Model %s replied: %d chars, %d tool call(s)",
            self.model, len(response.content), len(response.tool_calls),
        )
        return response

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.adapter.close()

    async def __aenter__(self) -> "LLMClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


# =============================================================================
# Action extraction strategies
# =============================================================================

class ActionParser(ABC):
    """Turns a model response into zero or more browser actions."""

    @abstractmethod
    def parse(self, response: ModelResponse) -> list[BrowserAction]:
        """Extract actions in the order the model proposed them."""


def _actions_from_items(items: list[Any]) -> list[BrowserAction]:
    actions = []
    for item in items:
        if not isinstance(item, dict):
            logger.debug("Dropping non-object action entry: %r", item)
            continue
        action = BrowserAction.from_dict(item)
        if action is None:
            logger.debug("Dropping action with unknown kind: %r", item.get("action"))
            continue
        actions.append(action)
    return actions


class StructuredActionParser(ActionParser):
    """Reads native tool calls named `browser_action`."""

    def parse(self, response: ModelResponse) -> list[BrowserAction]:
        items = []
        for call in response.tool_calls:
            if call.name != BROWSER_ACTION_TOOL_NAME:
                logger.debug("Ignoring call to unknown tool: %s", call.name)
                continue
            items.append(call.arguments)
        return _actions_from_items(items)


class FencedJsonActionParser(ActionParser):
    """Reads the first fenced JSON block (object or array) in the reply text."""

    def parse(self, response: ModelResponse) -> list[BrowserAction]:
        block = extract_fenced_json(response.content or "")
        if block is None:
            return []
        try:
            data = parse_json_with_recovery(block)
        except json.JSONDecodeError:
            logger.warning("Unparseable action block: %s", truncate_text(block, 200))
            return []
        items = data if isinstance(data, list) else [data]
        return _actions_from_items(items)


def create_action_parser(structured: bool) -> ActionParser:
    """Pick the extraction strategy for a provider, once per agent."""
    return StructuredActionParser() if structured else FencedJsonActionParser()


def parse_json_with_recovery(raw: str) -> Any:
    """Parse JSON, tolerating trailing commas.

    Args:
        raw: Text that should contain one JSON value

    Returns:
        Parsed JSON value

    Raises:
        json.JSONDecodeError: If all parsing attempts fail
    """
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        pass

    # Remove trailing commas before } or ]
    cleaned = re.sub(r',\s*([}\]])', r'\1', raw.strip())
    return json.loads(cleaned)
