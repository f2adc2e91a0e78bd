"""
Provider adapters for Browser Copilot.

Provides a unified async LLM interface with adapters for different providers:
- OpenAI (and OpenAI-compatible like LM Studio, Ollama, DeepSeek, Qwen, GLM)
- Anthropic (Claude)
- Google GenAI (Gemini), including the computer-use endpoint
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from .providers import Provider, ProviderConfig
from .tool_schemas import to_anthropic_tool, to_google_tools, to_openai_tool
from .types import ConversationMessage, ModelResponse, ToolCall


logger = logging.getLogger(__name__)


class ModelAPIError(Exception):
    """The model endpoint answered with an error payload."""


class LLMAdapter(ABC):
    """Abstract base class for LLM provider adapters."""

    def __init__(self, config: ProviderConfig, timeout: float = 60.0, max_retries: int = 3):
        self.config = config
        self.model = config.effective_model
        self.max_retries = max_retries
        self.client = httpx.AsyncClient(timeout=timeout)

    @abstractmethod
    async def chat(
        self,
        messages: list[ConversationMessage],
        tools: Optional[list[dict]] = None,
    ) -> ModelResponse:
        """Send a chat request.

        Args:
            messages: Full conversation, system message first
            tools: Optional neutral tool definitions to advertise

        Returns:
            Normalized model response
        """
        pass

    async def _post(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str],
        params: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        """POST with exponential backoff on rate limits and transport errors."""
        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries + 1):
            try:
                if attempt > 0:
                    wait_time = 2 ** (attempt + 1)
                    logger.debug("Retrying %s in %ds (attempt %d)", url, wait_time, attempt + 1)
                    await asyncio.sleep(wait_time)

                response = await self.client.post(url, json=payload, headers=headers, params=params)
                response.raise_for_status()
                data = response.json()
                if isinstance(data, dict) and data.get("error"):
                    error = data["error"]
                    message = error.get("message", error) if isinstance(error, dict) else error
                    raise ModelAPIError(str(message))
                return data

            except httpx.HTTPStatusError as e:
                last_error = e
                if e.response.status_code == 429 and attempt < self.max_retries:
                    logger.warning("Rate limited by %s", url)
                    continue
                raise
            except httpx.TransportError as e:
                last_error = e
                if attempt < self.max_retries:
                    logger.warning("Transport error talking to %s: %s", url, e)
                    continue
                raise

        raise last_error

    async def close(self) -> None:
        """Close any resources."""
        await self.client.aclose()


class OpenAIAdapter(LLMAdapter):
    """Adapter for OpenAI Chat Completions API.

    Works with OpenAI and every OpenAI-compatible endpoint.
    """

    def __init__(self, config: ProviderConfig, timeout: float = 60.0, max_retries: int = 3):
        super().__init__(config, timeout, max_retries)
        self.endpoint = config.endpoint.rstrip("/")
        self.headers = {"Content-Type": "application/json"}
        if config.api_key:
            self.headers["Authorization"] = f"Bearer {config.api_key}"

    async def chat(
        self,
        messages: list[ConversationMessage],
        tools: Optional[list[dict]] = None,
    ) -> ModelResponse:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": 0.1,
            "max_tokens": 2048,
        }
        if tools:
            payload["tools"] = [to_openai_tool(t) for t in tools]
            payload["tool_choice"] = "auto"

        data = await self._post(f"{self.endpoint}/chat/completions", payload, self.headers)
        return self.parse_response(data)

    @staticmethod
    def parse_response(data: dict[str, Any]) -> ModelResponse:
        choices = data.get("choices") or []
        if not choices:
            return ModelResponse()
        message = choices[0].get("message") or {}

        tool_calls = []
        for call in message.get("tool_calls") or []:
            function = call.get("function") or {}
            raw_args = function.get("arguments") or "{}"
            try:
                arguments = json.loads(raw_args) if isinstance(raw_args, str) else dict(raw_args)
            except json.JSONDecodeError:
                logger.debug("Unparseable tool arguments: %s", raw_args)
                arguments = {}
            tool_calls.append(ToolCall(name=function.get("name", ""), arguments=arguments))

        return ModelResponse(
            content=message.get("content") or "",
            tool_calls=tool_calls,
            usage=data.get("usage"),
        )


class AnthropicAdapter(LLMAdapter):
    """Adapter for Anthropic Messages API (Claude).

    Uses the native Anthropic API format instead of OpenAI compatibility.
    """

    def __init__(self, config: ProviderConfig, timeout: float = 60.0, max_retries: int = 3):
        super().__init__(config, timeout, max_retries)
        self.endpoint = f"{config.endpoint.rstrip('/')}/messages"
        self.headers = {
            "Content-Type": "application/json",
            "x-api-key": config.api_key or "",
            "anthropic-version": "2023-06-01",
        }

    async def chat(
        self,
        messages: list[ConversationMessage],
        tools: Optional[list[dict]] = None,
    ) -> ModelResponse:
        # Anthropic uses "system" parameter separately
        system_message = ""
        chat_messages = []
        for msg in messages:
            if msg.role == "system":
                system_message = msg.content
            else:
                role = "user" if msg.role == "user" else "assistant"
                chat_messages.append({"role": role, "content": msg.content})

        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": 2048,
            "messages": chat_messages,
        }
        if system_message:
            payload["system"] = system_message
        if tools:
            payload["tools"] = [to_anthropic_tool(t) for t in tools]

        data = await self._post(self.endpoint, payload, self.headers)
        return self.parse_response(data)

    @staticmethod
    def parse_response(data: dict[str, Any]) -> ModelResponse:
        texts = []
        tool_calls = []
        # Anthropic returns content as a list of blocks
        for block in data.get("content") or []:
            if block.get("type") == "text":
                texts.append(block.get("text", ""))
            elif block.get("type") == "tool_use":
                tool_calls.append(ToolCall(name=block.get("name", ""), arguments=block.get("input") or {}))
        return ModelResponse(content="\n".join(texts), tool_calls=tool_calls, usage=data.get("usage"))


def _google_contents(messages: list[ConversationMessage]) -> tuple[list[dict], Optional[str]]:
    contents = []
    system_instruction = None
    for msg in messages:
        if msg.role == "system":
            system_instruction = msg.content
        else:
            role = "user" if msg.role == "user" else "model"
            contents.append({"role": role, "parts": [{"text": msg.content}]})
    return contents, system_instruction


class GoogleAdapter(LLMAdapter):
    """Adapter for Google GenAI API (Gemini).

    Uses the native Google Generative AI API format.
    """

    def __init__(self, config: ProviderConfig, timeout: float = 60.0, max_retries: int = 3):
        super().__init__(config, timeout, max_retries)
        self.base_url = f"{config.endpoint.rstrip('/')}/models"
        self.api_key = config.api_key

    async def chat(
        self,
        messages: list[ConversationMessage],
        tools: Optional[list[dict]] = None,
    ) -> ModelResponse:
        contents, system_instruction = _google_contents(messages)
        payload: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": 0.1,
                "maxOutputTokens": 2048,
            },
        }
        if system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        if tools:
            payload["tools"] = [to_google_tools(tools)]

        data = await self._post(
            f"{self.base_url}/{self.model}:generateContent",
            payload,
            {"Content-Type": "application/json"},
            params={"key": self.api_key or ""},
        )
        return self.parse_response(data)

    @staticmethod
    def parse_response(data: dict[str, Any]) -> ModelResponse:
        candidates = data.get("candidates") or []
        texts = []
        tool_calls = []
        if candidates:
            # Google returns candidates with content.parts
            for part in (candidates[0].get("content") or {}).get("parts") or []:
                if "text" in part:
                    texts.append(part["text"])
                elif "functionCall" in part:
                    call = part["functionCall"] or {}
                    tool_calls.append(ToolCall(name=call.get("name", ""), arguments=call.get("args") or {}))
        return ModelResponse(content="".join(texts), tool_calls=tool_calls, usage=data.get("usageMetadata"))


class GoogleComputerUseClient(LLMAdapter):
    """Client for Gemini's computer-use endpoint used by the visual loop.

    The caller owns the raw `contents` list: screenshots and function
    responses go in as native Gemini parts.
    """

    COMPUTER_USE_TOOL = {"computer_use": {"environment": "ENVIRONMENT_BROWSER"}}

    SAFETY_SETTINGS = [
        {"category": category, "threshold": "BLOCK_NONE"}
        for category in (
            "HARM_CATEGORY_HARASSMENT",
            "HARM_CATEGORY_HATE_SPEECH",
            "HARM_CATEGORY_SEXUALLY_EXPLICIT",
            "HARM_CATEGORY_DANGEROUS_CONTENT",
        )
    ]

    def __init__(self, config: ProviderConfig, timeout: float = 60.0, max_retries: int = 3):
        super().__init__(config, timeout, max_retries)
        self.model = config.computer_use_model or config.effective_model
        self.base_url = f"{config.endpoint.rstrip('/')}/models"
        self.api_key = config.api_key

    async def generate(
        self,
        contents: list[dict[str, Any]],
        system_instruction: Optional[str] = None,
    ) -> Optional[dict[str, Any]]:
        """Request the next step.

        Args:
            contents: Native Gemini conversation contents
            system_instruction: Optional system prompt

        Returns:
            The first candidate's content ({"role", "parts"}), or None
        """
        payload: dict[str, Any] = {
            "contents": contents,
            "tools": [self.COMPUTER_USE_TOOL],
            "generationConfig": {"temperature": 1.0},
            "safetySettings": self.SAFETY_SETTINGS,
        }
        if system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}

        data = await self._post(
            f"{self.base_url}/{self.model}:generateContent",
            payload,
            {"Content-Type": "application/json"},
            params={"key": self.api_key or ""},
        )
        candidates = data.get("candidates") or []
        if not candidates:
            return None
        return candidates[0].get("content") or {"role": "model", "parts": []}

    async def chat(
        self,
        messages: list[ConversationMessage],
        tools: Optional[list[dict]] = None,
    ) -> ModelResponse:
        contents, system_instruction = _google_contents(messages)
        content = await self.generate(contents, system_instruction)
        return GoogleAdapter.parse_response({"candidates": [{"content": content}]} if content else {})


def create_adapter(
    provider: Provider,
    config: ProviderConfig,
    timeout: float = 60.0,
    max_retries: int = 3,
) -> LLMAdapter:
    """Create an LLM adapter for the specified provider.

    Args:
        provider: The LLM provider type
        config: Provider configuration
        timeout: Request timeout in seconds
        max_retries: Maximum retries on rate limit or transport errors

    Returns:
        Configured LLM adapter
    """
    adapters = {
        Provider.ANTHROPIC: AnthropicAdapter,
        Provider.GOOGLE: GoogleAdapter,
    }

    # Everything else speaks the OpenAI chat completions dialect
    adapter_class = adapters.get(provider, OpenAIAdapter)
    return adapter_class(config, timeout=timeout, max_retries=max_retries)
