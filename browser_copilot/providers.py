"""
LLM provider configuration for Browser Copilot.

Provides provider-specific endpoints, default models and the capability
matrix that selects the operating mode and the action parsing strategy.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from .types import AgentMode


class Provider(str, Enum):
    """Supported LLM providers."""
    GOOGLE = "google"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    DEEPSEEK = "deepseek"
    QWEN = "qwen"
    GLM = "glm"
    OLLAMA = "ollama"
    LM_STUDIO = "lm_studio"
    CUSTOM = "custom"


# Default endpoints for each provider
PROVIDER_ENDPOINTS = {
    Provider.GOOGLE: "https://generativelanguage.googleapis.com/v1beta",
    Provider.OPENAI: "https://api.openai.com/v1",
    Provider.ANTHROPIC: "https://api.anthropic.com/v1",
    Provider.DEEPSEEK: "https://api.deepseek.com/v1",
    Provider.QWEN: "https://dashscope.aliyuncs.com/compatible-mode/v1",
    Provider.GLM: "https://open.bigmodel.cn/api/paas/v4",
    Provider.OLLAMA: "http://127.0.0.1:11434/v1",
    Provider.LM_STUDIO: "http://127.0.0.1:1234/v1",
    Provider.CUSTOM: "http://127.0.0.1:8000/v1",
}

# Default models for each provider
PROVIDER_DEFAULT_MODELS = {
    Provider.GOOGLE: "gemini-2.0-flash",
    Provider.OPENAI: "gpt-4o-mini",
    Provider.ANTHROPIC: "claude-3-5-sonnet-20241022",
    Provider.DEEPSEEK: "deepseek-chat",
    Provider.QWEN: "qwen-vl-max",
    Provider.GLM: "glm-4v",
    Provider.OLLAMA: "qwen2.5:7b",
    Provider.LM_STUDIO: "qwen2.5:7b",
    Provider.CUSTOM: "default",
}

# Model used by the visual control loop on providers with a computer-use endpoint
PROVIDER_COMPUTER_USE_MODELS = {
    Provider.GOOGLE: "gemini-2.5-computer-use-preview-10-2025",
}

# Provider display names
PROVIDER_DISPLAY_NAMES = {
    Provider.GOOGLE: "Google AI",
    Provider.OPENAI: "OpenAI",
    Provider.ANTHROPIC: "Anthropic",
    Provider.DEEPSEEK: "DeepSeek",
    Provider.QWEN: "Qwen (DashScope)",
    Provider.GLM: "GLM (Zhipu)",
    Provider.OLLAMA: "Ollama (Local)",
    Provider.LM_STUDIO: "LM Studio (Local)",
    Provider.CUSTOM: "Custom endpoint",
}

# Whether provider requires API key
PROVIDER_REQUIRES_API_KEY = {
    Provider.GOOGLE: True,
    Provider.OPENAI: True,
    Provider.ANTHROPIC: True,
    Provider.DEEPSEEK: True,
    Provider.QWEN: True,
    Provider.GLM: True,
    Provider.OLLAMA: False,
    Provider.LM_STUDIO: False,
    Provider.CUSTOM: False,
}


@dataclass(frozen=True)
class ProviderCapabilities:
    """What a provider's models can do."""
    supports_structured_calls: bool = False
    supports_vision: bool = False
    supports_computer_use: bool = False


UNKNOWN_CAPABILITIES = ProviderCapabilities()

# Static capability table; build a CapabilityMatrix from it rather than reading it directly
DEFAULT_CAPABILITIES: dict[str, ProviderCapabilities] = {
    Provider.GOOGLE.value: ProviderCapabilities(True, True, supports_computer_use=True),
    Provider.OPENAI.value: ProviderCapabilities(True, True),
    Provider.ANTHROPIC.value: ProviderCapabilities(True, True),
    Provider.DEEPSEEK.value: ProviderCapabilities(True, False),
    Provider.QWEN.value: ProviderCapabilities(True, True),
    Provider.GLM.value: ProviderCapabilities(True, True),
    Provider.OLLAMA.value: ProviderCapabilities(False, False),
    Provider.LM_STUDIO.value: ProviderCapabilities(False, False),
    Provider.CUSTOM.value: ProviderCapabilities(False, False),
}


class CapabilityMatrix:
    """Lookup table from provider id to capabilities.

    Constructed explicitly and passed to the agent and the runner.
    Unknown providers get no capabilities.
    """

    def __init__(self, table: Optional[Mapping[str, ProviderCapabilities]] = None):
        source = DEFAULT_CAPABILITIES if table is None else table
        self._table = {self._key(k): v for k, v in source.items()}

    @staticmethod
    def _key(provider: "Provider | str") -> str:
        return provider.value if isinstance(provider, Provider) else str(provider)

    def get(self, provider: "Provider | str") -> ProviderCapabilities:
        """Get capabilities for a provider."""
        return self._table.get(self._key(provider), UNKNOWN_CAPABILITIES)

    def providers(self) -> list[str]:
        return list(self._table)

    def select_mode(self, provider: "Provider | str") -> AgentMode:
        """Hybrid for vision-capable providers, structural otherwise."""
        if self.get(provider).supports_vision:
            return AgentMode.HYBRID
        return AgentMode.STRUCTURAL

    def uses_structured_parsing(self, provider: "Provider | str") -> bool:
        """Whether model output is parsed as native tool calls."""
        return self.get(provider).supports_structured_calls

    def select_loop(self, provider: "Provider | str") -> AgentMode:
        """Pick the control loop for a task: visual or structural.

        The visual loop needs vision, structured calls and a computer-use
        endpoint.
        """
        caps = self.get(provider)
        if caps.supports_vision and caps.supports_structured_calls and caps.supports_computer_use:
            return AgentMode.VISUAL
        return AgentMode.STRUCTURAL


@dataclass
class ProviderConfig:
    """Configuration for an LLM provider."""

    provider: Provider = Provider.OPENAI
    api_key: Optional[str] = None
    model: Optional[str] = None
    custom_endpoint: Optional[str] = None

    @property
    def endpoint(self) -> str:
        """Get the endpoint URL for this provider."""
        if self.custom_endpoint:
            return self.custom_endpoint.rstrip("/")
        return PROVIDER_ENDPOINTS.get(self.provider, PROVIDER_ENDPOINTS[Provider.CUSTOM])

    @property
    def effective_model(self) -> str:
        """Get the effective model name."""
        if self.model:
            return self.model
        return PROVIDER_DEFAULT_MODELS.get(self.provider, "default")

    @property
    def computer_use_model(self) -> Optional[str]:
        return PROVIDER_COMPUTER_USE_MODELS.get(self.provider)

    @property
    def requires_api_key(self) -> bool:
        """Check if this provider requires an API key."""
        return PROVIDER_REQUIRES_API_KEY.get(self.provider, True)

    @property
    def display_name(self) -> str:
        """Get the display name for this provider."""
        return PROVIDER_DISPLAY_NAMES.get(self.provider, self.provider.value)

    def validate(self) -> tuple[bool, str]:
        """Validate the configuration.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if self.requires_api_key and not self.api_key:
            return False, f"{self.display_name} requires an API key"
        return True, ""

    @classmethod
    def from_dict(cls, data: dict) -> "ProviderConfig":
        """Create from dictionary."""
        provider_str = data.get("provider", Provider.OPENAI.value)
        try:
            provider = Provider(provider_str)
        except ValueError:
            provider = Provider.CUSTOM

        return cls(
            provider=provider,
            api_key=data.get("api_key"),
            model=data.get("model"),
            custom_endpoint=data.get("custom_endpoint"),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return {
            "provider": self.provider.value,
            "api_key": self.api_key,
            "model": self.model,
            "custom_endpoint": self.custom_endpoint,
        }
