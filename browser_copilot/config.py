"""
Configuration management for Browser Copilot.

Provides the configuration dataclass and environment variable loading.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .providers import Provider, ProviderConfig

# Load environment variables from .env file if present
load_dotenv()


MIN_TURNS = 1
MAX_TURNS = 100


def get_base_dir() -> Path:
    """Get the base directory for browser copilot data."""
    return Path.home() / ".browser_copilot"


def get_runs_dir() -> Path:
    """Get the directory for run logs."""
    return get_base_dir() / "runs"


def clamp_turns(value: int) -> int:
    """Clamp a turn ceiling to the supported range."""
    return max(MIN_TURNS, min(MAX_TURNS, int(value)))


@dataclass
class AgentConfig:
    """Configuration for the browser copilot."""

    # LLM settings
    provider: str = field(
        default_factory=lambda: os.getenv("BROWSER_COPILOT_PROVIDER", Provider.OPENAI.value)
    )
    model_endpoint: Optional[str] = field(
        default_factory=lambda: os.getenv("BROWSER_COPILOT_ENDPOINT")
    )
    model: Optional[str] = field(
        default_factory=lambda: os.getenv("BROWSER_COPILOT_MODEL")
    )
    api_key: Optional[str] = field(
        default_factory=lambda: os.getenv("BROWSER_COPILOT_API_KEY")
    )

    # Loop settings
    max_turns: int = 20
    visual_max_turns: int = 30
    loop: str = "auto"  # auto | structural | visual

    # Confirmation
    auto_approve: bool = False
    confirm_timeout_s: float = 120.0

    # Settle delays (ms); empirical, tune per site
    action_settle_ms: int = 300
    interaction_settle_ms: int = 500
    navigation_settle_ms: int = 2500
    load_wait_timeout_s: float = 5.0

    # Browser settings
    headless: bool = False
    start_url: Optional[str] = None
    viewport_width: int = 1400
    viewport_height: int = 900
    action_timeout: int = 10000

    # Content limits
    visible_text_max_chars: int = 2000

    # Model request settings
    max_retries: int = 3
    request_timeout_s: float = 60.0

    # Debug mode - enables verbose logging (off by default)
    debug: bool = field(
        default_factory=lambda: os.getenv("BROWSER_COPILOT_DEBUG", "").lower() in ("1", "true", "yes")
    )

    @property
    def effective_max_turns(self) -> int:
        """Turn ceiling clamped to [1, 100]."""
        return clamp_turns(self.max_turns)

    @property
    def provider_config(self) -> ProviderConfig:
        """Build the provider configuration for the model adapters."""
        return ProviderConfig.from_dict({
            "provider": self.provider,
            "api_key": self.api_key,
            "model": self.model,
            "custom_endpoint": self.model_endpoint,
        })

    def ensure_directories(self) -> None:
        """Ensure all required directories exist."""
        get_base_dir().mkdir(parents=True, exist_ok=True)
        get_runs_dir().mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_cli_args(
        cls,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        model_endpoint: Optional[str] = None,
        max_turns: int = 20,
        headless: bool = False,
        start_url: Optional[str] = None,
        auto_approve: bool = False,
        loop: str = "auto",
        debug: bool = False,
    ) -> "AgentConfig":
        """Create configuration from CLI arguments."""
        config = cls(
            max_turns=max_turns,
            headless=headless,
            start_url=start_url,
            auto_approve=auto_approve,
            loop=loop,
        )
        if provider:
            config.provider = provider
        if model:
            config.model = model
        if model_endpoint:
            config.model_endpoint = model_endpoint
        if debug:
            config.debug = True
        return config


# Default configuration values for documentation
DEFAULTS = {
    "provider": Provider.OPENAI.value,
    "max_turns": 20,
    "visual_max_turns": 30,
    "loop": "auto",
    "headless": False,
    "auto_approve": False,
    "confirm_timeout_s": 120.0,
    "action_settle_ms": 300,
    "interaction_settle_ms": 500,
    "navigation_settle_ms": 2500,
    "load_wait_timeout_s": 5.0,
    "visible_text_max_chars": 2000,
}
