"""
Tests for provider configuration and the capability matrix.
"""

import pytest

from browser_copilot.providers import (
    DEFAULT_CAPABILITIES,
    CapabilityMatrix,
    Provider,
    ProviderCapabilities,
    ProviderConfig,
)
from browser_copilot.types import AgentMode


class TestCapabilityMatrix:
    """Tests for mode, parsing and loop selection."""

    @pytest.fixture
    def matrix(self):
        return CapabilityMatrix()

    @pytest.mark.parametrize("provider,expected", [
        ("google", AgentMode.HYBRID),
        ("openai", AgentMode.HYBRID),
        ("anthropic", AgentMode.HYBRID),
        ("deepseek", AgentMode.STRUCTURAL),
        ("qwen", AgentMode.HYBRID),
        ("glm", AgentMode.HYBRID),
        ("ollama", AgentMode.STRUCTURAL),
        ("lm_studio", AgentMode.STRUCTURAL),
        ("custom", AgentMode.STRUCTURAL),
    ])
    def test_select_mode(self, matrix, provider, expected):
        """Test mode selection."""
        assert matrix.select_mode(provider) == expected

    def test_every_table_entry_has_a_mode(self, matrix):
        """Test that every provider resolves to a mode."""
        for provider in DEFAULT_CAPABILITIES:
            assert matrix.select_mode(provider) in (AgentMode.HYBRID, AgentMode.STRUCTURAL)

    def test_unknown_provider_defaults_to_nothing(self, matrix):
        """Test an unknown provider."""
        caps = matrix.get("mystery")
        assert caps == ProviderCapabilities()
        assert matrix.select_mode("mystery") == AgentMode.STRUCTURAL
        assert not matrix.uses_structured_parsing("mystery")

    def test_structured_parsing(self, matrix):
        """Test structured call support."""
        assert matrix.uses_structured_parsing(Provider.OPENAI)
        assert matrix.uses_structured_parsing("deepseek")
        assert not matrix.uses_structured_parsing("ollama")

    def test_select_loop(self, matrix):
        """Test loop selection."""
        assert matrix.select_loop("google") == AgentMode.VISUAL
        assert matrix.select_loop("openai") == AgentMode.STRUCTURAL
        assert matrix.select_loop("ollama") == AgentMode.STRUCTURAL

    def test_custom_table(self):
        """Test a custom capability table."""
        matrix = CapabilityMatrix({"acme": ProviderCapabilities(True, True, True)})
        assert matrix.select_loop("acme") == AgentMode.VISUAL
        assert matrix.get("google") == ProviderCapabilities()
        assert matrix.providers() == ["acme"]


class TestProviderConfig:
    """Tests for ProviderConfig."""

    def test_default_endpoint_and_model(self):
        """Test default endpoint and model."""
        config = ProviderConfig(provider=Provider.DEEPSEEK)
        assert config.endpoint == "https://api.deepseek.com/v1"
        assert config.effective_model == "deepseek-chat"

    def test_custom_endpoint_trailing_slash(self):
        """Test that a trailing slash is stripped."""
        config = ProviderConfig(provider=Provider.OPENAI, custom_endpoint="http://localhost:1234/v1/")
        assert config.endpoint == "http://localhost:1234/v1"

    def test_computer_use_model(self):
        """Test the computer-use model."""
        assert ProviderConfig(provider=Provider.GOOGLE).computer_use_model == "gemini-2.5-computer-use-preview-10-2025"
        assert ProviderConfig(provider=Provider.OPENAI).computer_use_model is None

    def test_validate_requires_key(self):
        """Test key validation."""
        valid, error = ProviderConfig(provider=Provider.OPENAI).validate()
        assert not valid
        assert "API key" in error
        assert ProviderConfig(provider=Provider.OLLAMA).validate() == (True, "")

    def test_from_dict_unknown_provider(self):
        """Test loading an unknown provider."""
        config = ProviderConfig.from_dict({"provider": "nonsense", "model": "m"})
        assert config.provider == Provider.CUSTOM
        assert config.model == "m"

    def test_round_trip(self):
        """Test dict serialization."""
        config = ProviderConfig(provider=Provider.ANTHROPIC, api_key="k", model="claude")
        assert ProviderConfig.from_dict(config.to_dict()) == config
