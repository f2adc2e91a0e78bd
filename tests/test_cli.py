"""
Tests for the command-line interface.
"""

from unittest.mock import patch

import pytest

from browser_copilot.cli import create_parser, main


class TestParser:
    def test_run_defaults(self):
        """Test run command defaults."""
        args = create_parser().parse_args(["run", "open example.com"])
        assert args.command == "run"
        assert args.task == "open example.com"
        assert args.provider is None
        assert args.max_turns == 20
        assert args.loop == "auto"
        assert not args.auto_approve
        assert not args.headless

    def test_run_options(self):
        """Test run command options."""
        args = create_parser().parse_args([
            "run", "task", "--provider", "ollama", "--model", "qwen2.5:7b",
            "--max-turns", "5", "--loop", "structural", "--auto-approve", "--headless", "-d",
        ])
        assert args.provider == "ollama"
        assert args.model == "qwen2.5:7b"
        assert args.max_turns == 5
        assert args.loop == "structural"
        assert args.auto_approve and args.headless and args.debug

    def test_rejects_unknown_provider(self):
        """Test that an unknown provider is rejected."""
        with pytest.raises(SystemExit):
            create_parser().parse_args(["run", "task", "--provider", "skynet"])


class TestCommands:
    def test_no_command_prints_help(self, capsys):
        """Test help output without a command."""
        assert main([]) == 0
        assert "browser-copilot" in capsys.readouterr().out

    def test_providers_table(self, capsys):
        """Test the providers table."""
        assert main(["providers"]) == 0
        assert "Provider Capabilities" in capsys.readouterr().out

    def test_missing_api_key(self, monkeypatch, capsys):
        """Test that a missing API key aborts before running."""
        monkeypatch.delenv("BROWSER_COPILOT_API_KEY", raising=False)
        with patch("browser_copilot.cli.setup_logging"), \
                patch("browser_copilot.cli.asyncio.run") as run:
            assert main(["run", "task", "--provider", "openai"]) == 1
        run.assert_not_called()
        assert "API key" in capsys.readouterr().out

    def test_forced_visual_loop_rejected(self, capsys):
        """Test forcing the visual loop on an unsupported provider."""
        with patch("browser_copilot.cli.setup_logging"), \
                patch("browser_copilot.cli.asyncio.run") as run:
            assert main(["run", "task", "--provider", "ollama", "--loop", "visual"]) == 1
        run.assert_not_called()
        assert "visual loop" in capsys.readouterr().out
