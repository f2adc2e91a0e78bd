"""
Tests for action extraction from model responses.
"""

import json

import pytest

from browser_copilot.llm_client import (
    FencedJsonActionParser,
    StructuredActionParser,
    create_action_parser,
    parse_json_with_recovery,
)
from browser_copilot.types import ActionKind, ModelResponse, ToolCall
from browser_copilot.utils import extract_fenced_json


class TestExtractFencedJson:
    """Tests for fenced block extraction."""

    def test_json_fence(self):
        """Test extraction from a json-tagged fence."""
        text = 'Let me look.\n```json\n{"action": "getElements"}\n```\nThen click.'
        assert json.loads(extract_fenced_json(text)) == {"action": "getElements"}

    def test_plain_fence(self):
        """Test extraction from an untagged fence."""
        text = '```\n[{"action": "goBack"}]\n```'
        assert json.loads(extract_fenced_json(text)) == [{"action": "goBack"}]

    def test_first_block_wins(self):
        """Test that only the first fenced block is read."""
        text = '```json\n{"action": "refresh"}\n```\n```json\n{"action": "goBack"}\n```'
        assert json.loads(extract_fenced_json(text))["action"] == "refresh"

    def test_skips_non_json_fence(self):
        """Test that non-JSON fences are skipped."""
        text = '```python\nprint(1)\n```\n```json\n{"action": "wait"}\n```'
        assert json.loads(extract_fenced_json(text))["action"] == "wait"

    def test_bare_json_is_ignored(self):
        """Test that unfenced JSON is not treated as an action."""
        assert extract_fenced_json('{"action": "click"}') is None

    def test_no_block(self):
        """Test text without any fenced block."""
        assert extract_fenced_json("The task is complete.") is None


class TestFencedJsonActionParser:
    """Tests for the fenced-block strategy."""

    @pytest.fixture
    def parser(self):
        return FencedJsonActionParser()

    def test_single_object(self, parser):
        """Test parsing a single action object."""
        response = ModelResponse(content='```json\n{"action": "click", "params": {"index": 2}}\n```')
        actions = parser.parse(response)
        assert len(actions) == 1
        assert actions[0].kind == ActionKind.CLICK
        assert actions[0].params == {"index": 2}

    def test_array_keeps_order(self, parser):
        """Test that an action array keeps its order."""
        response = ModelResponse(content=(
            '```json\n[{"action": "click", "params": {"index": 0}},'
            ' {"action": "type", "params": {"text": "hello"}}]\n```'
        ))
        kinds = [a.kind for a in parser.parse(response)]
        assert kinds == [ActionKind.CLICK, ActionKind.TYPE]

    def test_missing_params_default_empty(self, parser):
        """Test that missing params default to an empty dict."""
        actions = parser.parse(ModelResponse(content='```json\n{"action": "goBack"}\n```'))
        assert actions[0].params == {}

    def test_invalid_kinds_dropped(self, parser):
        """Test that unknown action kinds are dropped."""
        response = ModelResponse(content='```json\n[{"action": "fly"}, {"action": "refresh"}]\n```')
        assert [a.kind for a in parser.parse(response)] == [ActionKind.REFRESH]

    def test_malformed_json_gives_no_actions(self, parser, caplog):
        """Test that malformed JSON yields no actions."""
        response = ModelResponse(content='```json\n{"action": "click", \n```')
        with caplog.at_level("WARNING"):
            assert parser.parse(response) == []
        assert "Unparseable" in caplog.text

    def test_trailing_comma_recovered(self, parser):
        """Test recovery from a trailing comma."""
        response = ModelResponse(content='```json\n{"action": "scroll", "params": {"amount": 300},}\n```')
        assert parser.parse(response)[0].params == {"amount": 300}

    def test_prose_only(self, parser):
        """Test a reply with prose only."""
        assert parser.parse(ModelResponse(content="All done, the title is Example.")) == []

    def test_ignores_tool_calls(self, parser):
        """Test that structured tool calls are ignored."""
        response = ModelResponse(tool_calls=[ToolCall("browser_action", {"action": "click"})])
        assert parser.parse(response) == []


class TestStructuredActionParser:
    """Tests for the native tool-call strategy."""

    @pytest.fixture
    def parser(self):
        return StructuredActionParser()

    def test_reads_browser_action_calls(self, parser):
        """Test reading browser_action tool calls."""
        response = ModelResponse(tool_calls=[
            ToolCall("browser_action", {"action": "getElements", "params": {"type": "button"}}),
            ToolCall("browser_action", {"action": "click", "params": {"index": 1}}),
        ])
        actions = parser.parse(response)
        assert [a.kind for a in actions] == [ActionKind.GET_ELEMENTS, ActionKind.CLICK]
        assert actions[0].params == {"type": "button"}

    def test_invalid_kind_dropped_silently(self, parser):
        """Test that an invalid kind is dropped without error."""
        response = ModelResponse(tool_calls=[
            ToolCall("browser_action", {"action": "teleport"}),
            ToolCall("browser_action", {"action": "refresh"}),
        ])
        assert [a.kind for a in parser.parse(response)] == [ActionKind.REFRESH]

    def test_other_tools_ignored(self, parser):
        """Test that calls to other tools are ignored."""
        response = ModelResponse(tool_calls=[ToolCall("web_search", {"q": "x"})])
        assert parser.parse(response) == []

    def test_ignores_fenced_text(self, parser):
        """Test that fenced JSON in the text is ignored."""
        response = ModelResponse(content='```json\n{"action": "click"}\n```')
        assert parser.parse(response) == []


class TestCreateActionParser:
    def test_strategy_choice(self):
        """Test parser selection per provider."""
        assert isinstance(create_action_parser(True), StructuredActionParser)
        assert isinstance(create_action_parser(False), FencedJsonActionParser)


class TestParseJsonWithRecovery:
    def test_valid(self):
        """Test lenient loading of valid JSON."""
        assert parse_json_with_recovery('{"a": 1}') == {"a": 1}

    def test_trailing_comma_in_array(self):
        """Test a trailing comma inside an array."""
        assert parse_json_with_recovery('[1, 2,]') == [1, 2]

    def test_unrecoverable(self):
        """Test JSON that cannot be repaired."""
        with pytest.raises(json.JSONDecodeError):
            parse_json_with_recovery("{nope")
