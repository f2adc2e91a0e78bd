"""
Tests for the structural agent loop.
"""

import asyncio

import httpx
import pytest

from conftest import FakeBridge, ScriptedLLM, action_call

from browser_copilot.agent import (
    MAX_TURNS_MARKER,
    STOPPED_MARKER,
    AgentCallbacks,
    AgentState,
    BrowserAgent,
)
from browser_copilot.approver import Approver, AutoApprover
from browser_copilot.safety import SafetyClassifier
from browser_copilot.tool_schemas import BROWSER_ACTION_TOOL
from browser_copilot.types import ActionKind, ConfirmLevel, ModelResponse, PageSummary


class BlockingClassifier(SafetyClassifier):
    """Blocks every navigation."""

    def classify(self, action, page):
        if action.kind == ActionKind.NAVIGATE:
            return ConfirmLevel.BLOCK
        return super().classify(action, page)


class DenyApprover(Approver):
    def __init__(self):
        self.messages = []

    async def request_confirmation(self, message, action):
        self.messages.append(message)
        return False


def make_agent(llm, bridge, config, provider="openai", approver=None, callbacks=None, classifier=None):
    return BrowserAgent(
        llm,
        bridge,
        provider=provider,
        config=config,
        approver=approver or AutoApprover(),
        callbacks=callbacks,
        classifier=classifier,
    )


class TestTermination:
    """How a run ends."""

    def test_no_actions_completes_after_one_turn(self, bridge, fast_config):
        """Test that a reply without actions ends the run."""
        llm = ScriptedLLM([ModelResponse(content="The title is Example.")])
        agent = make_agent(llm, bridge, fast_config)

        output = asyncio.run(agent.run("What is the title?"))

        assert output == "The title is Example."
        assert agent.state == AgentState.COMPLETED
        assert len(llm.requests) == 1
        assert llm.requests[0][1] == [BROWSER_ACTION_TOOL]

    def test_empty_response_completes(self, bridge, fast_config, caplog):
        """Test that an empty reply completes with a warning."""
        llm = ScriptedLLM([ModelResponse()])
        agent = make_agent(llm, bridge, fast_config)
        with caplog.at_level("WARNING"):
            assert asyncio.run(agent.run("task")) == ""
        assert agent.state == AgentState.COMPLETED
        assert "empty response" in caplog.text

    def test_turn_ceiling(self, bridge, fast_config):
        """Test the max-turns marker."""
        fast_config.max_turns = 1
        llm = ScriptedLLM([ModelResponse("Looking around", [action_call("getElements")])])
        agent = make_agent(llm, bridge, fast_config)

        output = asyncio.run(agent.run("task"))

        assert output == "Looking around" + MAX_TURNS_MARKER
        assert agent.state == AgentState.EXHAUSTED_TURNS
        assert len(llm.requests) == 1

    def test_turn_ceiling_is_clamped(self, bridge, fast_config):
        """Test that a zero ceiling still allows one turn."""
        fast_config.max_turns = 0
        llm = ScriptedLLM([ModelResponse("x", [action_call("refresh")])])
        agent = make_agent(llm, bridge, fast_config)

        assert asyncio.run(agent.run("task")).endswith(MAX_TURNS_MARKER)
        assert agent.last_result.turns == 1

    def test_stop_takes_effect_at_turn_boundary(self, bridge, fast_config):
        """Test that stop is honoured between turns."""
        llm = ScriptedLLM([
            ModelResponse("Step one", [action_call("getElements")]),
            ModelResponse("never reached"),
        ])
        agent = make_agent(llm, bridge, fast_config)
        llm.on_call = lambda n: agent.stop()

        output = asyncio.run(agent.run("task"))

        assert output == "Step one" + STOPPED_MARKER
        assert agent.state == AgentState.STOPPED
        assert len(llm.requests) == 1
        # The in-flight turn's actions still ran
        assert bridge.call_names() == ["get_elements"]

    def test_model_error_propagates(self, bridge, fast_config):
        """Test that model errors fail the run and reach on_error."""
        errors = []
        llm = ScriptedLLM([httpx.ConnectError("connection refused")])
        agent = make_agent(llm, bridge, fast_config, callbacks=AgentCallbacks(on_error=errors.append))

        with pytest.raises(httpx.ConnectError):
            asyncio.run(agent.run("task"))

        assert agent.state == AgentState.FAILED
        assert len(errors) == 1


class TestConversation:
    """Messages sent to the model."""

    def test_initial_messages(self, bridge, fast_config):
        """Test the system and first user messages."""
        llm = ScriptedLLM([ModelResponse("done")])
        agent = make_agent(llm, bridge, fast_config)
        asyncio.run(agent.run("find the title"))

        messages = llm.requests[0][0]
        assert [m.role for m in messages] == ["system", "user"]
        assert "URL: https://example.com/" in messages[1].content
        assert "find the title" in messages[1].content

    def test_unreachable_page_uses_placeholder(self, bridge, fast_config):
        """Test the placeholder page when the summary fails."""
        bridge.summary_error = RuntimeError("no page")
        llm = ScriptedLLM([ModelResponse("done")])
        agent = make_agent(llm, bridge, fast_config)
        asyncio.run(agent.run("task"))

        assert "URL: unknown" in llm.requests[0][0][1].content

    def test_outcome_message_after_each_batch(self, bridge, fast_config):
        """Test the outcome message after a batch."""
        llm = ScriptedLLM([
            ModelResponse("", [action_call("getElements"), action_call("click", index=0)]),
            ModelResponse("Clicked search."),
        ])
        agent = make_agent(llm, bridge, fast_config)
        asyncio.run(agent.run("click search"))

        roles = [m.role for m in agent.messages]
        assert roles == ["system", "user", "assistant", "user"]
        assert agent.messages[2].content == "Executed 2 action(s)"
        outcome = agent.messages[3].content
        assert "Action 1: ✓ Found 2 elements" in outcome
        assert "Action 2: ✓ Clicked element #0" in outcome

    def test_page_refreshed_once_per_turn(self, bridge, fast_config):
        """Test that the page summary is refreshed once per turn."""
        llm = ScriptedLLM([
            ModelResponse("go", [action_call("navigate", url="example.org"), action_call("wait", ms=0)]),
            ModelResponse("done"),
        ])
        agent = make_agent(llm, bridge, fast_config)
        asyncio.run(agent.run("task"))

        # Initial observation plus one refresh after the batch
        assert bridge.summary_calls == 2
        assert "URL: https://example.org" in agent.messages[3].content

    def test_failed_action_is_reported_not_raised(self, bridge, fast_config):
        """Test that a failed action is reported to the model."""
        llm = ScriptedLLM([ModelResponse("", [action_call("click", index=4)]), ModelResponse("gave up")])
        agent = make_agent(llm, bridge, fast_config)

        assert asyncio.run(agent.run("task")) == "gave up"
        assert "Action 1: ✗" in agent.messages[3].content


class TestFallbackParsing:
    """Providers without structured calls use fenced JSON."""

    def test_ollama_uses_fenced_json(self, bridge, fast_config):
        """Test the fenced JSON path for Ollama."""
        llm = ScriptedLLM([
            ModelResponse('Opening it.\n```json\n{"action": "navigate", "params": {"url": "example.org"}}\n```'),
            ModelResponse("Done"),
        ])
        agent = make_agent(llm, bridge, fast_config, provider="ollama")

        assert asyncio.run(agent.run("open example.org")) == "Done"
        assert llm.requests[0][1] is None
        assert "```json" in llm.requests[0][0][0].content
        assert ("navigate", ("https://example.org",)) in bridge.calls

    def test_tool_calls_ignored_in_fallback(self, bridge, fast_config):
        """Test that tool calls are ignored in fallback mode."""
        llm = ScriptedLLM([ModelResponse("No block here", [action_call("refresh")])])
        agent = make_agent(llm, bridge, fast_config, provider="ollama")

        assert asyncio.run(agent.run("task")) == "No block here"
        assert bridge.calls == []


class TestConfirmationGate:
    """Confirm-level actions wait for the user."""

    def test_denied_action_is_skipped(self, bridge, fast_config):
        """Test that a denied action is skipped."""
        approver = DenyApprover()
        llm = ScriptedLLM([
            ModelResponse("", [action_call("executeJS", code="document.cookie")]),
            ModelResponse("ok"),
        ])
        agent = make_agent(llm, bridge, fast_config, approver=approver)
        asyncio.run(agent.run("task"))

        assert "evaluate" not in bridge.call_names()
        assert "Execute JavaScript" in approver.messages[0]
        assert "Action 1: ✗ Action cancelled by user" in agent.messages[3].content
        assert agent.last_result.actions_skipped == 1
        assert agent.last_result.actions_executed == 0

    def test_approved_action_runs(self, bridge, fast_config):
        """Test that an approved action runs."""
        llm = ScriptedLLM([
            ModelResponse("", [action_call("executeJS", code="document.title")]),
            ModelResponse("The title is Example."),
        ])
        agent = make_agent(llm, bridge, fast_config)
        asyncio.run(agent.run("task"))

        assert "evaluate" in bridge.call_names()
        assert agent.last_result.actions_executed == 1
        assert agent.last_result.actions_skipped == 0

    def test_auto_actions_skip_confirmation(self, bridge, fast_config):
        """Test that auto actions never ask."""
        approver = DenyApprover()
        llm = ScriptedLLM([ModelResponse("", [action_call("scroll")]), ModelResponse("ok")])
        agent = make_agent(llm, bridge, fast_config, approver=approver)
        asyncio.run(agent.run("task"))

        assert approver.messages == []
        assert bridge.call_names() == ["scroll"]

    def test_destructive_click_on_sensitive_page(self, fast_config):
        """Test a destructive click on a sensitive page."""
        bridge = FakeBridge(page=PageSummary(url="https://example.com/account/settings", title="Settings"))
        bridge.snapshot_id = 1
        approver = DenyApprover()
        llm = ScriptedLLM([
            ModelResponse("", [action_call("click", index=0, text="Delete Account")]),
            ModelResponse("Not deleted."),
        ])
        agent = make_agent(llm, bridge, fast_config, approver=approver)
        asyncio.run(agent.run("delete my account"))

        assert len(approver.messages) == 1
        assert "click_index" not in bridge.call_names()

    def test_blocked_action_is_skipped_without_asking(self, bridge, fast_config):
        """Block-level actions never reach the bridge or the approver."""
        approver = DenyApprover()
        llm = ScriptedLLM([
            ModelResponse("", [action_call("navigate", url="example.org"), action_call("scroll")]),
            ModelResponse("Could not open it."),
        ])
        agent = make_agent(llm, bridge, fast_config, approver=approver, classifier=BlockingClassifier())

        assert asyncio.run(agent.run("open example.org")) == "Could not open it."
        assert approver.messages == []
        assert bridge.call_names() == ["scroll"]
        outcome = agent.messages[3].content
        assert "Action 1: ✗ Action blocked for safety" in outcome
        assert "Action 2: ✓" in outcome
        assert agent.last_result.actions_skipped == 1
        assert agent.last_result.actions_executed == 1
        assert len(llm.requests) == 2


class TestCallbacks:
    def test_progress_hooks(self, bridge, fast_config):
        """Test callback ordering."""
        events = []
        callbacks = AgentCallbacks(
            on_thinking=lambda text: events.append(("thinking", text)),
            on_action_start=lambda action: events.append(("start", action.kind.value)),
            on_action_complete=lambda action, result: events.append(("complete", result.success)),
        )
        llm = ScriptedLLM([ModelResponse("", [action_call("refresh")]), ModelResponse("done")])
        agent = make_agent(llm, bridge, fast_config, callbacks=callbacks)
        asyncio.run(agent.run("task"))

        assert events == [
            ("thinking", "Turn 1/20"),
            ("start", "refresh"),
            ("complete", True),
            ("thinking", "Turn 2/20"),
        ]

    def test_failing_callback_does_not_break_run(self, bridge, fast_config):
        """Test that a raising callback is contained."""
        def explode(_):
            raise ValueError("bad hook")

        llm = ScriptedLLM([ModelResponse("", [action_call("refresh")]), ModelResponse("done")])
        agent = make_agent(llm, bridge, fast_config, callbacks=AgentCallbacks(on_action_start=explode))

        assert asyncio.run(agent.run("task")) == "done"
        assert bridge.call_names() == ["reload"]
