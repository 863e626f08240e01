from __future__ import annotations

import json

import pytest

from agentflow.agent_core.runtime.prompts import (
    FALLBACK_CONFIDENCE,
    NATIVE_TOOL_CONFIDENCE,
    NATIVE_TOOL_REASONING,
    build_context_summary,
    build_observation,
    build_system_prompt,
    build_think_prompt,
    format_tool_message,
    parse_decision,
)
from agentflow.agent_core.schemas.domain import (
    AgentGoal,
    DecisionAction,
    ExecutionContext,
    Memory,
    MemoryType,
    RiskLevel,
    ScoredMemory,
    ToolCall,
    TriggerContext,
    TriggerType,
)
from agentflow.agent_core.tools.base import ToolResult


class TestParseDecision:
    def test_native_tool_calls_win_over_text(self) -> None:
        calls = [ToolCall(id="c1", name="echo", arguments={"message": "hi"}), ToolCall(id="c2", name="get_current_time")]

        thought = parse_decision('{"action": "finish"}', calls)

        assert thought.action == DecisionAction.use_tool
        assert thought.tool == "echo"
        assert thought.input == {"message": "hi"}
        assert thought.confidence == NATIVE_TOOL_CONFIDENCE
        assert [c.id for c in thought.tool_calls] == ["c1", "c2"]

    def test_native_tool_call_without_text_gets_default_reasoning(self) -> None:
        thought = parse_decision("", [ToolCall(name="echo")])

        assert thought.reasoning == NATIVE_TOOL_REASONING

    def test_use_tool_json(self) -> None:
        content = json.dumps(
            {"reasoning": "look it up", "action": "use_tool", "tool": "echo", "input": {"message": "x"}, "confidence": 0.8}
        )

        thought = parse_decision(content)

        assert (thought.action, thought.tool, thought.input) == (DecisionAction.use_tool, "echo", {"message": "x"})
        assert thought.reasoning == "look it up"
        assert thought.confidence == 0.8

    def test_fenced_json_is_unwrapped(self) -> None:
        content = '```json\n{"reasoning": "done", "action": "finish", "confidence": 3}\n```'

        thought = parse_decision(content)

        assert thought.action == DecisionAction.finish
        assert thought.reasoning == "done"
        assert thought.confidence == 1.0

    @pytest.mark.parametrize(
        "content",
        [
            "I think we are done here.",
            "[1, 2, 3]",
            '{"action": "use_tool"}',
            '{"action": "dance", "tool": "echo"}',
        ],
    )
    def test_unusable_output_falls_back_to_finish(self, content: str) -> None:
        thought = parse_decision(content)

        assert thought.action == DecisionAction.finish
        assert thought.reasoning == content
        assert thought.confidence == FALLBACK_CONFIDENCE

    def test_non_object_input_and_bad_confidence_are_tolerated(self) -> None:
        thought = parse_decision('{"action": "use_tool", "tool": "echo", "input": "hi", "confidence": "high"}')

        assert thought.input == {}
        assert thought.confidence == FALLBACK_CONFIDENCE


class TestPrompts:
    def test_system_prompt_sections(self, make_agent) -> None:
        agent = make_agent(
            personality="Friendly and precise.",
            system_prompt="You manage CRM follow-ups.",
            goals=[AgentGoal(name="Low", priority=2), AgentGoal(name="High", description="Close deals", priority=9)],
            constraints=["Never email after 8pm"],
        )
        memory = Memory(agent_id=agent.id, memory_type=MemoryType.preference, content="Prefers email")

        prompt = build_system_prompt(agent, [ScoredMemory(memory=memory, similarity=0.9)], ["web_search", "echo"])

        assert prompt.startswith("Friendly and precise.\n\nYou manage CRM follow-ups.")
        assert "1. High: Close deals\n2. Low" in prompt
        assert "Available tools: echo, web_search" in prompt
        assert "- [preference] Prefers email" in prompt
        assert "- Never email after 8pm" in prompt
        assert "- If you cannot complete the goal, explain why and finish" in prompt

    def test_empty_sections_render_placeholders(self, make_agent) -> None:
        prompt = build_system_prompt(make_agent(goals=[], constraints=[]), [])

        assert "No explicit goals." in prompt
        assert "Available tools: none" in prompt
        assert "No relevant memories found." in prompt
        assert "No specific constraints." in prompt

    def test_observation_and_summary(self, make_agent) -> None:
        agent = make_agent()
        trigger = TriggerContext(type=TriggerType.event, event_type="contact.created", data={"contact_id": "c-1"})
        summary = build_context_summary(agent, trigger)
        context = ExecutionContext(execution_id="e1", agent_id=agent.id, trigger=trigger, summary=summary)

        observation = build_observation(context)

        assert summary == 'Agent "Helper" triggered by event: contact.created'
        assert "**Trigger:** event (contact.created)" in observation
        assert '"contact_id": "c-1"' in observation
        assert observation.rstrip().endswith("What would you like to do?")

    def test_think_prompt_lists_goals(self, make_agent) -> None:
        prompt = build_think_prompt(make_agent())

        assert "Your goals (in priority order):\n1. Assist" in prompt
        assert '"action": "use_tool" or "finish"' in prompt


class TestFormatToolMessage:
    def test_success(self) -> None:
        assert format_tool_message("echo", ToolResult.ok({"echo": "hi"})) == (
            'Tool echo executed successfully:\n{\n  "echo": "hi"\n}'
        )

    def test_failure(self) -> None:
        assert format_tool_message("echo", ToolResult.fail("boom")) == "Tool echo failed: boom"

    def test_pending_approval(self) -> None:
        message = format_tool_message("wire_funds", ToolResult.pending("ap-1", RiskLevel.critical))

        assert message == "Tool wire_funds requires approval (request ap-1); execution is paused."
