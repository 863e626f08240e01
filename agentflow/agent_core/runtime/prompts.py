from __future__ import annotations

"""Prompt construction and decision parsing for the ReAct loop."""

import json
import logging
import re
from typing import Any, Iterable, List, Optional, Sequence

from ..schemas.domain import (
    AgentConfig,
    DecisionAction,
    ExecutionContext,
    ScoredMemory,
    ThoughtResult,
    ToolCall,
    TriggerContext,
)
from ..tools.base import ToolResult

logger = logging.getLogger(__name__)

NATIVE_TOOL_REASONING = "Using tool based on analysis"
NATIVE_TOOL_CONFIDENCE = 0.9
FALLBACK_CONFIDENCE = 0.5

RESPONSE_GUIDELINES = (
    "Think step by step before taking action",
    "Use tools when needed to gather information or take action",
    "Be concise but thorough",
    "Always explain your reasoning",
    "If unsure, gather more information before acting",
    "If you cannot complete the goal, explain why and finish",
)

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def build_context_summary(agent: AgentConfig, trigger: TriggerContext) -> str:
    summary = f'Agent "{agent.name}" triggered by {trigger.type.value}'
    if trigger.event_type:
        summary += f": {trigger.event_type}"
    return summary


def _goal_lines(agent: AgentConfig) -> List[str]:
    lines = []
    for i, goal in enumerate(agent.ranked_goals(), start=1):
        lines.append(f"{i}. {goal.name}: {goal.description}" if goal.description else f"{i}. {goal.name}")
    return lines


def build_system_prompt(
    agent: AgentConfig,
    memories: Sequence[ScoredMemory],
    tool_names: Iterable[str] = (),
) -> str:
    """
    Render the system message for a run.

    Sections: personality, instructions, goals (priority order), available
    tools, memories as ``- [type] content``, constraints and response
    guidelines. Empty sections render a placeholder line.
    """
    tools = sorted(tool_names)
    memory_lines = [f"- [{m.memory.memory_type.value}] {m.memory.content}" for m in memories]
    constraint_lines = [f"- {c}" for c in agent.constraints]

    parts = [
        agent.personality or "",
        agent.system_prompt,
        "## Your Goals\n" + ("\n".join(_goal_lines(agent)) or "No explicit goals."),
        "## Tools Available\nYou can use tools to take actions. Available tools: "
        + (", ".join(tools) if tools else "none"),
        "## Relevant Context from Memory\n" + ("\n".join(memory_lines) or "No relevant memories found."),
        "## Constraints\n" + ("\n".join(constraint_lines) or "No specific constraints."),
        "## Response Guidelines\n" + "\n".join(f"- {g}" for g in RESPONSE_GUIDELINES),
    ]
    return "\n\n".join(p for p in parts if p).strip() + "\n"


def build_observation(context: ExecutionContext) -> str:
    trigger = context.trigger
    label = trigger.type.value
    if trigger.event_type:
        label += f" ({trigger.event_type})"
    data = json.dumps(trigger.data, indent=2, default=str)
    return (
        "\n## Current Context\n\n"
        f"**Trigger:** {label}\n\n"
        f"**Data:**\n{data}\n\n"
        f"**Summary:** {context.summary}\n\n"
        "What would you like to do?\n"
    )


def build_think_prompt(agent: AgentConfig) -> str:
    goals = "\n".join(_goal_lines(agent)) or "No explicit goals."
    return (
        "\nBased on the conversation so far and your goals, decide what to do next.\n\n"
        f"Your goals (in priority order):\n{goals}\n\n"
        "You can either:\n"
        "1. Use a tool to take an action\n"
        "2. Finish if your goal is achieved or you cannot proceed further\n\n"
        "Respond with your reasoning and decision in this JSON format:\n"
        "{\n"
        '  "reasoning": "Your step-by-step reasoning about what you\'ve learned and what to do next...",\n'
        '  "action": "use_tool" or "finish",\n'
        '  "tool": "tool_name (only if action is use_tool)",\n'
        '  "input": { tool input parameters (only if action is use_tool) },\n'
        '  "confidence": 0.0-1.0 (your confidence in this decision)\n'
        "}\n"
    )


def _fallback(content: str) -> ThoughtResult:
    return ThoughtResult(reasoning=content, action=DecisionAction.finish, confidence=FALLBACK_CONFIDENCE)


def _confidence(value: Any) -> float:
    try:
        return min(1.0, max(0.0, float(value)))
    except (TypeError, ValueError):
        return FALLBACK_CONFIDENCE


def parse_decision(content: str, tool_calls: Optional[Sequence[ToolCall]] = None) -> ThoughtResult:
    """
    Turn a model response into a ``ThoughtResult``.

    Native tool calls win over anything in the text. Otherwise the text must be
    a JSON object with ``action`` of ``use_tool`` (naming a ``tool``) or
    ``finish``. Any other shape falls back to ``finish`` with the raw text as
    the reasoning, so a confused model ends the run instead of looping.
    """
    if tool_calls:
        first = tool_calls[0]
        return ThoughtResult(
            reasoning=content or NATIVE_TOOL_REASONING,
            action=DecisionAction.use_tool,
            tool=first.name,
            input=dict(first.arguments),
            confidence=NATIVE_TOOL_CONFIDENCE,
            tool_calls=list(tool_calls),
        )

    text = (content or "").strip()
    fenced = _FENCE.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        logger.debug("Model response is not JSON; treating it as a finish decision")
        return _fallback(content)

    if not isinstance(data, dict):
        return _fallback(content)

    action = data.get("action")
    reasoning = data.get("reasoning")
    reasoning = reasoning if isinstance(reasoning, str) else ""
    if action == DecisionAction.finish.value:
        return ThoughtResult(
            reasoning=reasoning,
            action=DecisionAction.finish,
            confidence=_confidence(data.get("confidence", FALLBACK_CONFIDENCE)),
        )
    tool = data.get("tool")
    if action == DecisionAction.use_tool.value and isinstance(tool, str) and tool:
        tool_input = data.get("input")
        return ThoughtResult(
            reasoning=reasoning,
            action=DecisionAction.use_tool,
            tool=tool,
            input=tool_input if isinstance(tool_input, dict) else {},
            confidence=_confidence(data.get("confidence", FALLBACK_CONFIDENCE)),
        )
    return _fallback(content)


def format_tool_message(tool_name: str, result: ToolResult) -> str:
    if result.pending_approval:
        return f"Tool {tool_name} requires approval (request {result.approval_id}); execution is paused."
    if result.success:
        return f"Tool {tool_name} executed successfully:\n{json.dumps(result.data, indent=2, default=str)}"
    return f"Tool {tool_name} failed: {result.error}"
