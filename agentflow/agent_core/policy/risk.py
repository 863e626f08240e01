from __future__ import annotations

"""Risk assessment for prospective tool calls.

``RiskAssessor`` classifies a call into a ``RiskLevel`` and decides whether it
must pass through the approval gate. It is pure: no I/O, no clock.
"""

from typing import Any, Dict, Optional

from ..schemas.domain import AgentConfig, RiskLevel
from ..tools.base import ToolDefinition
from .models import (
    ApprovalDecision,
    ApprovalPolicy,
    RiskAssessment,
    RiskPolicy,
    risk_requires_approval,
)


def _contains_any(name: str, patterns: list[str]) -> Optional[str]:
    for p in patterns:
        if p.lower() in name:
            return p
    return None


class RiskAssessor:
    """Classify tool calls and apply the approval policy."""

    def __init__(
        self,
        risk_policy: Optional[RiskPolicy] = None,
        approval_policy: Optional[ApprovalPolicy] = None,
    ) -> None:
        self._risk = risk_policy or RiskPolicy()
        self._approval = approval_policy or ApprovalPolicy()

    @property
    def approval_policy(self) -> ApprovalPolicy:
        return self._approval

    def _recipient_count(self, args: Dict[str, Any]) -> int:
        count = 0
        for field in self._risk.recipient_fields:
            value = args.get(field)
            if isinstance(value, (list, tuple, set)):
                count = max(count, len(value))
            elif isinstance(value, str) and "," in value:
                count = max(count, len([v for v in value.split(",") if v.strip()]))
        return count

    def assess(self, tool: ToolDefinition, args: Dict[str, Any]) -> RiskAssessment:
        """
        Classify the risk of invoking ``tool`` with ``args``.

        Precedence, highest first:

        1. Dangerous name patterns -> critical.
        2. More recipients than the bulk threshold -> critical.
        3. ``RiskPolicy.tool_risk_overrides`` and ``ToolDefinition.risk_level``.
        4. High-risk names (sending email/SMS, exports) -> high.
        5. Mutation names -> medium.
        6. Read keywords -> low.
        7. Default -> low.
        """
        name = tool.name.lower()
        hit = _contains_any(name, self._risk.dangerous_patterns)
        if hit is not None:
            return RiskAssessment(RiskLevel.critical, f"tool name matches dangerous pattern '{hit}'")

        recipients = self._recipient_count(args)
        if recipients > self._risk.bulk_recipient_threshold:
            return RiskAssessment(
                RiskLevel.critical,
                f"bulk send to {recipients} recipients exceeds {self._risk.bulk_recipient_threshold}",
            )

        override = self._risk.tool_risk_overrides.get(tool.name) or tool.risk_level
        if override is not None:
            return RiskAssessment(override, f"risk for '{tool.name}' is configured as {override.value}")

        hit = _contains_any(name, self._risk.high_risk_patterns)
        if hit is not None:
            return RiskAssessment(RiskLevel.high, f"'{hit}' actions reach outside the system")

        hit = _contains_any(name, self._risk.medium_risk_patterns)
        if hit is not None:
            return RiskAssessment(RiskLevel.medium, f"'{hit}' modifies stored data")

        hit = _contains_any(name, self._risk.low_risk_patterns)
        if hit is not None:
            return RiskAssessment(RiskLevel.low, "read-only operation")

        return RiskAssessment(RiskLevel.low, "no risk indicators")

    def high_risk_opt_out(self, agent: AgentConfig) -> bool:
        token = self._approval.high_risk_opt_out_token.lower()
        return any(token in c.strip().lower() for c in agent.constraints)

    def requires_approval(
        self,
        tool: ToolDefinition,
        assessment: RiskAssessment,
        agent: AgentConfig,
    ) -> ApprovalDecision:
        return risk_requires_approval(
            assessment.level,
            policy=self._approval,
            is_dangerous=tool.is_dangerous,
            high_risk_opt_out=self.high_risk_opt_out(agent),
        )
