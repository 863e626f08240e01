from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from pydantic import Field

from ..schemas.base import BaseSchema
from ..schemas.domain import RiskLevel


class RiskPolicy(BaseSchema):
    """
    Configuration for risk tiering of tool calls.

    Dangerous name patterns and bulk recipient lists always classify as
    critical. Per-tool overrides replace only the name-based tiers below them
    (high-risk names, mutation names and read keywords).
    Name patterns are matched case-insensitively as substrings.
    """
    tool_risk_overrides: dict[str, RiskLevel] = Field(
        default_factory=dict,
        description="Per-tool risk overrides keyed by tool name.",
    )
    dangerous_patterns: list[str] = Field(
        default_factory=lambda: ["delete", "purge", "drop", "bulk_"],
        description="Name fragments that always classify as critical.",
    )
    bulk_recipient_threshold: int = Field(default=10, ge=1)
    recipient_fields: list[str] = Field(
        default_factory=lambda: ["to", "recipients", "contact_ids"],
        description="Input fields holding recipient lists for bulk-send detection.",
    )
    high_risk_patterns: list[str] = Field(
        default_factory=lambda: ["send_email", "email_send", "send_sms", "sms_send", "export"],
    )
    medium_risk_patterns: list[str] = Field(
        default_factory=lambda: ["create_contact", "update_contact", "trigger_workflow", "create", "update"],
    )
    low_risk_patterns: list[str] = Field(
        default_factory=lambda: ["get", "search", "query"],
    )


class ApprovalPolicy(BaseSchema):
    """
    Configuration for human-in-the-loop approval gates.

    Dangerous tools always require approval. Otherwise a call requires approval
    when its tier is at or above ``require_for_risk_at_or_above``; agents may
    opt out of approval for ``high`` (never ``critical``) by listing
    ``high_risk_opt_out_token`` among their constraints.
    """
    require_for_risk_at_or_above: RiskLevel = RiskLevel.high
    high_risk_opt_out_token: str = "auto_approve:high"


@dataclass(frozen=True)
class RiskAssessment:
    """
    Result of assessing one prospective tool call.

    Attributes:
        level: The assessed tier.
        reason: Human-readable explanation stored on the approval request.
    """
    level: RiskLevel
    reason: str


@dataclass(frozen=True)
class ApprovalDecision:
    require_approval: bool
    reason: Optional[str] = None


_ORDER = {RiskLevel.low: 0, RiskLevel.medium: 1, RiskLevel.high: 2, RiskLevel.critical: 3}


def _risk_ge(a: RiskLevel, b: RiskLevel) -> bool:
    """Check if risk level 'a' is greater than or equal to 'b'."""
    return _ORDER[a] >= _ORDER[b]


def risk_requires_approval(
    risk: RiskLevel,
    *,
    policy: ApprovalPolicy,
    is_dangerous: bool = False,
    high_risk_opt_out: bool = False,
) -> ApprovalDecision:
    """
    Determine if approval is required for a tool call.

    Args:
        risk: The assessed risk tier of the call.
        policy: The approval policy configuration.
        is_dangerous: The tool definition's dangerous flag.
        high_risk_opt_out: Whether the agent opted out of approval for ``high``.

    Returns:
        An ``ApprovalDecision`` explaining why approval is needed, if it is.
    """
    if is_dangerous:
        return ApprovalDecision(True, "tool is flagged as dangerous")
    if risk == RiskLevel.critical:
        return ApprovalDecision(True, "critical risk")
    if not _risk_ge(risk, policy.require_for_risk_at_or_above):
        return ApprovalDecision(False)
    if risk == RiskLevel.high and high_risk_opt_out:
        return ApprovalDecision(False)
    return ApprovalDecision(True, f"{risk.value} risk")
