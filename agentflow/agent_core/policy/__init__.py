"""Permission, risk and approval policy for tool dispatch."""

from .models import ApprovalDecision, ApprovalPolicy, RiskAssessment, RiskPolicy, risk_requires_approval
from .permissions import check_tool_permissions, filter_tools, is_allowed, matches_pattern
from .risk import RiskAssessor

__all__ = [
    "ApprovalDecision",
    "ApprovalPolicy",
    "RiskAssessment",
    "RiskAssessor",
    "RiskPolicy",
    "check_tool_permissions",
    "filter_tools",
    "is_allowed",
    "matches_pattern",
    "risk_requires_approval",
]
