"""Human approval gate for risky tool calls."""

from .gate import DENIED_ERROR, EXPIRED_ERROR, ApprovalGate

__all__ = ["ApprovalGate", "DENIED_ERROR", "EXPIRED_ERROR"]
