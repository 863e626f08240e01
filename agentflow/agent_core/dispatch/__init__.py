"""Tool dispatch: rate limiting and the dispatcher pipeline."""

from .dispatcher import ToolDispatcher
from .rate_limiter import HOUR, MINUTE, RateLimiter

__all__ = ["HOUR", "MINUTE", "RateLimiter", "ToolDispatcher"]
