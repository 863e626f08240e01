"""Long-term, episodic and conversational memory."""

from .manager import ConsolidationResult, MemoryManager, estimate_tokens
from .similarity import cosine_scores, cosine_similarity

__all__ = [
    "ConsolidationResult",
    "MemoryManager",
    "cosine_scores",
    "cosine_similarity",
    "estimate_tokens",
]
