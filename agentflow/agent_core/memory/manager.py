from __future__ import annotations

"""Memory subsystem.

``MemoryManager`` owns every write to long-term memories, episodes and
conversations. Similarity search is brute force over the agent's memories:
candidates are loaded through ``MemoryRepository.list`` and scored with numpy,
which keeps the record store free of any vector extension.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from agentflow.core.config import MemoryConfig

from ..providers.base import EmbeddingProvider
from ..repos.interfaces import ConversationRepository, EpisodeRepository, MemoryRepository
from ..schemas.domain import (
    ActionRecord,
    Conversation,
    ConversationContextType,
    Episode,
    EpisodeOutcome,
    Memory,
    MemoryType,
    Message,
    MessageRole,
    ScoredMemory,
    ToolCall,
    _utc_now,
)
from .similarity import cosine_scores

logger = logging.getLogger(__name__)

CONVERSATION_TTL = timedelta(hours=24)
REINFORCE_STEP = 0.1


@dataclass(frozen=True)
class ConsolidationResult:
    pruned: int = 0


def estimate_tokens(text: str) -> int:
    """Rough token estimate: four characters per token, rounded up."""
    return math.ceil(len(text) / 4)


class MemoryManager:
    """Long-term, episodic and short-term memory for agents."""

    def __init__(
        self,
        *,
        memories: MemoryRepository,
        episodes: EpisodeRepository,
        conversations: ConversationRepository,
        embedder: EmbeddingProvider,
        config: Optional[MemoryConfig] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._memories = memories
        self._episodes = episodes
        self._conversations = conversations
        self._embedder = embedder
        self._config = config or MemoryConfig()
        self._clock = clock

    # ------------------------------------------------------------------
    # Long-term memories
    # ------------------------------------------------------------------

    async def store(
        self,
        agent_id: str,
        memory_type: MemoryType,
        content: str,
        *,
        tenant_id: Optional[str] = None,
        subject_type: Optional[str] = None,
        subject_id: Optional[str] = None,
        confidence: float = 0.8,
        importance: int = 5,
        source: Optional[str] = None,
        tags: Sequence[str] = (),
        expires_at: Optional[datetime] = None,
    ) -> Memory:
        """
        Embed and persist a new memory.

        Args:
            agent_id: Owning agent.
            memory_type: Kind of memory.
            content: Free text; this is what gets embedded.
            expires_at: Optional instant after which the memory is ignored by
                retrieval and removed by ``consolidate``.

        Returns:
            The stored Memory.
        """
        now = self._clock()
        memory = Memory(
            agent_id=agent_id,
            tenant_id=tenant_id,
            memory_type=memory_type,
            content=content,
            embedding=await self._embedder.embed(content),
            confidence=confidence,
            importance=importance,
            subject_type=subject_type,
            subject_id=subject_id,
            source=source,
            tags=list(tags),
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        await self._memories.create(memory)
        logger.debug(f"Stored {memory_type.value} memory {memory.id} for agent {agent_id}")
        return memory

    async def _rank(
        self,
        agent_id: str,
        query: str,
        *,
        types: Optional[Sequence[MemoryType]] = None,
        subject_type: Optional[str] = None,
        subject_id: Optional[str] = None,
        min_confidence: Optional[float] = None,
    ) -> List[ScoredMemory]:
        candidates = await self._memories.list(
            agent_id,
            types=types,
            subject_type=subject_type,
            subject_id=subject_id,
            min_confidence=min_confidence,
            active_at=self._clock(),
        )
        if not candidates:
            return []
        query_vec = await self._embedder.embed(query)
        scores = cosine_scores(query_vec, [m.embedding for m in candidates])
        ranked = [ScoredMemory(memory=m, similarity=s) for m, s in zip(candidates, scores)]
        ranked.sort(key=lambda sm: sm.similarity, reverse=True)
        return ranked

    async def retrieve(
        self,
        agent_id: str,
        query: str,
        *,
        limit: int = 10,
        types: Optional[Sequence[MemoryType]] = None,
        subject_type: Optional[str] = None,
        subject_id: Optional[str] = None,
        min_confidence: Optional[float] = None,
    ) -> List[ScoredMemory]:
        """
        Return the memories most similar to ``query``, best first.

        Expired memories are never returned. Returned memories have their
        ``access_count`` and ``last_accessed_at`` bumped in the store; the
        copies handed back reflect the state before the bump.
        """
        if limit <= 0:
            return []
        ranked = await self._rank(
            agent_id,
            query,
            types=types,
            subject_type=subject_type,
            subject_id=subject_id,
            min_confidence=min_confidence,
        )
        hits = ranked[:limit]
        if hits:
            await self._memories.touch([h.memory.id for h in hits], at=self._clock())
        return hits

    async def find_similar(
        self, agent_id: str, content: str, threshold: Optional[float] = None
    ) -> Optional[ScoredMemory]:
        """Return the best match if its similarity is at least ``threshold``, else None."""
        if threshold is None:
            threshold = self._config.similarity_threshold
        ranked = await self._rank(agent_id, content)
        if ranked and ranked[0].similarity >= threshold:
            return ranked[0]
        return None

    async def remember(
        self,
        agent_id: str,
        memory_type: MemoryType,
        content: str,
        **kwargs,
    ) -> Memory:
        """
        Store ``content`` unless a near-duplicate exists.

        A near-duplicate is reinforced instead: its confidence grows by 0.1
        (capped at 1.0) and its importance is raised to the new value if that
        is higher.
        """
        existing = await self.find_similar(agent_id, content)
        if existing is None:
            return await self.store(agent_id, memory_type, content, **kwargs)

        memory = existing.memory
        changes = {
            "confidence": min(1.0, memory.confidence + REINFORCE_STEP),
            "importance": max(memory.importance, int(kwargs.get("importance") or memory.importance)),
            "updated_at": self._clock(),
        }
        await self._memories.update(memory.id, changes)
        logger.debug(f"Reinforced memory {memory.id} (similarity={existing.similarity:.3f})")
        return memory.model_copy(update=changes)

    async def get_by_subject(
        self,
        agent_id: str,
        subject_type: str,
        subject_id: str,
        *,
        types: Optional[Sequence[MemoryType]] = None,
        limit: Optional[int] = None,
    ) -> List[Memory]:
        """Memories about one subject, most important first."""
        found = await self._memories.list(
            agent_id,
            types=types,
            subject_type=subject_type,
            subject_id=subject_id,
        )
        found.sort(key=lambda m: m.importance, reverse=True)
        return found[:limit] if limit else found

    async def update_confidence(self, memory_id: str, confidence: float) -> bool:
        if not 0.0 <= confidence <= 1.0:
            raise ValueError("confidence must be between 0 and 1")
        return await self._memories.update(memory_id, {"confidence": confidence, "updated_at": self._clock()})

    async def delete(self, memory_id: str) -> bool:
        return await self._memories.delete(memory_id)

    async def consolidate(self, agent_id: str, now: Optional[datetime] = None) -> ConsolidationResult:
        """
        Prune low-value and expired memories.

        Agents holding fewer than ``consolidation_min_memories`` memories are
        left alone. Otherwise memories that are unimportant, rarely accessed
        and old are deleted, followed by every expired memory.
        """
        cfg = self._config
        if await self._memories.count(agent_id) < cfg.consolidation_min_memories:
            return ConsolidationResult()

        now = now or self._clock()
        pruned = await self._memories.delete_stale(
            agent_id,
            importance_below=cfg.prune_importance_below,
            access_count_below=cfg.prune_access_count_below,
            created_before=now - timedelta(days=cfg.prune_age_days),
        )
        pruned += await self._memories.delete_expired(agent_id, now=now)
        if pruned:
            logger.info(f"Consolidated memories for agent {agent_id}: pruned {pruned}")
        return ConsolidationResult(pruned=pruned)

    # ------------------------------------------------------------------
    # Episodes
    # ------------------------------------------------------------------

    async def record_episode(
        self,
        agent_id: str,
        *,
        outcome: EpisodeOutcome,
        tenant_id: Optional[str] = None,
        execution_id: Optional[str] = None,
        trigger_event: Optional[str] = None,
        context_summary: Optional[str] = None,
        actions_taken: Sequence[ActionRecord] = (),
        outcome_details: Optional[str] = None,
        lessons_learned: Sequence[str] = (),
        should_repeat: bool = False,
        duration_ms: Optional[int] = None,
        tokens_used: Optional[int] = None,
    ) -> Episode:
        episode = Episode(
            agent_id=agent_id,
            tenant_id=tenant_id,
            execution_id=execution_id,
            trigger_event=trigger_event,
            context_summary=context_summary,
            actions_taken=list(actions_taken),
            outcome=outcome,
            outcome_details=outcome_details,
            lessons_learned=list(lessons_learned),
            should_repeat=should_repeat,
            duration_ms=duration_ms,
            tokens_used=tokens_used,
            created_at=self._clock(),
        )
        await self._episodes.create(episode)
        return episode

    async def get_similar_episodes(self, agent_id: str, trigger_event: str, limit: int = 5) -> List[Episode]:
        return await self._episodes.list(agent_id, trigger_event=trigger_event, limit=limit)

    async def get_successful_episodes(self, agent_id: str, limit: int = 10) -> List[Episode]:
        return await self._episodes.list(
            agent_id, outcome=EpisodeOutcome.success, should_repeat=True, limit=limit
        )

    async def get_execution_episodes(self, execution_id: str, agent_id: str) -> List[Episode]:
        return await self._episodes.list(agent_id, execution_id=execution_id)

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    async def get_or_create_conversation(
        self,
        agent_id: str,
        context_type: ConversationContextType,
        context_id: str,
        *,
        tenant_id: Optional[str] = None,
    ) -> Conversation:
        """Return the live conversation for a context, starting one (24h TTL) if none exists."""
        now = self._clock()
        found = await self._conversations.find(agent_id, context_type, context_id, active_at=now)
        if found is not None:
            return found
        conversation = Conversation(
            agent_id=agent_id,
            tenant_id=tenant_id,
            context_type=context_type,
            context_id=context_id,
            expires_at=now + CONVERSATION_TTL,
            created_at=now,
        )
        await self._conversations.create(conversation)
        return conversation

    async def add_message(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
        *,
        tool_call_id: Optional[str] = None,
        tool_calls: Optional[List[ToolCall]] = None,
    ) -> Message:
        """
        Append a message to a conversation.

        Raises:
            KeyError: If the conversation does not exist.
        """
        message = Message(
            role=role,
            content=content,
            tool_call_id=tool_call_id,
            tool_calls=tool_calls,
            created_at=self._clock(),
        )
        if not await self._conversations.append_message(
            conversation_id, message, tokens=estimate_tokens(content)
        ):
            raise KeyError(f"Conversation not found: {conversation_id}")
        return message

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        return await self._conversations.get(conversation_id)

    async def clear_conversation(self, conversation_id: str) -> bool:
        return await self._conversations.clear(conversation_id)
