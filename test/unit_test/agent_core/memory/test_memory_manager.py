from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, List

import pytest

from agentflow.agent_core.memory.manager import MemoryManager, estimate_tokens
from agentflow.agent_core.providers.base import EmbeddingProvider
from agentflow.agent_core.repos.memory import InMemoryRepoBundle
from agentflow.agent_core.schemas.domain import (
    ActionRecord,
    ConversationContextType,
    EpisodeOutcome,
    MemoryType,
    MessageRole,
)
from agentflow.core.config import MemoryConfig

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class _Clock:
    def __init__(self) -> None:
        self.now = T0

    def __call__(self) -> datetime:
        return self.now


class _TableEmbedder(EmbeddingProvider):
    """Fixed vectors per text; unknown texts embed along the last axis."""

    def __init__(self, table: Dict[str, List[float]]) -> None:
        self._table = table

    async def embed(self, text: str) -> List[float]:
        return list(self._table.get(text, [0.0, 0.0, 1.0]))


TABLE = {
    "likes email": [1.0, 0.0, 0.0],
    "prefers email": [0.99, 0.05, 0.0],
    "contact preference": [0.9, 0.1, 0.0],
    "office hours": [0.0, 1.0, 0.0],
}


@pytest.fixture
def clock() -> _Clock:
    return _Clock()


@pytest.fixture
def repos() -> InMemoryRepoBundle:
    return InMemoryRepoBundle()


@pytest.fixture
def manager(repos, clock) -> MemoryManager:
    return MemoryManager(
        memories=repos.memories,
        episodes=repos.episodes,
        conversations=repos.conversations,
        embedder=_TableEmbedder(TABLE),
        config=MemoryConfig(consolidation_min_memories=3),
        clock=clock,
    )


class TestLongTermMemory:
    @pytest.mark.asyncio
    async def test_store_embeds_content(self, manager: MemoryManager, repos) -> None:
        memory = await manager.store("a1", MemoryType.fact, "likes email", tags=["crm"])

        stored = await repos.memories.get(memory.id)
        assert stored.embedding == [1.0, 0.0, 0.0]
        assert stored.tags == ["crm"]
        assert stored.created_at == T0

    @pytest.mark.asyncio
    async def test_retrieve_ranks_and_touches(self, manager: MemoryManager, repos, clock) -> None:
        email = await manager.store("a1", MemoryType.preference, "likes email")
        hours = await manager.store("a1", MemoryType.fact, "office hours")
        await manager.store("a2", MemoryType.fact, "likes email")

        clock.now = T0 + timedelta(minutes=1)
        hits = await manager.retrieve("a1", "contact preference", limit=1)

        assert [h.memory.id for h in hits] == [email.id]
        assert hits[0].similarity > 0.9
        touched = await repos.memories.get(email.id)
        assert touched.access_count == 1
        assert touched.last_accessed_at == T0 + timedelta(minutes=1)
        assert (await repos.memories.get(hours.id)).access_count == 0

    @pytest.mark.asyncio
    async def test_retrieve_filters_types_and_expiry(self, manager: MemoryManager, clock) -> None:
        await manager.store("a1", MemoryType.fact, "likes email", expires_at=T0 + timedelta(hours=1))
        await manager.store("a1", MemoryType.pattern, "office hours")

        assert await manager.retrieve("a1", "likes email", types=[MemoryType.fact]) != []
        clock.now = T0 + timedelta(hours=2)
        assert await manager.retrieve("a1", "likes email", types=[MemoryType.fact]) == []
        assert await manager.retrieve("a1", "likes email", limit=0) == []

    @pytest.mark.asyncio
    async def test_find_similar_uses_threshold(self, manager: MemoryManager) -> None:
        await manager.store("a1", MemoryType.fact, "likes email")

        assert await manager.find_similar("a1", "prefers email") is not None
        assert await manager.find_similar("a1", "office hours") is None
        assert await manager.find_similar("a1", "contact preference", threshold=0.999) is None

    @pytest.mark.asyncio
    async def test_remember_reinforces_near_duplicate(self, manager: MemoryManager, repos) -> None:
        original = await manager.store("a1", MemoryType.preference, "likes email", importance=4)

        again = await manager.remember("a1", MemoryType.preference, "prefers email", importance=8)

        assert again.id == original.id
        stored = await repos.memories.get(original.id)
        assert stored.confidence == pytest.approx(0.9)
        assert stored.importance == 8
        assert await repos.memories.count("a1") == 1

    @pytest.mark.asyncio
    async def test_remember_caps_confidence(self, manager: MemoryManager, repos) -> None:
        original = await manager.store("a1", MemoryType.fact, "likes email", confidence=0.95)

        await manager.remember("a1", MemoryType.fact, "likes email")

        assert (await repos.memories.get(original.id)).confidence == 1.0

    @pytest.mark.asyncio
    async def test_remember_stores_new_content(self, manager: MemoryManager, repos) -> None:
        await manager.store("a1", MemoryType.fact, "likes email")

        await manager.remember("a1", MemoryType.fact, "office hours")

        assert await repos.memories.count("a1") == 2

    @pytest.mark.asyncio
    async def test_get_by_subject_orders_by_importance(self, manager: MemoryManager) -> None:
        await manager.store("a1", MemoryType.fact, "office hours", subject_type="contact", subject_id="c1", importance=2)
        await manager.store("a1", MemoryType.fact, "likes email", subject_type="contact", subject_id="c1", importance=9)
        await manager.store("a1", MemoryType.fact, "likes email", subject_type="contact", subject_id="c2")

        found = await manager.get_by_subject("a1", "contact", "c1")

        assert [m.importance for m in found] == [9, 2]
        assert len(await manager.get_by_subject("a1", "contact", "c1", limit=1)) == 1

    @pytest.mark.asyncio
    async def test_update_confidence_and_delete(self, manager: MemoryManager, repos) -> None:
        memory = await manager.store("a1", MemoryType.fact, "likes email")

        assert await manager.update_confidence(memory.id, 0.3) is True
        assert (await repos.memories.get(memory.id)).confidence == 0.3
        with pytest.raises(ValueError):
            await manager.update_confidence(memory.id, 1.5)
        assert await manager.delete(memory.id) is True
        assert await manager.delete(memory.id) is False


class TestConsolidation:
    @pytest.mark.asyncio
    async def test_small_stores_are_left_alone(self, manager: MemoryManager) -> None:
        await manager.store("a1", MemoryType.fact, "likes email", importance=1)

        result = await manager.consolidate("a1", now=T0 + timedelta(days=90))

        assert result.pruned == 0

    @pytest.mark.asyncio
    async def test_prunes_stale_and_expired(self, manager: MemoryManager, repos, clock) -> None:
        stale = await manager.store("a1", MemoryType.fact, "likes email", importance=1)
        keep = await manager.store("a1", MemoryType.fact, "office hours", importance=8)
        expired = await manager.store(
            "a1", MemoryType.fact, "contact preference", importance=8, expires_at=T0 + timedelta(days=1)
        )

        result = await manager.consolidate("a1", now=T0 + timedelta(days=31))

        assert result.pruned == 2
        assert await repos.memories.get(stale.id) is None
        assert await repos.memories.get(expired.id) is None
        assert await repos.memories.get(keep.id) is not None


class TestEpisodes:
    @pytest.mark.asyncio
    async def test_record_and_query(self, manager: MemoryManager, clock) -> None:
        action = ActionRecord(tool="echo", input={"message": "hi"}, output={"echo": "hi"}, success=True)
        await manager.record_episode(
            "a1",
            execution_id="e1",
            trigger_event="contact.created",
            actions_taken=[action],
            outcome=EpisodeOutcome.success,
            should_repeat=True,
        )
        clock.now = T0 + timedelta(minutes=1)
        await manager.record_episode(
            "a1", execution_id="e2", trigger_event="contact.created", outcome=EpisodeOutcome.failure
        )
        await manager.record_episode("a1", execution_id="e3", trigger_event="deal.won", outcome=EpisodeOutcome.success)

        similar = await manager.get_similar_episodes("a1", "contact.created")
        successful = await manager.get_successful_episodes("a1")
        by_execution = await manager.get_execution_episodes("e1", "a1")

        assert [e.execution_id for e in similar] == ["e2", "e1"]
        assert [e.execution_id for e in successful] == ["e1"]
        assert by_execution[0].actions_taken[0].tool == "echo"


class TestConversations:
    @pytest.mark.asyncio
    async def test_get_or_create_reuses_live_conversation(self, manager: MemoryManager, clock) -> None:
        first = await manager.get_or_create_conversation("a1", ConversationContextType.user, "u1")
        second = await manager.get_or_create_conversation("a1", ConversationContextType.user, "u1")
        other = await manager.get_or_create_conversation("a1", ConversationContextType.entity, "u1")

        assert first.id == second.id
        assert other.id != first.id
        assert first.expires_at == T0 + timedelta(hours=24)

        clock.now = T0 + timedelta(hours=25)
        renewed = await manager.get_or_create_conversation("a1", ConversationContextType.user, "u1")
        assert renewed.id != first.id

    @pytest.mark.asyncio
    async def test_messages_accumulate_and_clear(self, manager: MemoryManager) -> None:
        conversation = await manager.get_or_create_conversation("a1", ConversationContextType.session, "s1")

        await manager.add_message(conversation.id, MessageRole.user, "Hello there")
        await manager.add_message(conversation.id, MessageRole.assistant, "Hi!")

        stored = await manager.get_conversation(conversation.id)
        assert [m.role for m in stored.messages] == [MessageRole.user, MessageRole.assistant]
        assert stored.message_count == 2
        assert stored.tokens_used == estimate_tokens("Hello there") + estimate_tokens("Hi!")
        assert stored.last_message_at == T0

        assert await manager.clear_conversation(conversation.id) is True
        cleared = await manager.get_conversation(conversation.id)
        assert cleared.messages == []
        assert cleared.tokens_used == 0

    @pytest.mark.asyncio
    async def test_add_message_to_unknown_conversation_raises(self, manager: MemoryManager) -> None:
        with pytest.raises(KeyError):
            await manager.add_message("missing", MessageRole.user, "hi")


def test_estimate_tokens_rounds_up() -> None:
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2
