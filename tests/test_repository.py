"""Tests for the conversation repository."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from gateway.errors import AppError, ErrorCode, StorageBackendError
from gateway.models.messages import ConversationMessage, MessageRole
from gateway.repositories.conversation import CONVERSATION_TTL_SECONDS, ConversationRepository
from gateway.storage.memory import InMemoryStorageProvider
from tests.conftest import YieldingStorageProvider


def user(content: str) -> ConversationMessage:
    return ConversationMessage(role=MessageRole.USER, content=content)


class TestConversationRepository:
    """Tests for appending and reading conversation history."""

    @pytest.fixture
    def repository(self, clock):
        return ConversationRepository(InMemoryStorageProvider(clock=clock))

    @pytest.mark.asyncio
    async def test_unknown_conversation_is_empty(self, repository):
        assert await repository.get_history("nope") == []
        assert not await repository.conversation_exists("nope")

    @pytest.mark.asyncio
    async def test_messages_kept_in_insertion_order(self, repository):
        await repository.add_message("c1", ConversationMessage(role=MessageRole.SYSTEM, content="sys"))
        await repository.add_message("c1", user("hello"))
        await repository.add_message("c1", ConversationMessage(role=MessageRole.ASSISTANT, content="hi"))

        history = await repository.get_history("c1")
        assert [m.role for m in history] == [MessageRole.SYSTEM, MessageRole.USER, MessageRole.ASSISTANT]
        assert [m.content for m in history] == ["sys", "hello", "hi"]
        assert all(m.timestamp is not None for m in history)

    @pytest.mark.asyncio
    async def test_metadata_round_trips(self, repository):
        message = ConversationMessage(role=MessageRole.ASSISTANT, content="done", metadata={"mediaUrl": "/x.png"})
        await repository.add_message("c1", message)

        stored = (await repository.get_history("c1"))[0]
        assert stored.metadata == {"mediaUrl": "/x.png"}

    @pytest.mark.asyncio
    async def test_system_message_only_opens_a_conversation(self, repository):
        await repository.add_message("c1", user("hello"))

        with pytest.raises(AppError) as exc_info:
            await repository.add_message("c1", ConversationMessage(role=MessageRole.SYSTEM, content="late"))

        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR
        assert len(await repository.get_history("c1")) == 1

    @pytest.mark.asyncio
    async def test_open_conversation_only_once(self, repository):
        system = ConversationMessage(role=MessageRole.SYSTEM, content="sys")

        assert await repository.open_conversation("c1", system) is True
        assert await repository.open_conversation("c1", system) is False

        history = await repository.get_history("c1")
        assert [m.role for m in history] == [MessageRole.SYSTEM]
        assert history[0].timestamp is not None

    @pytest.mark.asyncio
    async def test_concurrent_openings_store_one_system_message(self):
        repository = ConversationRepository(YieldingStorageProvider())
        system = ConversationMessage(role=MessageRole.SYSTEM, content="sys")

        opened = await asyncio.gather(*(repository.open_conversation("c1", system) for _ in range(5)))

        assert sorted(opened) == [False, False, False, False, True]
        assert len(await repository.get_history("c1")) == 1

    @pytest.mark.asyncio
    async def test_concurrent_appends_are_not_lost(self, repository):
        await asyncio.gather(*(repository.add_message("c1", user(f"message {i}")) for i in range(20)))

        history = await repository.get_history("c1")
        assert len(history) == 20
        assert {m.content for m in history} == {f"message {i}" for i in range(20)}

    @pytest.mark.asyncio
    async def test_conversation_expires_after_inactivity(self, repository, clock):
        await repository.add_message("c1", user("hello"))

        clock.advance(CONVERSATION_TTL_SECONDS - 1)
        await repository.add_message("c1", user("still here"))

        clock.advance(CONVERSATION_TTL_SECONDS - 1)
        assert len(await repository.get_history("c1")) == 2

        clock.advance(2)
        assert await repository.get_history("c1") == []

    @pytest.mark.asyncio
    async def test_delete_conversation(self, repository):
        await repository.add_message("c1", user("hello"))
        await repository.delete_conversation("c1")
        assert not await repository.conversation_exists("c1")


class TestRepositoryStorageFailures:
    """Tests for backend failures surfacing as STORAGE_ERROR."""

    @pytest.mark.asyncio
    async def test_append_failure(self):
        storage = MagicMock()
        storage.append = AsyncMock(side_effect=StorageBackendError("redis down"))
        repository = ConversationRepository(storage)

        with pytest.raises(AppError) as exc_info:
            await repository.add_message("c1", user("hello"))

        error = exc_info.value
        assert error.code == ErrorCode.STORAGE_ERROR
        assert error.details["conversationId"] == "c1"
        assert "redis down" in error.details["originalError"]

    @pytest.mark.asyncio
    async def test_read_failure(self):
        storage = MagicMock()
        storage.get_list = AsyncMock(side_effect=StorageBackendError("timeout"))
        repository = ConversationRepository(storage)

        with pytest.raises(AppError) as exc_info:
            await repository.get_history("c1")
        assert exc_info.value.code == ErrorCode.STORAGE_ERROR

    @pytest.mark.asyncio
    async def test_open_failure(self):
        storage = MagicMock()
        storage.append_if_absent = AsyncMock(side_effect=StorageBackendError("redis down"))
        repository = ConversationRepository(storage)

        with pytest.raises(AppError) as exc_info:
            await repository.open_conversation("c1", ConversationMessage(role=MessageRole.SYSTEM, content="sys"))
        assert exc_info.value.code == ErrorCode.STORAGE_ERROR
