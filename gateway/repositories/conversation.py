"""Conversation history persistence."""

from datetime import UTC, datetime

from gateway.errors import AppError, ErrorCode, StorageBackendError
from gateway.models.messages import ConversationMessage, MessageRole
from gateway.storage.base import StorageProvider
from gateway.utils.logging import get_logger

logger = get_logger(__name__)

CONVERSATION_TTL_SECONDS = 7 * 24 * 60 * 60


def conversation_key(conversation_id: str) -> str:
    return f"conversation:{conversation_id}"


class ConversationRepository:
    """Append-only message log per conversation.

    Each append refreshes the conversation expiry, so a conversation lives
    for the TTL after its last message and then disappears without archive.
    """

    def __init__(self, storage: StorageProvider, ttl_seconds: int = CONVERSATION_TTL_SECONDS):
        self.storage = storage
        self.ttl_seconds = ttl_seconds

    async def add_message(self, conversation_id: str, message: ConversationMessage) -> ConversationMessage:
        """Append a message to a conversation.

        Args:
            conversation_id: Conversation identifier
            message: Message to append; stamped with the current time if it has none

        Returns:
            The stored message

        Raises:
            AppError: STORAGE_ERROR on backend failure, VALIDATION_ERROR for a
                system message on a non-empty conversation
        """
        if message.timestamp is None:
            message = message.model_copy(update={"timestamp": datetime.now(UTC)})

        if message.role == MessageRole.SYSTEM:
            if not await self.open_conversation(conversation_id, message):
                raise AppError(
                    ErrorCode.VALIDATION_ERROR,
                    "System message can only open a conversation",
                    {"conversationId": conversation_id},
                )
            return message

        try:
            await self.storage.append(conversation_key(conversation_id), message.to_storage(), self.ttl_seconds)
        except StorageBackendError as e:
            logger.error(f"Failed to store message for conversation {conversation_id}: {e}")
            raise AppError(
                ErrorCode.STORAGE_ERROR,
                "Failed to store conversation message",
                {"conversationId": conversation_id, "originalError": str(e)},
            ) from e

        logger.debug(f"Stored {message.role} message for conversation {conversation_id}")
        return message

    async def open_conversation(self, conversation_id: str, system_message: ConversationMessage) -> bool:
        """Start a conversation with its system message unless it already exists.

        The existence check and the write are a single storage operation, so
        concurrent first turns open the conversation exactly once.

        Returns:
            True if this call opened the conversation
        """
        if system_message.timestamp is None:
            system_message = system_message.model_copy(update={"timestamp": datetime.now(UTC)})

        try:
            opened = await self.storage.append_if_absent(
                conversation_key(conversation_id), system_message.to_storage(), self.ttl_seconds
            )
        except StorageBackendError as e:
            logger.error(f"Failed to open conversation {conversation_id}: {e}")
            raise AppError(
                ErrorCode.STORAGE_ERROR,
                "Failed to store conversation message",
                {"conversationId": conversation_id, "originalError": str(e)},
            ) from e

        if opened:
            logger.debug(f"Opened conversation {conversation_id}")
        return opened

    async def get_history(self, conversation_id: str) -> list[ConversationMessage]:
        """Return every stored message in insertion order, or [] if unknown."""
        try:
            raw_messages = await self.storage.get_list(conversation_key(conversation_id))
        except StorageBackendError as e:
            logger.error(f"Failed to load history for conversation {conversation_id}: {e}")
            raise AppError(
                ErrorCode.STORAGE_ERROR,
                "Failed to load conversation history",
                {"conversationId": conversation_id, "originalError": str(e)},
            ) from e
        return [ConversationMessage.from_storage(raw) for raw in raw_messages]

    async def delete_conversation(self, conversation_id: str) -> None:
        try:
            await self.storage.delete(conversation_key(conversation_id))
        except StorageBackendError as e:
            raise AppError(
                ErrorCode.STORAGE_ERROR,
                "Failed to delete conversation",
                {"conversationId": conversation_id, "originalError": str(e)},
            ) from e
        logger.info(f"Deleted conversation {conversation_id}")

    async def conversation_exists(self, conversation_id: str) -> bool:
        try:
            return await self.storage.exists(conversation_key(conversation_id))
        except StorageBackendError as e:
            raise AppError(
                ErrorCode.STORAGE_ERROR,
                "Failed to check conversation",
                {"conversationId": conversation_id, "originalError": str(e)},
            ) from e
