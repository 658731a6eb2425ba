"""Context window selection for upstream calls."""

import math
from dataclasses import dataclass
from typing import Protocol

import tiktoken

from gateway.models.messages import ConversationMessage, MessageRole
from gateway.repositories.conversation import ConversationRepository
from gateway.utils.logging import get_logger

logger = get_logger(__name__)

SHORT_CONVERSATION_LIMIT = 10
RECENT_MESSAGE_COUNT = 6
DEFAULT_MAX_TOKENS = 2000

MEMORY_KEYWORDS = (
    # English
    "you said",
    "you mentioned",
    "remember",
    "recall",
    "mentioned",
    "said before",
    "earlier",
    "previous",
    "we talked",
    "i told you",
    # Spanish
    "dijiste",
    "mencionaste",
    "hablamos",
    "antes",
    "anteriormente",
    "recordar",
    "recuerdas",
    "conversación anterior",
    "hace rato",
    "te dije",
    "te mencioné",
)


class TokenEstimator(Protocol):
    """Strategy for estimating how many tokens a text costs."""

    def estimate(self, text: str) -> int: ...


class CharacterRatioEstimator:
    """Roughly four characters per token."""

    def __init__(self, chars_per_token: int = 4):
        self.chars_per_token = chars_per_token

    def estimate(self, text: str) -> int:
        return math.ceil(len(text) / self.chars_per_token)


class TiktokenEstimator:
    """Count tokens with a tiktoken encoding, falling back to the character ratio."""

    tokenizer: tiktoken.Encoding | None = None

    def __init__(self, encoding_name: str = "cl100k_base"):
        self._fallback = CharacterRatioEstimator()
        try:
            self.tokenizer = tiktoken.get_encoding(encoding_name)
        except Exception as e:
            logger.warning(f"Could not load tiktoken encoding {encoding_name}: {e}")
            self.tokenizer = None

    def estimate(self, text: str) -> int:
        if self.tokenizer is None:
            return self._fallback.estimate(text)
        return len(self.tokenizer.encode(text))


def create_token_estimator(name: str) -> TokenEstimator:
    if name == "tiktoken":
        return TiktokenEstimator()
    return CharacterRatioEstimator()


@dataclass
class OptimizedContext:
    """Messages selected for an upstream call."""

    messages: list[ConversationMessage]
    total_messages: int
    needs_memory_tool: bool


class ContextManager:
    """Selects which history entries are sent upstream."""

    def __init__(self, repository: ConversationRepository, estimator: TokenEstimator | None = None):
        self.repository = repository
        self.estimator = estimator or CharacterRatioEstimator()

    async def get_optimized_context(
        self, conversation_id: str, max_tokens: int = DEFAULT_MAX_TOKENS
    ) -> OptimizedContext:
        """Return the whole history when short, otherwise the system message plus the recent tail.

        Args:
            conversation_id: Conversation identifier
            max_tokens: Accepted for symmetry with the token-bounded variant; unused here

        Returns:
            OptimizedContext with the chosen window and whether memory search is advisable
        """
        history = await self.repository.get_history(conversation_id)
        total = len(history)

        if total <= SHORT_CONVERSATION_LIMIT:
            return OptimizedContext(messages=history, total_messages=total, needs_memory_tool=False)

        system = next((m for m in history if m.role == MessageRole.SYSTEM), None)
        recent = history[-RECENT_MESSAGE_COUNT:]
        messages = [system, *recent] if system is not None and system not in recent else recent

        logger.debug(f"Conversation {conversation_id} windowed to {len(messages)} of {total} messages")
        return OptimizedContext(messages=messages, total_messages=total, needs_memory_tool=True)

    async def get_token_optimized_context(
        self, conversation_id: str, max_tokens: int = DEFAULT_MAX_TOKENS
    ) -> list[ConversationMessage]:
        """Pack the newest messages that fit the token budget.

        The system message is reserved first when it fits on its own. Packing
        walks backwards from the newest non-system message and stops at the
        first one that would overflow.
        """
        history = await self.repository.get_history(conversation_id)

        system = next((m for m in history if m.role == MessageRole.SYSTEM), None)
        used = 0
        head: list[ConversationMessage] = []
        if system is not None:
            system_cost = self.estimator.estimate(system.content)
            if system_cost < max_tokens:
                head = [system]
                used = system_cost

        packed: list[ConversationMessage] = []
        for message in reversed([m for m in history if m.role != MessageRole.SYSTEM]):
            cost = self.estimator.estimate(message.content)
            if used + cost > max_tokens:
                break
            packed.append(message)
            used += cost

        packed.reverse()
        if len(head) + len(packed) < len(history):
            logger.info(
                f"Conversation {conversation_id} packed to {len(head) + len(packed)} of {len(history)} "
                f"messages within {max_tokens} tokens"
            )
        return head + packed

    def should_use_memory_tools(self, prompt: str) -> bool:
        """Check whether the prompt refers back to earlier parts of the conversation."""
        lowered = prompt.lower()
        return any(keyword in lowered for keyword in MEMORY_KEYWORDS)
