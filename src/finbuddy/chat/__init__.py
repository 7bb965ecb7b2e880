"""Chat request pipeline."""

from finbuddy.chat.analyzer import requires_news_context
from finbuddy.chat.orchestrator import ChatOrchestrator, ChatResponse
from finbuddy.chat.prompt import ConversationTurn, build_prompt, validate_message

__all__ = [
    "ChatOrchestrator",
    "ChatResponse",
    "ConversationTurn",
    "build_prompt",
    "requires_news_context",
    "validate_message",
]
