"""Provider implementations."""

from textbook_engine.ai.providers.chat_completions import ChatCompletionsClient, ChatMessage, build_chat_client

__all__ = ["ChatCompletionsClient", "ChatMessage", "build_chat_client"]
