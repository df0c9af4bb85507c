"""Token counting with tiktoken."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from functools import lru_cache

import tiktoken

from agenttree.core.llm.provider import ChatMessage

TokenCounter = Callable[[str], int]

CHARS_PER_TOKEN = 4.0

# Role marker and separators added by chat formats
MESSAGE_OVERHEAD = 4

_encoder: tiktoken.Encoding | None = None


def _get_encoder() -> tiktoken.Encoding:
    """Get cached tiktoken encoder."""
    global _encoder
    if _encoder is None:
        _encoder = tiktoken.get_encoding("o200k_base")
    return _encoder


TOKEN_CACHE_SIZE = 4096


@lru_cache(maxsize=TOKEN_CACHE_SIZE)
def count_tokens(text: str) -> int:
    """Count tokens with caching (uses tiktoken)."""
    return len(_get_encoder().encode(text))


def count_tokens_heuristic(text: str) -> int:
    """Estimate tokens from character count, without encoding."""
    return int(len(text) / CHARS_PER_TOKEN)


def count_message_tokens(message: ChatMessage, counter: TokenCounter = count_tokens) -> int:
    """Tokens for one provider message, including tool-call payloads."""
    total = MESSAGE_OVERHEAD + counter(message.content)
    for call in message.tool_calls:
        total += counter(call.name) + counter(call.arguments)
    return total


def count_messages_tokens(
    messages: Iterable[ChatMessage], counter: TokenCounter = count_tokens
) -> int:
    return sum(count_message_tokens(m, counter) for m in messages)
