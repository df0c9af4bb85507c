"""Tests for the token counting module.

Uses the character heuristic or a stub encoder so no tiktoken encoding is fetched.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from agenttree.core import tokens
from agenttree.core.llm.provider import ChatMessage, Role, ToolCall
from agenttree.core.tokens import (
    CHARS_PER_TOKEN,
    MESSAGE_OVERHEAD,
    count_message_tokens,
    count_messages_tokens,
    count_tokens_heuristic,
)


class TestHeuristic:
    def test_empty(self) -> None:
        assert count_tokens_heuristic("") == 0

    def test_chars_per_token(self) -> None:
        assert count_tokens_heuristic("x" * 40) == int(40 / CHARS_PER_TOKEN)

    def test_rounds_down(self) -> None:
        assert count_tokens_heuristic("abc") == 0


class TestMessageTokens:
    def test_overhead_added(self) -> None:
        message = ChatMessage(Role.USER, "x" * 8)
        assert count_message_tokens(message, count_tokens_heuristic) == MESSAGE_OVERHEAD + 2

    def test_tool_calls_counted(self) -> None:
        """Tool call names and arguments add to the message cost."""
        plain = ChatMessage(Role.ASSISTANT, "")
        with_call = ChatMessage(
            Role.ASSISTANT,
            "",
            tool_calls=(ToolCall("c1", "file_read", '{"path": "notes.txt"}'),),
        )
        assert count_message_tokens(with_call, count_tokens_heuristic) > count_message_tokens(
            plain, count_tokens_heuristic
        )

    def test_sum_over_messages(self) -> None:
        messages = [ChatMessage(Role.USER, "x" * 8), ChatMessage(Role.ASSISTANT, "y" * 4)]
        assert count_messages_tokens(messages, count_tokens_heuristic) == 2 * MESSAGE_OVERHEAD + 3

    def test_custom_counter(self) -> None:
        message = ChatMessage(Role.USER, "one two three")
        assert count_message_tokens(message, lambda text: len(text.split())) == MESSAGE_OVERHEAD + 3


class TestCountTokensCache:
    def test_keyed_by_text_and_bounded(self, monkeypatch: pytest.MonkeyPatch) -> None:
        encoder = MagicMock()
        encoder.encode.side_effect = lambda text: text.split()
        monkeypatch.setattr(tokens, "_get_encoder", lambda: encoder)
        tokens.count_tokens.cache_clear()

        try:
            assert tokens.count_tokens("one two") == 2
            assert tokens.count_tokens("one two") == 2
            assert tokens.count_tokens("three") == 1
            assert encoder.encode.call_count == 2
            assert tokens.count_tokens.cache_info().maxsize == tokens.TOKEN_CACHE_SIZE
        finally:
            tokens.count_tokens.cache_clear()
