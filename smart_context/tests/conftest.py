"""Pytest configuration and shared fixtures for testing."""

from datetime import datetime, timedelta, timezone
from typing import Callable, List

import pytest

from smart_context.configuration.config import ContextSettings
from smart_context.domain.model.context.message import Message, MessageRole
from smart_context.infrastructure.context.compressor import SmartCompressor
from smart_context.infrastructure.context.context_facade import ContextSession
from smart_context.infrastructure.context.window_manager import ContextWindowManager
from smart_context.infrastructure.llm.token_estimator import TokenEstimator

# Prose filler that matches none of the code-shape heuristics
FILLER = "lorem ipsum dolor sit amet consectetur adipiscing elit sed do "

BASE_TIME = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def prose(length: int, tag: str = "") -> str:
    """Plain text of exactly *length* characters, starting with *tag*."""
    text = f"{tag} " if tag else ""
    while len(text) < length:
        text += FILLER
    return text[:length]


@pytest.fixture
def settings() -> ContextSettings:
    """Default settings, isolated from any .env file or CONTEXT_* variables."""
    return ContextSettings(_env_file=None)


@pytest.fixture
def estimator(settings: ContextSettings) -> TokenEstimator:
    return TokenEstimator(settings)


@pytest.fixture
def compressor(settings: ContextSettings) -> SmartCompressor:
    return SmartCompressor(settings)


@pytest.fixture
def window_manager(settings: ContextSettings, estimator: TokenEstimator) -> ContextWindowManager:
    return ContextWindowManager(estimator=estimator, settings=settings)


@pytest.fixture
def session(settings: ContextSettings) -> ContextSession:
    return ContextSession(settings=settings)


@pytest.fixture
def make_conversation() -> Callable[..., List[Message]]:
    """Factory for alternating user/assistant turns of fixed size.

    Each message is ``chars`` characters of prose (175 chars = 50 tokens)
    and carries a distinct tag so tests can identify it.
    """

    def _make(turns: int, chars: int = 175, with_timestamps: bool = False) -> List[Message]:
        messages = []
        for i in range(turns * 2):
            role = MessageRole.USER if i % 2 == 0 else MessageRole.ASSISTANT
            messages.append(
                Message(
                    role=role,
                    content=prose(chars, tag=f"msg{i:03d}"),
                    timestamp=BASE_TIME + timedelta(minutes=i) if with_timestamps else None,
                )
            )
        return messages

    return _make
