"""
Token Estimation with Caching.

Approximates token counts from character length and content shape, so it
is cheap enough to call for every message on every allocation. There is no
tokenizer dependency; the estimate is intentionally conservative for code.

Usage:
    from smart_context.infrastructure.llm.token_estimator import TokenEstimator

    estimator = TokenEstimator()
    tokens = estimator.estimate("def main():\n    pass\n")
"""

import logging
import math
import re
import threading
from typing import Any, Iterable, Optional

from smart_context.configuration.config import ContextSettings, get_settings
from smart_context.domain.model.context.message import Message

logger = logging.getLogger(__name__)


class TokenEstimator:
    """
    Character-based token estimator with a bounded memo cache.

    One instance is owned by one session. The cache is keyed by a cheap
    fingerprint (short prefix + length) and drops its oldest half when full.

    Example:
        estimator = TokenEstimator()

        # First call - computes tokens
        tokens1 = estimator.estimate(text)

        # Second call with same input - served from the cache
        tokens2 = estimator.estimate(text)
    """

    def __init__(self, settings: Optional[ContextSettings] = None):
        """
        Initialize token estimator.

        Args:
            settings: Allocator settings, defaults to the cached global settings
        """
        self._settings = settings or get_settings()
        self._chars_per_token = self._settings.chars_per_token
        self._code_multiplier = self._settings.code_token_multiplier
        self._maxsize = self._settings.token_cache_maxsize
        self._key_prefix = self._settings.token_cache_key_prefix
        self._code_patterns = [re.compile(p) for p in self._settings.code_patterns]
        self._cache: dict[str, int] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def _cache_key(self, text: str) -> str:
        if len(text) <= self._key_prefix:
            return text
        return f"{text[: self._key_prefix]}\x00{len(text)}"

    def looks_like_code(self, text: str) -> bool:
        """Shallow check for source-code shape."""
        return any(pattern.search(text) for pattern in self._code_patterns)

    def _compute(self, text: str) -> int:
        tokens = math.ceil(len(text) / self._chars_per_token)
        if self.looks_like_code(text):
            tokens = math.ceil(tokens * self._code_multiplier)
        return tokens

    def estimate(self, text: str) -> int:
        """
        Estimate token count for a piece of text.

        Args:
            text: Text to estimate

        Returns:
            Estimated token count, 0 for empty text
        """
        if not text:
            return 0

        key = self._cache_key(text)
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                self._hits += 1
                return cached

        tokens = self._compute(text)

        with self._lock:
            self._misses += 1
            if len(self._cache) >= self._maxsize:
                self._evict_oldest_half()
            self._cache[key] = tokens
        return tokens

    def estimate_message(self, message: Message) -> int:
        return self.estimate(message.content)

    def estimate_messages(self, messages: Iterable[Message]) -> int:
        """Sum of content estimates for a list of messages."""
        return sum(self.estimate(message.content) for message in messages)

    def _evict_oldest_half(self) -> None:
        # dicts keep insertion order, so the first keys are the oldest
        evict_count = len(self._cache) // 2
        for key in list(self._cache.keys())[:evict_count]:
            del self._cache[key]
        logger.debug(f"Token cache evicted {evict_count} entries")

    def clear_cache(self) -> None:
        """Clear the token estimation cache."""
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    def cache_info(self) -> dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache size, capacity and hit/miss counters
        """
        with self._lock:
            return {
                "size": len(self._cache),
                "maxsize": self._maxsize,
                "hits": self._hits,
                "misses": self._misses,
            }
