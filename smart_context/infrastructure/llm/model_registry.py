"""Model context-limit registry.

Maps model identifiers to their absolute context window. Lookup is a
case-insensitive substring match so dated or provider-prefixed names
(``claude-3.5-sonnet-20241022``, ``openrouter/gpt-4o``) resolve to their
family entry. Unknown models fall back to a conservative default.
"""

from __future__ import annotations

import logging
from typing import Mapping

from smart_context.configuration.config import ContextSettings, get_settings

logger = logging.getLogger(__name__)


def _strip_provider_prefix(model: str) -> str:
    """Strip provider prefix (e.g. 'dashscope/qwen-max' -> 'qwen-max')."""
    return model.split("/", 1)[-1] if "/" in model else model


def match_model_key(model: str, limits: Mapping[str, int]) -> str | None:
    """Return the longest table key contained in *model*, if any."""
    bare = _strip_provider_prefix(model.strip()).lower()
    if not bare:
        return None
    matches = [key for key in limits if key.lower() in bare]
    if not matches:
        return None
    return max(matches, key=len)


def get_model_context_limit(model: str, settings: ContextSettings | None = None) -> int:
    """Return the context window (input + output tokens) for *model*."""
    settings = settings or get_settings()
    key = match_model_key(model or "", settings.model_context_limits)
    if key is None:
        logger.warning(
            f"Unknown model '{model}', using default context limit "
            f"{settings.default_context_limit}"
        )
        return settings.default_context_limit
    return settings.model_context_limits[key]
