"""Context allocation domain models."""

from smart_context.domain.model.context.compaction_state import (
    CompactionState,
    PruneResult,
    TokenUsageInfo,
)
from smart_context.domain.model.context.context_part import (
    ContextBuildResult,
    ContextPart,
    OptimizationResult,
    PartKind,
    PartMetadata,
)
from smart_context.domain.model.context.message import CodeSnippet, Message, MessageRole

__all__ = [
    "CodeSnippet",
    "CompactionState",
    "ContextBuildResult",
    "ContextPart",
    "Message",
    "MessageRole",
    "OptimizationResult",
    "PartKind",
    "PartMetadata",
    "PruneResult",
    "TokenUsageInfo",
]
