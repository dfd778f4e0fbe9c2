"""
smart_context - token-budgeted context window allocation for coding assistants.

Usage:
    from smart_context import ContextSession, Message, MessageRole

    session = ContextSession()
    result = session.build_context(
        [Message(MessageRole.USER, "Where is the config loaded?")],
        system_prompt="You are a coding assistant.",
        current_input="Now add a test for it",
        max_tokens=8000,
    )
"""

from smart_context.configuration import ContextSettings, PriorityLevels, get_settings
from smart_context.domain.exceptions import ContextAllocatorError, ContextValidationError
from smart_context.domain.model.context import (
    CodeSnippet,
    CompactionState,
    ContextBuildResult,
    ContextPart,
    Message,
    MessageRole,
    OptimizationResult,
    PartKind,
    PartMetadata,
    PruneResult,
    TokenUsageInfo,
)
from smart_context.domain.ports import ContextAllocatorPort
from smart_context.infrastructure.context import (
    BudgetOptimizer,
    ContextSession,
    ContextWindowManager,
    MessageBatchCompressor,
    SmartCompressor,
    TokenUsageTracker,
    ToolOutputPruner,
    UsageFeature,
)
from smart_context.infrastructure.llm.model_registry import get_model_context_limit
from smart_context.infrastructure.llm.token_estimator import TokenEstimator

__all__ = [
    "BudgetOptimizer",
    "CodeSnippet",
    "CompactionState",
    "ContextAllocatorError",
    "ContextAllocatorPort",
    "ContextBuildResult",
    "ContextPart",
    "ContextSession",
    "ContextSettings",
    "ContextValidationError",
    "ContextWindowManager",
    "Message",
    "MessageBatchCompressor",
    "MessageRole",
    "OptimizationResult",
    "PartKind",
    "PartMetadata",
    "PriorityLevels",
    "PruneResult",
    "SmartCompressor",
    "TokenEstimator",
    "TokenUsageInfo",
    "TokenUsageTracker",
    "ToolOutputPruner",
    "UsageFeature",
    "get_model_context_limit",
    "get_settings",
]
