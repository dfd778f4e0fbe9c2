"""
Context allocation infrastructure.

Exports:
    ContextSession: per-conversation facade
    ContextWindowManager: budgeted context assembly
    BudgetOptimizer: second-pass over-budget handling
    ToolOutputPruner: session overflow detection and pruning
    SmartCompressor, MessageBatchCompressor: content-aware compression
    TokenUsageTracker: usage records and statistics
"""

from smart_context.infrastructure.context.budget_optimizer import BudgetOptimizer
from smart_context.infrastructure.context.compaction import ToolOutputPruner
from smart_context.infrastructure.context.compressor import (
    MessageBatchCompressor,
    SmartCompressor,
)
from smart_context.infrastructure.context.context_facade import ContextSession
from smart_context.infrastructure.context.usage_tracker import (
    TokenUsageRecord,
    TokenUsageStats,
    TokenUsageTracker,
    UsageFeature,
)
from smart_context.infrastructure.context.window_manager import ContextWindowManager

__all__ = [
    "BudgetOptimizer",
    "ContextSession",
    "ContextWindowManager",
    "MessageBatchCompressor",
    "SmartCompressor",
    "TokenUsageRecord",
    "TokenUsageStats",
    "TokenUsageTracker",
    "ToolOutputPruner",
    "UsageFeature",
]
