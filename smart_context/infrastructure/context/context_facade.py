"""
Context Facade - Unified per-conversation entry point for context allocation.

Combines:
1. TokenEstimator - Cheap cached token estimates
2. ContextWindowManager - Budgeted context assembly (with BudgetOptimizer)
3. ToolOutputPruner - Session overflow detection and tool output pruning
4. TokenUsageTracker - Optional before/after usage records

One ContextSession owns all mutable state of one conversation (estimator
cache and pruning state). Call reset() on every new-conversation boundary;
concurrent calls for the same session must be serialized by the caller.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from smart_context.configuration.config import ContextSettings, get_settings
from smart_context.domain.model.context.compaction_state import (
    CompactionState,
    PruneResult,
    TokenUsageInfo,
)
from smart_context.domain.model.context.context_part import ContextBuildResult, PartKind
from smart_context.domain.model.context.message import CodeSnippet, Message, MessageRole
from smart_context.domain.ports.context_allocator_port import ContextAllocatorPort
from smart_context.infrastructure.context.compaction import ToolOutputPruner
from smart_context.infrastructure.context.compressor import SmartCompressor
from smart_context.infrastructure.context.usage_tracker import TokenUsageTracker, UsageFeature
from smart_context.infrastructure.context.window_manager import ContextWindowManager
from smart_context.infrastructure.llm.token_estimator import TokenEstimator

logger = logging.getLogger(__name__)

# Wire roles for part kinds that have no role of their own
_PART_ROLES = {
    PartKind.SUMMARY: "system",
    PartKind.CODE: "user",
}


class ContextSession(ContextAllocatorPort):
    """
    Unified facade for one conversation's context allocation.

    Implements ContextAllocatorPort protocol.

    Example:
        session = ContextSession()
        result = session.build_optimized_context(
            messages, "You are a coding assistant.", "Fix the failing test",
            model_name="claude-3.5-sonnet-20241022",
        )
        payload = session.to_messages(result)

        # New conversation
        session.reset()
    """

    def __init__(
        self,
        settings: Optional[ContextSettings] = None,
        usage_tracker: Optional[TokenUsageTracker] = None,
        feature: UsageFeature = UsageFeature.CHAT,
    ):
        """
        Initialize a session.

        Args:
            settings: Allocator settings, defaults to the cached global settings
            usage_tracker: Optional shared tracker; a private one is created
                from settings otherwise
            feature: Feature label used for usage records
        """
        self._settings = settings or get_settings()
        self._estimator = TokenEstimator(self._settings)
        self._compressor = SmartCompressor(self._settings)
        self._window_manager = ContextWindowManager(
            estimator=self._estimator,
            compressor=self._compressor,
            settings=self._settings,
        )
        self._pruner = ToolOutputPruner(
            estimator=self._estimator,
            state=CompactionState(),
            settings=self._settings,
        )
        if usage_tracker is None:
            usage_tracker = TokenUsageTracker(
                enabled=self._settings.usage_tracking_enabled,
                max_records=self._settings.usage_max_records,
            )
        self._usage_tracker = usage_tracker
        self._feature = feature

    @property
    def settings(self) -> ContextSettings:
        return self._settings

    @property
    def estimator(self) -> TokenEstimator:
        return self._estimator

    @property
    def usage_tracker(self) -> TokenUsageTracker:
        return self._usage_tracker

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def build_context(
        self,
        messages: Sequence[Message],
        system_prompt: str,
        current_input: str,
        max_tokens: Optional[int] = None,
        code_snippets: Optional[Sequence[CodeSnippet]] = None,
    ) -> ContextBuildResult:
        """Build a context; pruned tool outputs are replaced by placeholders first."""
        if max_tokens is None:
            max_tokens = self._settings.default_max_tokens
        self._window_manager.validate(messages, max_tokens)

        started = time.perf_counter()
        visible = self._pruner.apply_pruned_placeholders(messages)
        result = self._window_manager.build(
            visible, system_prompt, current_input, max_tokens, code_snippets
        )
        self._usage_tracker.record_build(
            result,
            feature=self._feature,
            preparation_time_ms=(time.perf_counter() - started) * 1000,
        )
        return result

    def build_optimized_context(
        self,
        messages: Sequence[Message],
        system_prompt: str,
        current_input: str,
        model_name: str = "default",
        code_snippets: Optional[Sequence[CodeSnippet]] = None,
    ) -> ContextBuildResult:
        """
        Build a context sized for *model_name*.

        The budget is the smaller of the model's limit minus reserved output
        and ``default_max_tokens``. Tool outputs are pruned first when the
        session is close to the model's limit.
        """
        self._window_manager.validate(messages, 0)
        context_limit = self._pruner.get_model_context_limit(model_name)
        max_tokens = max(
            min(
                context_limit - self._settings.reserved_output_tokens,
                self._settings.default_max_tokens,
            ),
            0,
        )

        usage = self._pruner.check_needs_compaction(messages, model_name)
        if usage.needs_compaction:
            self._pruner.prune_tool_outputs(messages)

        return self.build_context(
            messages, system_prompt, current_input, max_tokens, code_snippets
        )

    # ------------------------------------------------------------------
    # Session overflow and pruning
    # ------------------------------------------------------------------

    def get_model_context_limit(self, model_name: str) -> int:
        return self._pruner.get_model_context_limit(model_name)

    def check_needs_compaction(
        self, messages: Sequence[Message], model_name: str
    ) -> TokenUsageInfo:
        return self._pruner.check_needs_compaction(messages, model_name)

    def prune_tool_outputs(self, messages: Sequence[Message]) -> PruneResult:
        return self._pruner.prune_tool_outputs(messages)

    def is_tool_pruned(self, tool_id: str) -> bool:
        return self._pruner.is_tool_pruned(tool_id)

    def get_pruned_tool_content(self, tool_name: str, original: Optional[str] = None) -> str:
        return self._pruner.get_pruned_tool_content(tool_name, original)

    # ------------------------------------------------------------------
    # Compression helpers
    # ------------------------------------------------------------------

    def compress_message(self, content: str, role: MessageRole) -> str:
        """Compress a single tool or assistant message; other roles pass through."""
        if role == MessageRole.TOOL:
            return self._compressor.compress_tool_result(
                content, self._settings.tool_result_max_length
            )
        if role == MessageRole.ASSISTANT:
            return self._compressor.compress_assistant_message(
                content, self._settings.assistant_max_length
            )
        return content

    def generate_summary(self, messages: Sequence[Message]) -> str:
        return self._compressor.compress_history_to_summary(messages)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def get_compaction_state(self) -> CompactionState:
        """Snapshot of the pruning state; mutating it does not affect the session."""
        return self._pruner.state.snapshot()

    def reset(self) -> None:
        """Start a new conversation: forget pruning decisions and cached estimates."""
        self._pruner.reset()
        self._estimator.clear_cache()
        logger.debug("Context session reset")

    def to_messages(self, result: ContextBuildResult) -> List[Dict[str, Any]]:
        """Convert parts into ``{"role", "content"}`` chat messages."""
        return [
            {"role": _PART_ROLES.get(part.kind, part.kind.value), "content": part.content}
            for part in result.parts
        ]

    def stats(self) -> Dict[str, Any]:
        """Compaction counters and estimator cache info."""
        data = {
            **self._pruner.state.to_dict(),
            "token_cache": self._estimator.cache_info(),
        }
        logger.info(
            f"Context session stats: {data['compaction_count']} compactions, "
            f"{data['total_pruned_tokens']} tokens pruned, "
            f"{data['pruned_tool_count']} tools pruned"
        )
        return data
