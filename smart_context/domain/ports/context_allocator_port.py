"""
Context Allocator Port - Domain layer interface for context allocation.

Defines the session-level contract a host application programs against:
building a bounded context for one request, detecting session overflow,
and pruning stale tool outputs.

Following hexagonal architecture: callers depend on this port only.
"""

from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from smart_context.domain.model.context.compaction_state import (
    CompactionState,
    PruneResult,
    TokenUsageInfo,
)
from smart_context.domain.model.context.context_part import ContextBuildResult
from smart_context.domain.model.context.message import CodeSnippet, Message


@runtime_checkable
class ContextAllocatorPort(Protocol):
    """
    Port for one conversation's context allocation.

    Responsibilities:
    - Assemble a prioritized context within a token budget
    - Track session usage against the model's context limit
    - Remember which tool outputs were pruned until reset()
    """

    def build_context(
        self,
        messages: Sequence[Message],
        system_prompt: str,
        current_input: str,
        max_tokens: Optional[int] = None,
        code_snippets: Optional[Sequence[CodeSnippet]] = None,
    ) -> ContextBuildResult:
        """
        Build the context for one request.

        Args:
            messages: Conversation history, oldest first
            system_prompt: Pinned system prompt
            current_input: Pinned current user input
            max_tokens: Token budget
            code_snippets: Optional code context

        Returns:
            Ordered parts with honest token accounting
        """
        ...

    def build_optimized_context(
        self,
        messages: Sequence[Message],
        system_prompt: str,
        current_input: str,
        model_name: str = "default",
    ) -> ContextBuildResult:
        """Build a context with the budget and pruning derived from *model_name*."""
        ...

    def check_needs_compaction(
        self, messages: Sequence[Message], model_name: str
    ) -> TokenUsageInfo:
        ...

    def prune_tool_outputs(self, messages: Sequence[Message]) -> PruneResult:
        ...

    def is_tool_pruned(self, tool_id: str) -> bool:
        ...

    def get_compaction_state(self) -> CompactionState:
        ...

    def to_messages(self, result: ContextBuildResult) -> list[dict[str, Any]]:
        ...

    def reset(self) -> None:
        """Clear all session state. Call on every new-conversation boundary."""
        ...
