"""
Context Compaction Module - Session-level overflow detection and tool output pruning.

Implements the session-scoped half of context management:
1. check_needs_compaction() - Measures usage against the model's context limit
2. prune_tool_outputs() - Permanently marks stale tool outputs as pruned
3. get_pruned_tool_content() - Tool-aware placeholders for pruned outputs

Pruning decisions are remembered in a CompactionState, so an output is
never reconsidered once pruned until the session is reset.
"""

import logging
from dataclasses import replace
from typing import List, Optional, Sequence

from smart_context.configuration.config import ContextSettings, get_settings
from smart_context.domain.model.context.compaction_state import (
    CompactionState,
    PruneResult,
    TokenUsageInfo,
)
from smart_context.domain.model.context.message import Message, MessageRole
from smart_context.infrastructure.llm.model_registry import get_model_context_limit
from smart_context.infrastructure.llm.token_estimator import TokenEstimator

logger = logging.getLogger(__name__)

_SEARCH_TOOLS = {"search_for_files", "search_pathnames_only"}
_LISTING_TOOLS = {"ls_dir", "get_dir_tree"}
_EDIT_TOOLS = {"edit_file", "rewrite_file"}


class ToolOutputPruner:
    """
    Tracks session token usage and prunes old tool outputs.

    Key features:
    - Oversized outputs are pruned even inside the protected recent turns
    - Recent turns and the newest PROTECT_TOKENS of tool output are kept
    - Pruning below the minimum benefit is skipped entirely
    - Allowlisted tools are never pruned by the standard pass
    """

    def __init__(
        self,
        estimator: Optional[TokenEstimator] = None,
        state: Optional[CompactionState] = None,
        settings: Optional[ContextSettings] = None,
    ):
        self._settings = settings or get_settings()
        self._estimator = estimator or TokenEstimator(self._settings)
        self._state = state if state is not None else CompactionState()

    @property
    def state(self) -> CompactionState:
        return self._state

    def get_model_context_limit(self, model_name: str) -> int:
        return get_model_context_limit(model_name, self._settings)

    def check_needs_compaction(
        self, messages: Sequence[Message], model_name: str
    ) -> TokenUsageInfo:
        """
        Measure session usage against the model's context limit.

        Args:
            messages: Full conversation history
            model_name: Model identifier used for the limit lookup

        Returns:
            TokenUsageInfo; usage is relative to the limit minus reserved output
        """
        total_tokens = self._estimator.estimate_messages(messages)
        context_limit = self.get_model_context_limit(model_name)
        available_tokens = context_limit - self._settings.reserved_output_tokens
        usage_percentage = total_tokens / max(available_tokens, 1)
        needs_compaction = usage_percentage >= self._settings.overflow_threshold

        if needs_compaction:
            logger.info(
                f"Token usage at {usage_percentage:.1%} of {available_tokens} "
                f"for model '{model_name}', compaction needed"
            )

        return TokenUsageInfo(
            total_tokens=total_tokens,
            context_limit=context_limit,
            usage_percentage=usage_percentage,
            needs_compaction=needs_compaction,
            available_tokens=available_tokens,
        )

    def prune_tool_outputs(self, messages: Sequence[Message]) -> PruneResult:
        """
        Mark stale tool outputs as pruned.

        Pass 1 prunes every oversized output unconditionally. Pass 2 walks
        newest to oldest, skips the protected recent user turns and prunes
        every output older than the newest PROTECT_TOKENS worth of tool
        output. Pass 2 only takes effect if the total recovered reaches
        MINIMUM_TOKENS.

        Args:
            messages: Full conversation history, oldest first

        Returns:
            PruneResult with counts for this call only
        """
        s = self._settings
        state = self._state
        state.is_compacting = True
        try:
            # Pass 1: oversized outputs, even inside the protected turns
            oversize_ids: List[str] = []
            oversize_tokens = 0
            for message in reversed(messages):
                if not self._is_prunable(message):
                    continue
                if len(message.content) > s.large_output_threshold:
                    oversize_ids.append(message.tool_id)
                    oversize_tokens += self._estimator.estimate(message.content)

            # Pass 2: standard sliding protection
            skip_ids = set(oversize_ids)
            candidate_ids: List[str] = []
            candidate_tokens = 0
            protected_tokens = 0
            user_turns = 0
            for message in reversed(messages):
                if message.role == MessageRole.USER:
                    user_turns += 1
                if user_turns < s.prune_protect_recent_turns:
                    continue
                if not self._is_prunable(message) or message.tool_id in skip_ids:
                    continue
                if message.tool_name and message.tool_name in s.prune_protected_tools:
                    continue

                tokens = self._estimator.estimate(message.content)
                protected_tokens += tokens
                if protected_tokens > s.prune_protect_tokens:
                    candidate_ids.append(message.tool_id)
                    candidate_tokens += tokens

            committed_ids = list(oversize_ids)
            committed_tokens = oversize_tokens
            if candidate_ids and oversize_tokens + candidate_tokens >= s.prune_minimum_tokens:
                committed_ids.extend(candidate_ids)
                committed_tokens += candidate_tokens
            elif candidate_ids:
                logger.debug(
                    f"Skipping pruning of {len(candidate_ids)} tool outputs: only "
                    f"{oversize_tokens + candidate_tokens} tokens recoverable "
                    f"(minimum {s.prune_minimum_tokens})"
                )

            if committed_ids:
                state.mark_pruned(committed_ids)
                state.record_compaction(committed_tokens)
                logger.info(
                    f"Pruned {len(committed_ids)} tool outputs "
                    f"({len(oversize_ids)} oversized), saved {committed_tokens} tokens"
                )

            remaining_tokens = sum(
                self._estimator.estimate(message.content)
                for message in messages
                if not state.is_pruned(message.tool_id)
            )
            return PruneResult(
                pruned_count=len(committed_ids),
                pruned_tokens=committed_tokens,
                remaining_tokens=remaining_tokens,
            )
        finally:
            state.is_compacting = False

    def _is_prunable(self, message: Message) -> bool:
        return (
            message.is_tool_output
            and bool(message.tool_id)
            and not self._state.is_pruned(message.tool_id)
        )

    def is_tool_pruned(self, tool_id: str) -> bool:
        return self._state.is_pruned(tool_id)

    @staticmethod
    def get_pruned_tool_content(tool_name: Optional[str], original: Optional[str] = None) -> str:
        """Placeholder that tells the model what was pruned and how to recover it."""
        if tool_name == "read_file" and original:
            lines = original.split("\n")
            file_path = lines[0] or "unknown file"
            return (
                f"[Previously read: {file_path} ({len(lines)} lines) - content pruned. "
                f"Use read_file to re-read if needed.]"
            )
        if tool_name in _SEARCH_TOOLS:
            return "[Previous search results pruned. Re-run search if needed.]"
        if tool_name == "run_command":
            return "[Previous command output pruned.]"
        if tool_name in _LISTING_TOOLS:
            return "[Previous directory listing pruned. Use ls_dir to re-list if needed.]"
        if tool_name in _EDIT_TOOLS:
            return "[Previous edit result - change was applied successfully.]"
        return f"[{tool_name or 'tool'} output pruned to save context space.]"

    def apply_pruned_placeholders(self, messages: Sequence[Message]) -> List[Message]:
        """Copy of *messages* with pruned tool outputs replaced by placeholders."""
        result: List[Message] = []
        for message in messages:
            if message.is_tool_output and self._state.is_pruned(message.tool_id):
                message = replace(
                    message,
                    content=self.get_pruned_tool_content(message.tool_name, message.content),
                )
            result.append(message)
        return result

    def reset(self) -> None:
        """Forget all pruning decisions (new conversation)."""
        self._state.reset()
