"""
Budget Optimizer - second-pass safety valve for over-budget contexts.

Works through parts from the lowest priority up. A compressible tool or
code part is first shrunk to 30% of its size; if that does not at least
halve it, the part is removed. Parts at or above the recent-turn priority
are never touched, so the result may still exceed the limit (best-effort).
"""

import logging
from dataclasses import replace
from typing import List, Optional, Sequence

from smart_context.configuration.config import ContextSettings, get_settings
from smart_context.domain.model.context.context_part import (
    ContextPart,
    OptimizationResult,
    PartKind,
    PartMetadata,
)
from smart_context.domain.model.context.message import Message, MessageRole
from smart_context.infrastructure.context.compressor import SUMMARY_HEADER, SmartCompressor
from smart_context.infrastructure.llm.token_estimator import TokenEstimator

logger = logging.getLogger(__name__)

COMPRESSION_TARGET_RATIO = 0.3
MIN_REDUCTION_RATIO = 0.5
SUMMARY_MIN_REMOVED = 3

_CONVERSATION_KINDS = {PartKind.USER: MessageRole.USER, PartKind.ASSISTANT: MessageRole.ASSISTANT}


def _removal_order(part: ContextPart) -> tuple[int, int]:
    # lowest priority first; within a priority, oldest source message first
    sequence = part.metadata.sequence
    return part.priority, sequence if sequence is not None else -1


class BudgetOptimizer:
    """Remove or compress low-priority parts until the budget is met."""

    def __init__(
        self,
        estimator: TokenEstimator,
        compressor: Optional[SmartCompressor] = None,
        settings: Optional[ContextSettings] = None,
    ):
        self._settings = settings or get_settings()
        self._estimator = estimator
        self._compressor = compressor or SmartCompressor(self._settings)

    def _try_compress(self, part: ContextPart) -> Optional[ContextPart]:
        """Shrink a compressible tool/code part; None unless it at least halves."""
        if not part.compressible or part.kind not in (PartKind.TOOL, PartKind.CODE):
            return None

        target = int(part.tokens * COMPRESSION_TARGET_RATIO * self._settings.chars_per_token)
        if part.kind == PartKind.TOOL:
            compressed = self._compressor.compress_tool_result(part.content, target)
        else:
            compressed = self._compressor.compress_code(part.content, target)

        new_tokens = self._estimator.estimate(compressed)
        if new_tokens < part.tokens * MIN_REDUCTION_RATIO:
            return replace(part, content=compressed, tokens=new_tokens)
        return None

    def optimize(self, parts: Sequence[ContextPart], max_tokens: int) -> OptimizationResult:
        """
        Bring *parts* under *max_tokens* where priorities allow.

        Args:
            parts: Candidate parts, in any order; not mutated
            max_tokens: Token limit to reach

        Returns:
            OptimizationResult with the surviving parts in ascending priority order
        """
        protected_priority = self._settings.priorities.recent_2_turns
        working: List[ContextPart] = sorted(parts, key=_removal_order)
        total = sum(part.tokens for part in working)
        removed: List[ContextPart] = []

        while total > max_tokens and working:
            part = working[0]
            if part.priority >= protected_priority:
                break

            compressed = self._try_compress(part)
            if compressed is not None:
                total -= part.tokens - compressed.tokens
                working[0] = compressed
                continue

            total -= part.tokens
            removed.append(working.pop(0))

        summary_generated = False
        if len(removed) > SUMMARY_MIN_REMOVED:
            summary_part = self._summarize_removed(removed)
            if summary_part is not None and total + summary_part.tokens <= max_tokens:
                working.insert(0, summary_part)
                total += summary_part.tokens
                summary_generated = True
                logger.info(
                    f"Synthesized summary of {len(removed)} removed parts "
                    f"({summary_part.tokens} tokens)"
                )

        if removed:
            logger.info(
                f"Budget optimizer removed {len(removed)} parts, total now {total}/{max_tokens} tokens"
            )

        return OptimizationResult(
            parts=working,
            removed_count=sum(part.metadata.message_count for part in removed),
            summary_generated=summary_generated,
        )

    def _summarize_removed(self, removed: Sequence[ContextPart]) -> Optional[ContextPart]:
        conversation = [part for part in removed if part.kind in _CONVERSATION_KINDS]
        if not conversation:
            return None

        conversation.sort(
            key=lambda p: p.metadata.sequence if p.metadata.sequence is not None else -1
        )
        summary = self._compressor.compress_history_to_summary(
            [Message(role=_CONVERSATION_KINDS[p.kind], content=p.content) for p in conversation]
        )
        content = f"{SUMMARY_HEADER}\n{summary}"
        return ContextPart(
            kind=PartKind.SUMMARY,
            content=content,
            tokens=self._estimator.estimate(content),
            priority=self._settings.priorities.compressed_summary,
            compressible=True,
            metadata=PartMetadata(summarized_messages=len(conversation)),
        )
