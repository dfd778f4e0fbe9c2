"""
Context Window Manager - Priority-based context assembly under a token budget.

Builds the context for one model request:
1. Pins the system prompt and the current input (never compressed or dropped)
2. Sizes a dynamic sliding window of recent turns from the remaining budget
3. Keeps recent turns verbatim (oversized tool/assistant messages compressed)
4. Summarizes older turns, or keeps as many of them as fit
5. Adds code snippets as code-aware compressed parts
6. Hands over-budget results to the BudgetOptimizer
7. Sorts parts into logical order (system, summary, history, current input)
"""

import logging
import math
from typing import Callable, List, Optional, Sequence

from smart_context.configuration.config import ContextSettings, get_settings
from smart_context.domain.exceptions import ContextValidationError
from smart_context.domain.model.context.context_part import (
    ContextBuildResult,
    ContextPart,
    PartKind,
    PartMetadata,
)
from smart_context.domain.model.context.message import CodeSnippet, Message, MessageRole
from smart_context.infrastructure.context.budget_optimizer import BudgetOptimizer
from smart_context.infrastructure.context.compressor import SUMMARY_HEADER, SmartCompressor
from smart_context.infrastructure.llm.token_estimator import TokenEstimator

logger = logging.getLogger(__name__)

VERY_RECENT_TURNS = 2
OLDER_HISTORY_TRIGGER_RATIO = 0.8
OLDER_HISTORY_FILL_RATIO = 0.9
SUMMARY_BUDGET_RATIO = 0.3

# Tie-break ordering, and the order of parts without a source message
_KIND_ORDER = {
    PartKind.SYSTEM: 0,
    PartKind.SUMMARY: 1,
    PartKind.USER: 2,
    PartKind.ASSISTANT: 3,
    PartKind.TOOL: 4,
    PartKind.CODE: 5,
}


def _history_sort_key(parts: Sequence[ContextPart]) -> Callable[[ContextPart], tuple]:
    """One total order for a whole list of history parts.

    Message parts sort by timestamp only when every one of them carries a
    timestamp, otherwise by input position. Parts without a source message
    (code) follow in kind order.
    """
    messages = [part for part in parts if part.metadata.sequence is not None]
    by_time = bool(messages) and all(part.timestamp is not None for part in messages)

    def key(part: ContextPart) -> tuple:
        sequence = part.metadata.sequence
        if sequence is None:
            return 1, 0.0, 0, _KIND_ORDER[part.kind]
        primary = part.timestamp.timestamp() if by_time else float(sequence)
        return 0, primary, sequence, _KIND_ORDER[part.kind]

    return key


class ContextWindowManager:
    """
    Assembles a prioritized, budget-bounded list of context parts.

    Stateless between calls apart from the injected estimator's cache, so
    one instance can serve one session for its whole lifetime.
    """

    def __init__(
        self,
        estimator: Optional[TokenEstimator] = None,
        compressor: Optional[SmartCompressor] = None,
        optimizer: Optional[BudgetOptimizer] = None,
        settings: Optional[ContextSettings] = None,
    ):
        self._settings = settings or get_settings()
        self._estimator = estimator or TokenEstimator(self._settings)
        self._compressor = compressor or SmartCompressor(self._settings)
        self._optimizer = optimizer or BudgetOptimizer(
            self._estimator, self._compressor, self._settings
        )

    @property
    def estimator(self) -> TokenEstimator:
        return self._estimator

    def calculate_available_tokens(self, max_tokens: int) -> int:
        """Input budget after reserving output space and the safety buffer."""
        s = self._settings
        base = max(s.min_context_tokens, max_tokens - s.reserved_output_tokens)
        return int(base * (1 - s.token_buffer_ratio))

    def calculate_dynamic_window(self, message_count: int, available_tokens: int) -> int:
        """Number of recent turns to keep; never grows when the budget shrinks."""
        s = self._settings
        ideal_turns = max(available_tokens, 0) // s.avg_tokens_per_message // 2
        return max(
            s.min_recent_turns,
            min(ideal_turns, s.max_recent_turns, math.ceil(message_count / 2)),
        )

    def build(
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
            system_prompt: System prompt (pinned)
            current_input: Current user input (pinned)
            max_tokens: Token budget, defaults to ``default_max_tokens``
            code_snippets: Optional workspace code offered as context

        Returns:
            ContextBuildResult; exceeds max_tokens only when the pinned parts
            alone do not fit (``over_budget`` is set)

        Raises:
            ContextValidationError: On a negative budget or non-Message entries
        """
        if max_tokens is None:
            max_tokens = self._settings.default_max_tokens
        self.validate(messages, max_tokens)
        snippets = list(code_snippets or [])

        system_part = ContextPart(
            kind=PartKind.SYSTEM,
            content=system_prompt,
            tokens=self._estimator.estimate(system_prompt),
            priority=self._settings.priorities.system_prompt,
            compressible=False,
        )
        input_part = ContextPart(
            kind=PartKind.USER,
            content=current_input,
            tokens=self._estimator.estimate(current_input),
            priority=self._settings.priorities.current_input,
            compressible=False,
            metadata=PartMetadata(is_recent=True),
        )
        pinned_tokens = system_part.tokens + input_part.tokens

        message_tokens = [self._estimator.estimate(m.content) for m in messages]
        snippet_tokens = [self._estimator.estimate(s.content) for s in snippets]
        original_tokens = pinned_tokens + sum(message_tokens) + sum(snippet_tokens)

        if original_tokens <= max_tokens:
            return self._build_verbatim(
                messages, message_tokens, snippets, snippet_tokens, system_part, input_part,
                original_tokens,
            )

        available = self.calculate_available_tokens(max_tokens)
        limit = min(max_tokens, available)
        # History is bounded by the caller's limit; the window size still
        # follows the available budget so it narrows monotonically.
        history_budget = max(limit - pinned_tokens, 0)
        window_budget = max(available - pinned_tokens, 0)

        history_parts, covered = self._select_history(
            messages, message_tokens, history_budget, window_budget
        )
        code_parts = [self._code_part(s) for s in snippets]

        parts = [system_part, *history_parts, *code_parts, input_part]
        removed_count = len(messages) - covered

        if sum(p.tokens for p in parts) > limit:
            optimized = self._optimizer.optimize(parts, limit)
            parts = optimized.parts
            removed_count += optimized.removed_count

        result = ContextBuildResult(
            parts=self._order_parts(parts, system_part, input_part),
            original_tokens=original_tokens,
            removed_count=removed_count,
            summary_generated=any(p.kind == PartKind.SUMMARY for p in parts),
        )
        result.over_budget = result.total_tokens > max_tokens
        if result.over_budget:
            logger.warning(
                f"Context still over budget after optimization: "
                f"{result.total_tokens}/{max_tokens} tokens "
                f"(pinned {pinned_tokens})"
            )
        else:
            logger.debug(
                f"Built context: {result.total_tokens}/{max_tokens} tokens, "
                f"{len(result.parts)} parts, ratio {result.compression_ratio:.2f}"
            )
        return result

    @staticmethod
    def validate(messages: Sequence[Message], max_tokens: int) -> None:
        """Reject a negative budget or non-Message history entries."""
        if max_tokens < 0:
            raise ContextValidationError("max_tokens", "must be >= 0", max_tokens)
        for index, message in enumerate(messages):
            if not isinstance(message, Message):
                raise ContextValidationError(
                    "messages",
                    f"entry {index} is {type(message).__name__}, expected Message",
                )

    def _history_priority(self, turn_index: int) -> int:
        if turn_index < VERY_RECENT_TURNS:
            return self._settings.priorities.recent_2_turns
        return self._settings.priorities.recent_4_turns

    def _build_verbatim(
        self,
        messages: Sequence[Message],
        message_tokens: List[int],
        snippets: List[CodeSnippet],
        snippet_tokens: List[int],
        system_part: ContextPart,
        input_part: ContextPart,
        original_tokens: int,
    ) -> ContextBuildResult:
        """Everything fits: return every message and snippet unmodified."""
        total = len(messages)
        history: List[ContextPart] = []
        for i, (message, tokens) in enumerate(zip(messages, message_tokens)):
            turn_index = (total - 1 - i) // 2
            history.append(
                ContextPart(
                    kind=PartKind(message.role.value),
                    content=message.content,
                    tokens=tokens,
                    priority=self._history_priority(turn_index),
                    compressible=turn_index >= VERY_RECENT_TURNS,
                    timestamp=message.timestamp,
                    metadata=PartMetadata(
                        turn_index=turn_index,
                        tool_name=message.tool_name,
                        is_recent=True,
                        sequence=i,
                    ),
                )
            )
        code_parts = [
            ContextPart(
                kind=PartKind.CODE,
                content=snippet.content,
                tokens=tokens,
                priority=self._settings.priorities.code_context,
                metadata=PartMetadata(file_path=snippet.file_path),
            )
            for snippet, tokens in zip(snippets, snippet_tokens)
        ]
        parts = [system_part, *history, *code_parts, input_part]
        return ContextBuildResult(
            parts=self._order_parts(parts, system_part, input_part),
            original_tokens=original_tokens,
        )

    def _select_history(
        self,
        messages: Sequence[Message],
        message_tokens: List[int],
        budget: int,
        window_budget: int,
    ) -> tuple[List[ContextPart], int]:
        """Pick history parts whose tokens never exceed *budget*.

        *window_budget* only sizes the sliding window. Returns the parts and
        the number of input messages they represent, directly or through a
        summary.
        """
        total = len(messages)
        if total == 0:
            return [], 0

        s = self._settings
        window = self.calculate_dynamic_window(total, window_budget)
        recent_count = min(window * 2, total)
        split = total - recent_count
        logger.debug(
            f"History split: window={window} turns, recent={recent_count}, older={split}, "
            f"budget={budget}"
        )

        parts: List[ContextPart] = []
        covered = 0
        used = 0
        recent_budget = budget * s.recent_token_ratio

        for i in range(total - 1, split - 1, -1):
            if used >= recent_budget:
                break
            message = messages[i]
            turn_index = (total - 1 - i) // 2
            very_recent = turn_index < VERY_RECENT_TURNS
            content, tokens = self._maybe_compress(message, message_tokens[i])
            # very recent parts cannot be removed later, so never overshoot here
            if used + tokens > budget:
                break
            parts.append(
                ContextPart(
                    kind=PartKind(message.role.value),
                    content=content,
                    tokens=tokens,
                    priority=self._history_priority(turn_index),
                    compressible=not very_recent,
                    timestamp=message.timestamp,
                    metadata=PartMetadata(
                        turn_index=turn_index,
                        tool_name=message.tool_name,
                        is_recent=True,
                        sequence=i,
                    ),
                )
            )
            covered += 1
            used += tokens

        older = messages[:split]
        if older and used < budget * OLDER_HISTORY_TRIGGER_RATIO:
            if s.compression_enabled and len(older) > s.summary_threshold_messages:
                summary_part = self._summary_part(older)
                if summary_part.tokens < (budget - used) * SUMMARY_BUDGET_RATIO:
                    parts.append(summary_part)
                    covered += len(older)
                    used += summary_part.tokens
                    logger.info(
                        f"Summarized {len(older)} older messages into "
                        f"{summary_part.tokens} tokens"
                    )
            else:
                for i in range(split - 1, -1, -1):
                    tokens = message_tokens[i]
                    if used + tokens > budget * OLDER_HISTORY_FILL_RATIO:
                        break
                    parts.append(self._older_part(messages[i], tokens, i))
                    covered += 1
                    used += tokens

        return parts, covered

    def _maybe_compress(self, message: Message, tokens: int) -> tuple[str, int]:
        """Compress oversized tool/assistant messages before they are counted."""
        s = self._settings
        if not s.compression_enabled:
            return message.content, tokens
        content = message.content
        if message.role == MessageRole.TOOL and tokens > s.tool_result_max_length / 4:
            content = self._compressor.compress_tool_result(content, s.tool_result_max_length)
        elif message.role == MessageRole.ASSISTANT and tokens > s.assistant_max_length / 4:
            content = self._compressor.compress_assistant_message(
                content, s.assistant_max_length
            )
        if content is message.content:
            return content, tokens
        return content, self._estimator.estimate(content)

    def _summary_part(self, older: Sequence[Message]) -> ContextPart:
        summary = self._compressor.compress_history_to_summary(older)
        content = f"{SUMMARY_HEADER}\n{summary}"
        return ContextPart(
            kind=PartKind.SUMMARY,
            content=content,
            tokens=self._estimator.estimate(content),
            priority=self._settings.priorities.compressed_summary,
            compressible=True,
            metadata=PartMetadata(summarized_messages=len(older)),
        )

    def _older_part(self, message: Message, tokens: int, sequence: int) -> ContextPart:
        priorities = self._settings.priorities
        priority = (
            priorities.tool_results
            if message.role == MessageRole.TOOL
            else priorities.older_history
        )
        return ContextPart(
            kind=PartKind(message.role.value),
            content=message.content,
            tokens=tokens,
            priority=priority,
            compressible=True,
            timestamp=message.timestamp,
            metadata=PartMetadata(tool_name=message.tool_name, sequence=sequence),
        )

    def _code_part(self, snippet: CodeSnippet) -> ContextPart:
        s = self._settings
        content = snippet.content
        if s.compression_enabled and len(content) > s.code_snippet_max_length:
            content = self._compressor.compress_code(content, s.code_snippet_max_length)
        return ContextPart(
            kind=PartKind.CODE,
            content=content,
            tokens=self._estimator.estimate(content),
            priority=s.priorities.code_context,
            compressible=True,
            metadata=PartMetadata(file_path=snippet.file_path),
        )

    @staticmethod
    def _order_parts(
        parts: Sequence[ContextPart],
        system_part: ContextPart,
        input_part: ContextPart,
    ) -> List[ContextPart]:
        """System prompt, summaries, history in time order, current input last."""
        summaries: List[ContextPart] = []
        history: List[ContextPart] = []
        for part in parts:
            if part is system_part or part is input_part:
                continue
            if part.kind == PartKind.SUMMARY:
                summaries.append(part)
            else:
                history.append(part)
        history.sort(key=_history_sort_key(history))
        ordered = [system_part, *summaries, *history]
        if any(part is input_part for part in parts):
            ordered.append(input_part)
        return ordered
