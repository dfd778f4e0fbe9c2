"""
Content-aware compression for context parts.

All transforms are stateless and share one contract: the result is never
longer than the input, and is best-effort no longer than the target size.
Callers must re-estimate tokens after compressing rather than trust the
target.

- SmartCompressor: per-kind transforms (history summary, tool output,
  assistant reply, source code, prose).
- MessageBatchCompressor: shrinks a whole message list to a character
  budget, compressing the most expendable messages first.
"""

import logging
import math
import re
from dataclasses import replace
from typing import List, Optional, Sequence

from smart_context.configuration.config import ContextSettings, get_settings
from smart_context.domain.model.context.message import Message, MessageRole

logger = logging.getLogger(__name__)

# Keyword extraction for history summaries
_TECH_TERMS = re.compile(
    r"\b(?:function|class|component|service|api|database|error|bug|feature|test|deploy)\b",
    re.IGNORECASE,
)
_FILE_TYPES = re.compile(r"\.(?:ts|js|tsx|jsx|py|java|go|rs|vue|css|html|json|md)\b")
MAX_KEYWORDS = 10
SHORT_QUESTION_CHARS = 100

_FENCED_BLOCK = re.compile(r"```[\s\S]*?```")
_PLACEHOLDER = "[CODE_BLOCK_{}]"
_PLACEHOLDER_RE = re.compile(r"\[CODE_BLOCK_\d+\]")

CODE_TRUNCATED_SUFFIX = "\n... (code truncated)\n```"
DECLARATIONS_TRUNCATED_SUFFIX = "\n// ... (code truncated)"
TEXT_SUMMARIZED_MARKER = "\n... (content summarized) ...\n"
SUMMARY_HEADER = "[Earlier conversation summary]"

# Batch compression weights (higher = compressed first)
ROLE_WEIGHT_MULTIPLIERS = {
    MessageRole.SYSTEM: 0.01,
    MessageRole.USER: 0.3,
    MessageRole.ASSISTANT: 8.0,
    MessageRole.TOOL: 20.0,
}
PRESERVE_RECENT_MESSAGES = 6
TRIM_TO_LENGTH = 100
SUMMARY_THRESHOLD_CHARS = 500
_CODE_HINTS = ("function", "class", "```")


class SmartCompressor:
    """Stateless per-kind compression transforms."""

    def __init__(self, settings: Optional[ContextSettings] = None):
        self._settings = settings or get_settings()
        self._path_re = re.compile(self._settings.path_pattern)
        self._declaration_res = [
            re.compile(p) for p in self._settings.code_declaration_patterns
        ]

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def compress_history_to_summary(self, messages: Sequence[Message]) -> str:
        """Summarize older turns from the user's side only.

        Assistant and tool text is ignored so the summary never reads like
        an unfinished action the model should resume.
        """
        if not messages:
            return ""

        topics: dict[str, None] = {}
        questions: List[str] = []
        for message in messages:
            if message.role != MessageRole.USER:
                continue
            for keyword in self._extract_keywords(message.content):
                topics.setdefault(keyword, None)
            if len(message.content) < SHORT_QUESTION_CHARS:
                questions.append(message.content.strip())

        footer = f"(compressed {len(messages)} earlier messages)"
        header = ""
        if questions:
            header = f"User questions: {'; '.join(questions[-2:])}"
        elif topics:
            header = f"Topics: {', '.join(list(topics)[:3])}"

        if not header:
            return footer
        header = self.truncate(header, max(self._settings.summary_max_length - len(footer) - 1, 0))
        return f"{header}\n{footer}" if header else footer

    @staticmethod
    def _extract_keywords(text: str) -> List[str]:
        keywords = [match.group(0).lower() for match in _TECH_TERMS.finditer(text)]
        keywords.extend(match.group(0) for match in _FILE_TYPES.finditer(text))
        return list(dict.fromkeys(keywords))[:MAX_KEYWORDS]

    # ------------------------------------------------------------------
    # Tool output
    # ------------------------------------------------------------------

    def _is_important_line(self, line: str) -> bool:
        lowered = line.lower()
        if "error" in lowered or "warning" in lowered:
            return True
        if self._path_re.search(line):
            return True
        return line.strip().startswith(("•", "-", "*"))

    def compress_tool_result(self, content: str, max_length: int) -> str:
        """Keep error/path/bullet lines, fill with leading lines, mark omissions."""
        if len(content) <= max_length:
            return content

        lines = content.split("\n")
        kept: List[str] = []
        current = 0
        for line in lines:
            if self._is_important_line(line) or current < max_length * 0.3:
                kept.append(line)
                current += len(line)
            if current >= max_length * 0.8:
                break

        result = "\n".join(kept)
        omitted = len(lines) - len(kept)
        if omitted > 0:
            marker = f"\n... (omitted {omitted} lines)"
            result = result[: max(max_length - len(marker), 0)] + marker
        return result[:max_length]

    # ------------------------------------------------------------------
    # Assistant replies
    # ------------------------------------------------------------------

    def compress_assistant_message(self, content: str, max_length: int) -> str:
        """Truncate prose to 60% of the target and share the rest among code blocks.

        Fenced blocks are either kept whole, truncated with a closing fence
        re-appended, or dropped; a fence marker is never split.
        """
        if len(content) <= max_length:
            return content

        blocks: List[str] = []

        def _stash(match: re.Match) -> str:
            blocks.append(match.group(0))
            return _PLACEHOLDER.format(len(blocks) - 1)

        text = _FENCED_BLOCK.sub(_stash, content)

        prose_limit = int(max_length * 0.6)
        if len(text) > prose_limit:
            text = text[: self._safe_cut(text, prose_limit)] + "..."

        surviving = [i for i in range(len(blocks)) if _PLACEHOLDER.format(i) in text]
        remaining = max_length - len(text)
        per_block = remaining // max(len(surviving), 1)

        for index in surviving:
            block = blocks[index]
            if len(block) > per_block:
                block = self._truncate_block(block, per_block)
            text = text.replace(_PLACEHOLDER.format(index), block, 1)

        if len(text) > max_length:
            text = text[:max_length]
        return text

    @staticmethod
    def _safe_cut(text: str, limit: int) -> int:
        """Largest cut <= limit that is not inside a placeholder or a backtick run."""
        cut = limit
        for match in _PLACEHOLDER_RE.finditer(text):
            if match.start() < cut < match.end():
                cut = match.start()
                break
        while 0 < cut < len(text) and text[cut] == "`" and text[cut - 1] == "`":
            cut -= 1
        return cut

    @staticmethod
    def _truncate_block(block: str, budget: int) -> str:
        newline = block.find("\n")
        opening = block if newline == -1 else block[: newline + 1]
        if budget < len(opening) + len(CODE_TRUNCATED_SUFFIX):
            return ""
        return block[: budget - len(CODE_TRUNCATED_SUFFIX)] + CODE_TRUNCATED_SUFFIX

    # ------------------------------------------------------------------
    # Code and prose
    # ------------------------------------------------------------------

    def compress_code(self, content: str, max_length: int) -> str:
        """Keep only declaration, import, export and visibility lines."""
        if len(content) <= max_length:
            return content

        kept = [
            line
            for line in content.split("\n")
            if any(pattern.search(line) for pattern in self._declaration_res)
        ]
        summary = "\n".join(kept)
        if not summary:
            return self.truncate(content, max_length)
        if len(summary) > max_length:
            summary = summary[: max(max_length - 30, 0)] + DECLARATIONS_TRUNCATED_SUFFIX
        if len(summary) >= len(content):
            return self.truncate(content, max_length)
        return summary

    def compress_text(self, content: str, max_length: int) -> str:
        """Head 60% + tail 20% of the target, joined by a marker."""
        if len(content) <= max_length:
            return content

        keep_start = int(max_length * 0.6)
        keep_end = int(max_length * 0.2)
        tail = content[len(content) - keep_end :] if keep_end else ""
        summary = f"{content[:keep_start]}{TEXT_SUMMARIZED_MARKER}{tail}"
        if len(summary) >= len(content):
            return self.truncate(content, max_length)
        return summary

    @staticmethod
    def truncate(text: str, max_length: int) -> str:
        if len(text) <= max_length:
            return text
        if max_length < 3:
            return text[:max_length]
        return text[: max_length - 3] + "..."


class MessageBatchCompressor:
    """Compress a message list to a total character budget.

    Messages are compressed in descending weight order. Tool output and
    assistant replies weigh most; system messages, the first exchange and
    the most recent messages weigh least.
    """

    def __init__(
        self,
        compressor: Optional[SmartCompressor] = None,
        settings: Optional[ContextSettings] = None,
    ):
        self._settings = settings or get_settings()
        self._compressor = compressor or SmartCompressor(self._settings)

    @staticmethod
    def compression_weight(message: Message, index: int, total: int) -> float:
        weight = 1.0
        recency = (total - index) / total
        weight *= 1 - recency * 0.5
        weight *= ROLE_WEIGHT_MULTIPLIERS.get(message.role, 1.0)
        if index >= total - PRESERVE_RECENT_MESSAGES:
            weight *= 0.1
        if index <= 1:
            weight *= 0.1
        return weight

    def _compress_one(self, message: Message, target: int) -> str:
        content = message.content
        if len(content) <= target:
            return content
        if message.role == MessageRole.TOOL:
            return self._compressor.compress_tool_result(content, target)
        if message.role == MessageRole.ASSISTANT:
            return self._compressor.compress_assistant_message(content, target)
        has_code = any(hint in content for hint in _CODE_HINTS)
        if len(content) > SUMMARY_THRESHOLD_CHARS and not has_code:
            return self._compressor.compress_text(content, target)
        return self._compressor.truncate(content, target)

    def compress_messages(
        self, messages: Sequence[Message], max_total_chars: int
    ) -> List[Message]:
        """Return a copy of *messages* shrunk towards *max_total_chars*.

        Order is preserved. Each message is trimmed no further than
        ``TRIM_TO_LENGTH`` characters, so the budget is best-effort.
        """
        result = list(messages)
        current_total = sum(len(message.content) for message in result)
        if current_total <= max_total_chars:
            return result

        to_remove = current_total - max_total_chars
        removed = 0
        total = len(result)
        order = sorted(
            range(total),
            key=lambda i: self.compression_weight(result[i], i, total),
            reverse=True,
        )

        for index in order:
            if removed >= to_remove:
                break
            message = result[index]
            target = max(TRIM_TO_LENGTH, len(message.content) - (to_remove - removed))
            compressed = self._compress_one(message, target)
            removed += len(message.content) - len(compressed)
            if compressed != message.content:
                result[index] = replace(message, content=compressed)

        logger.debug(
            f"Batch compression removed {removed} of {to_remove} requested chars "
            f"across {total} messages"
        )
        return result

    def needs_compression(self, messages: Sequence[Message], max_tokens: int) -> bool:
        total_chars = sum(len(message.content) for message in messages)
        return math.ceil(total_chars / self._settings.chars_per_token) > max_tokens
