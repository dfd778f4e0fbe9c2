"""
Context parts - the allocator's unit of selection.

A context part is one fragment of the assembled prompt (system prompt,
a history message, a tool output, a code snippet or a synthetic summary)
together with its token estimate and priority.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class PartKind(str, Enum):
    """Kind of a context part."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    CODE = "code"
    SUMMARY = "summary"


@dataclass(frozen=True)
class PartMetadata:
    """Provenance of a context part.

    ``sequence`` is the index of the source message in the input list.
    ``summarized_messages`` is set on summary parts to the number of
    messages the summary stands for.
    """

    turn_index: Optional[int] = None
    tool_name: Optional[str] = None
    file_path: Optional[str] = None
    is_recent: bool = False
    sequence: Optional[int] = None
    summarized_messages: Optional[int] = None

    @property
    def message_count(self) -> int:
        """Number of source messages lost if this part is removed."""
        if self.summarized_messages is not None:
            return self.summarized_messages
        return 1


@dataclass
class ContextPart:
    """A prioritized fragment of the final context."""

    kind: PartKind
    content: str
    tokens: int
    priority: int
    compressible: bool = True
    timestamp: Optional[datetime] = None
    metadata: PartMetadata = field(default_factory=PartMetadata)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "tokens": self.tokens,
            "priority": self.priority,
            "compressible": self.compressible,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "turn_index": self.metadata.turn_index,
            "tool_name": self.metadata.tool_name,
            "file_path": self.metadata.file_path,
            "is_recent": self.metadata.is_recent,
        }


@dataclass
class ContextBuildResult:
    """Result of one allocation call.

    ``total_tokens`` and ``compression_ratio`` are derived from ``parts`` so
    the accounting can never drift from the returned content.
    ``removed_count`` counts dropped input: messages outside the window that
    no window summary covers, plus every part the optimizer removed. A
    removed summary counts for all the messages it stood for; a removed
    code snippet counts as one.
    """

    parts: List[ContextPart] = field(default_factory=list)
    original_tokens: int = 0
    removed_count: int = 0
    summary_generated: bool = False
    over_budget: bool = False

    @property
    def total_tokens(self) -> int:
        return sum(part.tokens for part in self.parts)

    @property
    def compression_ratio(self) -> float:
        return self.total_tokens / max(self.original_tokens, 1)

    def parts_of_kind(self, kind: PartKind) -> List[ContextPart]:
        return [part for part in self.parts if part.kind == kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_tokens": self.total_tokens,
            "original_tokens": self.original_tokens,
            "compression_ratio": round(self.compression_ratio, 4),
            "removed_count": self.removed_count,
            "summary_generated": self.summary_generated,
            "over_budget": self.over_budget,
            "parts": [part.to_dict() for part in self.parts],
        }


@dataclass
class OptimizationResult:
    """Output of the second-pass budget optimizer.

    ``removed_count`` is in source messages: a removed summary part counts
    for every message it summarized.
    """

    parts: List[ContextPart]
    removed_count: int = 0
    summary_generated: bool = False

    @property
    def total_tokens(self) -> int:
        return sum(part.tokens for part in self.parts)
