"""
Compaction State - Session-scoped bookkeeping for tool output pruning.

Lives as long as the conversation. ``pruned_tool_ids`` only grows until
``reset()`` is called on a new-conversation boundary.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Set


@dataclass
class CompactionState:
    """Per-session pruning state."""

    is_compacting: bool = False
    last_compaction_time: Optional[datetime] = None
    total_pruned_tokens: int = 0
    compaction_count: int = 0
    pruned_tool_ids: Set[str] = field(default_factory=set)

    def is_pruned(self, tool_id: Optional[str]) -> bool:
        return tool_id is not None and tool_id in self.pruned_tool_ids

    def mark_pruned(self, tool_ids: Iterable[str]) -> None:
        self.pruned_tool_ids.update(tool_ids)

    def record_compaction(self, pruned_tokens: int) -> None:
        """Account for one committed pruning pass."""
        self.total_pruned_tokens += pruned_tokens
        self.compaction_count += 1
        self.last_compaction_time = datetime.now(timezone.utc)

    def snapshot(self) -> "CompactionState":
        """Copy that does not share the pruned id set."""
        return CompactionState(
            is_compacting=self.is_compacting,
            last_compaction_time=self.last_compaction_time,
            total_pruned_tokens=self.total_pruned_tokens,
            compaction_count=self.compaction_count,
            pruned_tool_ids=set(self.pruned_tool_ids),
        )

    def reset(self) -> None:
        """Reset state for a new conversation."""
        self.is_compacting = False
        self.last_compaction_time = None
        self.total_pruned_tokens = 0
        self.compaction_count = 0
        self.pruned_tool_ids.clear()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_compacting": self.is_compacting,
            "last_compaction_time": (
                self.last_compaction_time.isoformat() if self.last_compaction_time else None
            ),
            "total_pruned_tokens": self.total_pruned_tokens,
            "compaction_count": self.compaction_count,
            "pruned_tool_count": len(self.pruned_tool_ids),
        }


@dataclass(frozen=True)
class TokenUsageInfo:
    """Session-level token usage against a model's absolute context limit."""

    total_tokens: int
    context_limit: int
    usage_percentage: float
    needs_compaction: bool
    available_tokens: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_tokens": self.total_tokens,
            "context_limit": self.context_limit,
            "usage_percentage": round(self.usage_percentage, 4),
            "needs_compaction": self.needs_compaction,
            "available_tokens": self.available_tokens,
        }


@dataclass(frozen=True)
class PruneResult:
    """Outcome of one pruning call."""

    pruned_count: int = 0
    pruned_tokens: int = 0
    remaining_tokens: int = 0
