"""
Token Usage Tracker - Before/after token accounting for context builds.

Keeps a bounded in-memory history of usage records and aggregates them into
per-feature and per-kind statistics. Each record is also exported through
OpenTelemetry counters and histograms.
"""

import json
import logging
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from smart_context.domain.model.context.context_part import ContextBuildResult, PartKind
from smart_context.infrastructure.telemetry.metrics import (
    increment_counter,
    record_histogram_value,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_RECORDS = 1000

# Part kinds folded into the four message-type buckets
_KIND_BUCKETS = {
    PartKind.SYSTEM: "system",
    PartKind.SUMMARY: "system",
    PartKind.USER: "user",
    PartKind.CODE: "user",
    PartKind.ASSISTANT: "assistant",
    PartKind.TOOL: "tool",
}


class UsageFeature(str, Enum):
    """Product feature that issued the request."""

    CHAT = "chat"
    AUTOCOMPLETE = "autocomplete"
    AGENT = "agent"


@dataclass(frozen=True)
class TokenUsageRecord:
    """One recorded request."""

    feature: UsageFeature
    system_tokens: int
    user_tokens: int
    assistant_tokens: int
    tool_tokens: int
    tokens_before: int
    tokens_after: int
    preparation_time_ms: float = 0.0
    cache_hit: bool = False
    estimated_cost: Optional[float] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def total_input_tokens(self) -> int:
        return self.system_tokens + self.user_tokens + self.assistant_tokens + self.tool_tokens

    @property
    def tokens_saved(self) -> int:
        return self.tokens_before - self.tokens_after

    @property
    def savings_percentage(self) -> float:
        if self.tokens_before <= 0:
            return 0.0
        return self.tokens_saved / self.tokens_before * 100

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["feature"] = self.feature.value
        data["timestamp"] = self.timestamp.isoformat()
        data["total_input_tokens"] = self.total_input_tokens
        data["tokens_saved"] = self.tokens_saved
        data["savings_percentage"] = round(self.savings_percentage, 2)
        return data


@dataclass
class FeatureUsage:
    requests: int = 0
    tokens_used: int = 0
    tokens_saved: int = 0


@dataclass
class TokenUsageStats:
    """Aggregated usage over a period."""

    total_requests: int = 0
    total_tokens_used: int = 0
    total_tokens_saved: int = 0
    total_savings_percentage: float = 0.0
    by_feature: Dict[UsageFeature, FeatureUsage] = field(
        default_factory=lambda: {feature: FeatureUsage() for feature in UsageFeature}
    )
    by_message_type: Dict[str, int] = field(
        default_factory=lambda: {"system": 0, "user": 0, "assistant": 0, "tool": 0}
    )
    avg_preparation_time_ms: float = 0.0
    cache_hit_rate: float = 0.0
    total_estimated_cost: float = 0.0
    total_cost_saved: float = 0.0
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "total_tokens_used": self.total_tokens_used,
            "total_tokens_saved": self.total_tokens_saved,
            "total_savings_percentage": round(self.total_savings_percentage, 2),
            "by_feature": {
                feature.value: asdict(usage) for feature, usage in self.by_feature.items()
            },
            "by_message_type": dict(self.by_message_type),
            "avg_preparation_time_ms": round(self.avg_preparation_time_ms, 3),
            "cache_hit_rate": round(self.cache_hit_rate, 4),
            "total_estimated_cost": self.total_estimated_cost,
            "total_cost_saved": self.total_cost_saved,
            "period_start": self.period_start.isoformat() if self.period_start else None,
            "period_end": self.period_end.isoformat() if self.period_end else None,
        }


class TokenUsageTracker:
    """
    Records token usage per request and aggregates statistics.

    Disabled by default; a disabled tracker ignores every record call.
    Only the newest ``max_records`` records are kept.
    """

    def __init__(self, enabled: bool = False, max_records: int = DEFAULT_MAX_RECORDS):
        self._enabled = enabled
        self._records: Deque[TokenUsageRecord] = deque(maxlen=max_records)

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled

    def record_usage(
        self,
        feature: UsageFeature,
        system_tokens: int,
        user_tokens: int,
        assistant_tokens: int,
        tool_tokens: int,
        tokens_before: int,
        tokens_after: int,
        preparation_time_ms: float = 0.0,
        cache_hit: bool = False,
        estimated_cost: Optional[float] = None,
    ) -> Optional[TokenUsageRecord]:
        """
        Record one request.

        Returns:
            The stored record, or None when tracking is disabled
        """
        if not self._enabled:
            return None

        record = TokenUsageRecord(
            feature=feature,
            system_tokens=system_tokens,
            user_tokens=user_tokens,
            assistant_tokens=assistant_tokens,
            tool_tokens=tool_tokens,
            tokens_before=tokens_before,
            tokens_after=tokens_after,
            preparation_time_ms=preparation_time_ms,
            cache_hit=cache_hit,
            estimated_cost=estimated_cost,
        )
        self._records.append(record)
        self._export_metrics(record)
        logger.debug(
            f"Recorded {feature.value} usage: {record.tokens_after}/{record.tokens_before} "
            f"tokens ({record.savings_percentage:.1f}% saved)"
        )
        return record

    def record_build(
        self,
        result: ContextBuildResult,
        feature: UsageFeature = UsageFeature.CHAT,
        preparation_time_ms: float = 0.0,
        cache_hit: bool = False,
        estimated_cost: Optional[float] = None,
    ) -> Optional[TokenUsageRecord]:
        """Record a ContextBuildResult, bucketing its parts by message type."""
        buckets = {"system": 0, "user": 0, "assistant": 0, "tool": 0}
        for part in result.parts:
            buckets[_KIND_BUCKETS[part.kind]] += part.tokens
        return self.record_usage(
            feature=feature,
            system_tokens=buckets["system"],
            user_tokens=buckets["user"],
            assistant_tokens=buckets["assistant"],
            tool_tokens=buckets["tool"],
            tokens_before=result.original_tokens,
            tokens_after=result.total_tokens,
            preparation_time_ms=preparation_time_ms,
            cache_hit=cache_hit,
            estimated_cost=estimated_cost,
        )

    @staticmethod
    def _export_metrics(record: TokenUsageRecord) -> None:
        attributes = {"feature": record.feature.value}
        increment_counter(
            "smart_context.requests", "Context builds recorded", attributes=attributes
        )
        increment_counter(
            "smart_context.tokens.saved",
            "Tokens saved by context optimization",
            amount=max(record.tokens_saved, 0),
            attributes=attributes,
            unit="tokens",
        )
        record_histogram_value(
            "smart_context.tokens.input",
            "Input tokens per request after optimization",
            record.total_input_tokens,
            attributes=attributes,
            unit="tokens",
        )
        record_histogram_value(
            "smart_context.preparation_time",
            "Context preparation time",
            record.preparation_time_ms,
            attributes=attributes,
            unit="ms",
        )

    def get_stats(self, period_seconds: Optional[float] = None) -> TokenUsageStats:
        """
        Aggregate records, optionally limited to the last *period_seconds*.

        Args:
            period_seconds: Look-back window; all records when None

        Returns:
            TokenUsageStats (zero-valued when no record falls in the period)
        """
        now = datetime.now(timezone.utc)
        if period_seconds is not None:
            period_start = now - timedelta(seconds=period_seconds)
        elif self._records:
            period_start = self._records[0].timestamp
        else:
            period_start = now

        records = [r for r in self._records if r.timestamp >= period_start]
        stats = TokenUsageStats(period_start=period_start, period_end=now)
        if not records:
            stats.period_start = now
            return stats

        stats.total_requests = len(records)
        stats.total_tokens_used = sum(r.total_input_tokens for r in records)
        stats.total_tokens_saved = sum(r.tokens_saved for r in records)
        tokens_before = sum(r.tokens_before for r in records)
        if tokens_before > 0:
            stats.total_savings_percentage = stats.total_tokens_saved / tokens_before * 100

        for record in records:
            usage = stats.by_feature[record.feature]
            usage.requests += 1
            usage.tokens_used += record.total_input_tokens
            usage.tokens_saved += record.tokens_saved
            stats.by_message_type["system"] += record.system_tokens
            stats.by_message_type["user"] += record.user_tokens
            stats.by_message_type["assistant"] += record.assistant_tokens
            stats.by_message_type["tool"] += record.tool_tokens

        stats.avg_preparation_time_ms = sum(r.preparation_time_ms for r in records) / len(records)
        stats.cache_hit_rate = sum(1 for r in records if r.cache_hit) / len(records)
        stats.total_estimated_cost = sum(r.estimated_cost or 0.0 for r in records)
        if stats.total_tokens_used > 0:
            cost_per_token = stats.total_estimated_cost / stats.total_tokens_used
            stats.total_cost_saved = stats.total_tokens_saved * cost_per_token
        return stats

    def recent_records(self, count: int = 10) -> List[TokenUsageRecord]:
        """Newest *count* records, oldest first."""
        if count <= 0:
            return []
        return list(self._records)[-count:]

    def export_data(self) -> str:
        """JSON dump of all records plus aggregate statistics."""
        return json.dumps(
            {
                "records": [record.to_dict() for record in self._records],
                "stats": self.get_stats().to_dict(),
                "exported_at": datetime.now(timezone.utc).isoformat(),
            },
            indent=2,
        )

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)
