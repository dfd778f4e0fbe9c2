"""Unit tests for TokenUsageTracker."""

import json
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from smart_context.domain.model.context.context_part import (
    ContextBuildResult,
    ContextPart,
    PartKind,
)
from smart_context.infrastructure.context.usage_tracker import (
    TokenUsageRecord,
    TokenUsageTracker,
    UsageFeature,
)


def _record(tracker: TokenUsageTracker, feature=UsageFeature.CHAT, **overrides):
    values = dict(
        system_tokens=100,
        user_tokens=200,
        assistant_tokens=300,
        tool_tokens=400,
        tokens_before=2000,
        tokens_after=1000,
    )
    values.update(overrides)
    return tracker.record_usage(feature, **values)


@pytest.fixture
def tracker():
    return TokenUsageTracker(enabled=True)


@pytest.mark.unit
class TestTokenUsageRecord:
    """Test derived record values."""

    def test_derived_values(self):
        """Test totals and savings."""
        record = TokenUsageRecord(
            feature=UsageFeature.CHAT,
            system_tokens=10,
            user_tokens=20,
            assistant_tokens=30,
            tool_tokens=40,
            tokens_before=200,
            tokens_after=100,
        )
        assert record.total_input_tokens == 100
        assert record.tokens_saved == 100
        assert record.savings_percentage == 50.0

    def test_zero_before(self):
        """Test savings percentage is zero for an empty request."""
        record = TokenUsageRecord(UsageFeature.CHAT, 0, 0, 0, 0, 0, 0)
        assert record.savings_percentage == 0.0

    def test_to_dict(self):
        """Test serialization of enum and timestamp."""
        record = TokenUsageRecord(UsageFeature.AGENT, 1, 2, 3, 4, 20, 10)
        data = record.to_dict()
        assert data["feature"] == "agent"
        assert data["tokens_saved"] == 10
        assert data["savings_percentage"] == 50.0
        assert isinstance(data["timestamp"], str)


@pytest.mark.unit
class TestTokenUsageTracker:
    """Test recording and aggregation."""

    def test_disabled_by_default(self):
        """Test a default tracker ignores records."""
        tracker = TokenUsageTracker()
        assert _record(tracker) is None
        assert len(tracker) == 0

    def test_set_enabled(self):
        """Test tracking can be switched on at runtime."""
        tracker = TokenUsageTracker()
        tracker.set_enabled(True)
        assert tracker.enabled
        assert _record(tracker) is not None
        assert len(tracker) == 1

    def test_bounded_history(self):
        """Test only the newest records are kept."""
        tracker = TokenUsageTracker(enabled=True, max_records=3)
        for i in range(5):
            _record(tracker, tokens_after=i)
        assert len(tracker) == 3
        assert [r.tokens_after for r in tracker.recent_records(10)] == [2, 3, 4]

    def test_recent_records(self, tracker):
        """Test the newest records are returned oldest first."""
        for i in range(4):
            _record(tracker, tokens_after=i)
        assert [r.tokens_after for r in tracker.recent_records(2)] == [2, 3]
        assert tracker.recent_records(0) == []

    def test_stats_aggregation(self, tracker):
        """Test totals, per-feature and per-type aggregation."""
        _record(tracker, preparation_time_ms=2.0, cache_hit=True, estimated_cost=0.01)
        _record(tracker, feature=UsageFeature.AGENT, preparation_time_ms=4.0)

        stats = tracker.get_stats()

        assert stats.total_requests == 2
        assert stats.total_tokens_used == 2000
        assert stats.total_tokens_saved == 2000
        assert stats.total_savings_percentage == 50.0
        assert stats.by_feature[UsageFeature.CHAT].requests == 1
        assert stats.by_feature[UsageFeature.AGENT].tokens_saved == 1000
        assert stats.by_feature[UsageFeature.AUTOCOMPLETE].requests == 0
        assert stats.by_message_type == {
            "system": 200,
            "user": 400,
            "assistant": 600,
            "tool": 800,
        }
        assert stats.avg_preparation_time_ms == 3.0
        assert stats.cache_hit_rate == 0.5
        assert stats.total_estimated_cost == pytest.approx(0.01)
        assert stats.total_cost_saved == pytest.approx(0.01)

    def test_stats_period(self, tracker):
        """Test records older than the period are excluded."""
        _record(tracker)
        old = tracker.recent_records(1)[0]
        tracker._records[0] = replace(
            old, timestamp=datetime.now(timezone.utc) - timedelta(hours=2)
        )
        _record(tracker)

        assert tracker.get_stats(period_seconds=3600).total_requests == 1
        assert tracker.get_stats().total_requests == 2

    def test_empty_stats(self, tracker):
        """Test an empty tracker yields zeroed statistics."""
        stats = tracker.get_stats()
        assert stats.total_requests == 0
        assert stats.total_savings_percentage == 0.0
        assert stats.to_dict()["by_feature"]["chat"]["requests"] == 0

    def test_record_build_buckets(self, tracker):
        """Test summary parts count as system and code parts as user."""
        kinds = [
            PartKind.SYSTEM,
            PartKind.SUMMARY,
            PartKind.USER,
            PartKind.CODE,
            PartKind.ASSISTANT,
            PartKind.TOOL,
        ]
        result = ContextBuildResult(
            parts=[ContextPart(kind=k, content="", tokens=10, priority=50) for k in kinds],
            original_tokens=100,
        )

        record = tracker.record_build(result, feature=UsageFeature.AUTOCOMPLETE)

        assert record.system_tokens == 20
        assert record.user_tokens == 20
        assert record.assistant_tokens == 10
        assert record.tool_tokens == 10
        assert record.tokens_before == 100
        assert record.tokens_after == 60

    def test_export_data(self, tracker):
        """Test the export is valid JSON with records and stats."""
        _record(tracker)
        data = json.loads(tracker.export_data())
        assert len(data["records"]) == 1
        assert data["stats"]["total_requests"] == 1
        assert "exported_at" in data

    def test_clear(self, tracker):
        """Test clear drops every record."""
        _record(tracker)
        tracker.clear()
        assert len(tracker) == 0
