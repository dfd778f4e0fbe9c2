"""Unit tests for ToolOutputPruner."""

import logging

import pytest

from conftest import prose
from smart_context.domain.model.context.compaction_state import CompactionState
from smart_context.domain.model.context.message import Message, MessageRole
from smart_context.infrastructure.context.compaction import ToolOutputPruner


def _user(text: str = "next step please") -> Message:
    return Message(MessageRole.USER, text)


def _assistant(text: str = "done") -> Message:
    return Message(MessageRole.ASSISTANT, text)


def _tool(tool_id: str, content: str, tool_name: str = "run_command") -> Message:
    return Message(MessageRole.TOOL, content, tool_name=tool_name, tool_id=tool_id)


def _tool_history(tool_count: int, tool_name: str = "run_command"):
    """Old tool outputs of 2858 tokens each, followed by three recent user turns."""
    messages = [_user("start")]
    messages.extend(
        _tool(f"t{i}", prose(10_000, f"out{i}"), tool_name) for i in range(tool_count)
    )
    for _ in range(3):
        messages.extend([_user(), _assistant()])
    return messages


@pytest.fixture
def pruner(settings, estimator):
    return ToolOutputPruner(estimator=estimator, state=CompactionState(), settings=settings)


@pytest.mark.unit
class TestCheckNeedsCompaction:
    """Test session overflow detection."""

    def test_over_threshold(self, pruner):
        """Test 7000 tokens overflow a 16k model."""
        messages = [_user("a" * 12_250), _assistant("b" * 12_250)]
        usage = pruner.check_needs_compaction(messages, "gpt-3.5-turbo")

        assert usage.total_tokens == 7000
        assert usage.context_limit == 16_385
        assert usage.available_tokens == 12_385
        assert usage.usage_percentage == pytest.approx(7000 / 12_385)
        assert usage.needs_compaction

    def test_under_threshold(self, pruner):
        """Test 6000 tokens stay below the threshold."""
        messages = [_user("a" * 10_500), _assistant("b" * 10_500)]
        assert not pruner.check_needs_compaction(messages, "gpt-3.5-turbo").needs_compaction

    def test_large_model(self, pruner):
        """Test the same history is tiny for a 200k model."""
        messages = [_user("a" * 12_250), _assistant("b" * 12_250)]
        usage = pruner.check_needs_compaction(messages, "claude-3.5-sonnet-20241022")
        assert usage.context_limit == 200_000
        assert not usage.needs_compaction

    def test_empty_history(self, pruner):
        """Test an empty history never needs compaction."""
        usage = pruner.check_needs_compaction([], "gpt-4o")
        assert usage.total_tokens == 0
        assert not usage.needs_compaction


@pytest.mark.unit
class TestOversizePruning:
    """Test the unconditional pass for oversized outputs."""

    def test_oversized_output_pruned_in_recent_turns(self, pruner):
        """Test an 80k-char read is pruned even inside the protected turns."""
        big = _tool("t1", "src/big.py\n" + prose(80_000), tool_name="read_file")
        messages = [_user("read the file"), big, _assistant("here it is"), _user("thanks")]

        result = pruner.prune_tool_outputs(messages)

        assert result.pruned_count == 1
        assert result.pruned_tokens > 22_000
        assert pruner.is_tool_pruned("t1")
        assert pruner.state.compaction_count == 1
        assert pruner.state.total_pruned_tokens == result.pruned_tokens
        assert pruner.state.last_compaction_time is not None
        assert not pruner.state.is_compacting

    def test_oversized_output_below_minimum(self, pruner):
        """Test oversized outputs are pruned even when recovery is small."""
        messages = [_user(), _tool("t1", prose(51_000)), _assistant()]
        result = pruner.prune_tool_outputs(messages)

        assert result.pruned_count == 1
        assert result.pruned_tokens < 15_000
        assert pruner.is_tool_pruned("t1")

    def test_idempotent(self, pruner):
        """Test an already-pruned output is not pruned again."""
        messages = [_user(), _tool("t1", prose(80_000)), _assistant()]
        pruner.prune_tool_outputs(messages)

        second = pruner.prune_tool_outputs(messages)

        assert second.pruned_count == 0
        assert second.pruned_tokens == 0
        assert pruner.state.compaction_count == 1

    def test_remaining_excludes_pruned(self, pruner, estimator):
        """Test remaining tokens no longer count pruned outputs."""
        messages = [_user("hi"), _tool("t1", prose(80_000)), _assistant("ok")]
        result = pruner.prune_tool_outputs(messages)
        assert result.remaining_tokens == estimator.estimate("hi") + estimator.estimate("ok")


@pytest.mark.unit
class TestSlidingProtection:
    """Test the standard pruning pass."""

    def test_prunes_beyond_protected_window(self, pruner):
        """Test outputs older than the newest 20k tokens are pruned."""
        messages = _tool_history(15)
        result = pruner.prune_tool_outputs(messages)

        assert result.pruned_count == 9
        assert result.pruned_tokens == 9 * 2858
        for i in range(9):
            assert pruner.is_tool_pruned(f"t{i}")
        for i in range(9, 15):
            assert not pruner.is_tool_pruned(f"t{i}")

    def test_aborts_below_minimum(self, pruner, caplog):
        """Test nothing is pruned when recovery stays below the minimum."""
        messages = _tool_history(10)
        with caplog.at_level(logging.DEBUG):
            result = pruner.prune_tool_outputs(messages)

        assert result.pruned_count == 0
        assert pruner.state.compaction_count == 0
        assert not pruner.state.pruned_tool_ids
        assert "Skipping pruning" in caplog.text

    def test_protected_tools_never_pruned(self, pruner):
        """Test allowlisted tools survive the standard pass."""
        messages = _tool_history(15, tool_name="search_pathnames_only")
        result = pruner.prune_tool_outputs(messages)

        assert result.pruned_count == 0
        assert not pruner.state.pruned_tool_ids

    def test_recent_turns_protected(self, pruner):
        """Test outputs within the last three user turns are kept."""
        messages = [_user("start")]
        for i in range(15):
            messages.extend([_user(), _tool(f"t{i}", prose(10_000, f"out{i}"))])

        pruner.prune_tool_outputs(messages)

        assert not pruner.is_tool_pruned("t14")
        assert not pruner.is_tool_pruned("t13")
        assert pruner.is_tool_pruned("t0")

    def test_messages_without_tool_id_ignored(self, pruner):
        """Test tool messages without an id cannot be pruned."""
        messages = [_user(), Message(MessageRole.TOOL, prose(80_000)), _assistant()]
        assert pruner.prune_tool_outputs(messages).pruned_count == 0


@pytest.mark.unit
class TestPlaceholders:
    """Test pruned-output placeholders."""

    @pytest.mark.parametrize(
        "tool_name, expected",
        [
            ("search_for_files", "[Previous search results pruned. Re-run search if needed.]"),
            ("run_command", "[Previous command output pruned.]"),
            (
                "ls_dir",
                "[Previous directory listing pruned. Use ls_dir to re-list if needed.]",
            ),
            ("edit_file", "[Previous edit result - change was applied successfully.]"),
            ("custom_tool", "[custom_tool output pruned to save context space.]"),
            (None, "[tool output pruned to save context space.]"),
        ],
    )
    def test_tool_specific_text(self, tool_name, expected):
        """Test each tool family gets its own recovery hint."""
        assert ToolOutputPruner.get_pruned_tool_content(tool_name) == expected

    def test_read_file_mentions_path(self):
        """Test read_file placeholders keep the path and line count."""
        content = ToolOutputPruner.get_pruned_tool_content(
            "read_file", "src/app.py\nline one\nline two"
        )
        assert content == (
            "[Previously read: src/app.py (3 lines) - content pruned. "
            "Use read_file to re-read if needed.]"
        )

    def test_apply_pruned_placeholders(self, pruner):
        """Test pruned outputs are swapped out and everything else kept."""
        big = _tool("t1", "src/big.py\n" + prose(80_000), tool_name="read_file")
        small = _tool("t2", "ok", tool_name="run_command")
        messages = [_user(), big, small, _assistant()]
        pruner.prune_tool_outputs(messages)

        visible = pruner.apply_pruned_placeholders(messages)

        assert visible[1].content.startswith("[Previously read: src/big.py (2 lines)")
        assert visible[1].tool_id == "t1"
        assert visible[2] is small
        assert visible[0] is messages[0]
        assert messages[1] is big

    def test_reset_forgets_decisions(self, pruner):
        """Test reset clears pruned ids and counters."""
        pruner.prune_tool_outputs([_user(), _tool("t1", prose(80_000)), _assistant()])
        pruner.reset()

        assert not pruner.is_tool_pruned("t1")
        assert pruner.state.compaction_count == 0
        assert pruner.state.total_pruned_tokens == 0
