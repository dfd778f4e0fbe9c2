"""Unit tests for MessageBatchCompressor."""

import pytest

from conftest import prose
from smart_context.domain.model.context.message import Message, MessageRole
from smart_context.infrastructure.context.compressor import MessageBatchCompressor


def _tool_output(lines: int) -> str:
    return "\n".join(f"line {i:04d} of plain output text" for i in range(lines))


@pytest.fixture
def batch(settings, compressor):
    return MessageBatchCompressor(compressor=compressor, settings=settings)


@pytest.fixture
def mixed_messages():
    """Ten messages: a large tool output and a long reply early on."""
    messages = [
        Message(MessageRole.USER, prose(50, "u0")),
        Message(MessageRole.ASSISTANT, prose(50, "a1")),
        Message(MessageRole.TOOL, _tool_output(162), tool_name="run_command", tool_id="t2"),
        Message(MessageRole.ASSISTANT, prose(2000, "a3")),
    ]
    for i in range(4, 10):
        role = MessageRole.USER if i % 2 == 0 else MessageRole.ASSISTANT
        messages.append(Message(role, prose(50, f"m{i}")))
    return messages


@pytest.mark.unit
class TestCompressionWeight:
    """Test batch compression weights."""

    def test_role_ordering(self):
        """Test tool output outweighs assistant, which outweighs user."""
        weight = MessageBatchCompressor.compression_weight
        tool = weight(Message(MessageRole.TOOL, "x"), 3, 20)
        assistant = weight(Message(MessageRole.ASSISTANT, "x"), 3, 20)
        user = weight(Message(MessageRole.USER, "x"), 3, 20)
        system = weight(Message(MessageRole.SYSTEM, "x"), 3, 20)
        assert tool > assistant > user > system

    def test_recent_and_first_messages_damped(self):
        """Test the first exchange and the last six messages are preserved."""
        weight = MessageBatchCompressor.compression_weight
        message = Message(MessageRole.ASSISTANT, "x")
        middle = weight(message, 10, 20)
        assert weight(message, 1, 20) < middle
        assert weight(message, 15, 20) < middle

    def test_weight_always_positive(self):
        """Test every role and position stays eligible for compression."""
        weight = MessageBatchCompressor.compression_weight
        for role in MessageRole:
            for total in (1, 2, 7, 20):
                for index in range(total):
                    assert weight(Message(role, "x"), index, total) > 0


@pytest.mark.unit
class TestCompressMessages:
    """Test batch compression."""

    def test_under_budget_unchanged(self, batch, mixed_messages):
        """Test nothing changes when the total already fits."""
        assert batch.compress_messages(mixed_messages, 100_000) == mixed_messages

    def test_tool_output_compressed_first(self, batch, mixed_messages):
        """Test the heaviest message absorbs the reduction."""
        result = batch.compress_messages(mixed_messages, 3000)
        assert len(result[2].content) <= 600
        assert "(omitted" in result[2].content
        assert result[3] == mixed_messages[3]

    def test_order_and_metadata_preserved(self, batch, mixed_messages):
        """Test roles, order and tool metadata survive."""
        result = batch.compress_messages(mixed_messages, 3000)
        assert [m.role for m in result] == [m.role for m in mixed_messages]
        assert result[2].tool_id == "t2"
        assert result[2].tool_name == "run_command"
        assert result[0] is mixed_messages[0]

    def test_total_reduced(self, batch, mixed_messages):
        """Test the total shrinks towards the budget."""
        result = batch.compress_messages(mixed_messages, 3000)
        assert sum(len(m.content) for m in result) <= 3000

    def test_trim_floor(self, batch):
        """Test a message is never trimmed below the floor target."""
        message = Message(MessageRole.USER, prose(1000, "long"))
        result = batch.compress_messages([message], 10)
        content = result[0].content
        assert "(content summarized)" in content
        assert 100 <= len(content) < 1000

    def test_lowest_weight_message_still_compressed(self, batch):
        """Test a lone system message is compressed when it alone is over budget."""
        message = Message(MessageRole.SYSTEM, prose(1000, "rules"))
        result = batch.compress_messages([message], 10)
        assert "(content summarized)" in result[0].content
        assert len(result[0].content) < 1000

    def test_input_not_mutated(self, batch, mixed_messages):
        """Test the caller's list is left alone."""
        snapshot = list(mixed_messages)
        batch.compress_messages(mixed_messages, 3000)
        assert mixed_messages == snapshot


@pytest.mark.unit
class TestNeedsCompression:
    """Test the compression trigger."""

    def test_threshold(self, batch):
        """Test the char-based estimate against the limit."""
        messages = [Message(MessageRole.USER, "a" * 175), Message(MessageRole.ASSISTANT, "b" * 175)]
        assert batch.needs_compression(messages, 99)
        assert not batch.needs_compression(messages, 100)

    def test_empty(self, batch):
        """Test an empty list never needs compression."""
        assert not batch.needs_compression([], 0)
