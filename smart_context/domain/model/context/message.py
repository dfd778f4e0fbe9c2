"""Input records supplied by the caller."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class MessageRole(str, Enum):
    """Conversation message role."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class Message:
    """A single conversation message.

    Owned by the caller and borrowed by the allocator for one call.
    ``tool_name`` and ``tool_id`` are only meaningful for ``TOOL`` messages.
    """

    role: MessageRole
    content: str
    timestamp: Optional[datetime] = None
    tool_name: Optional[str] = None
    tool_id: Optional[str] = None

    @property
    def is_tool_output(self) -> bool:
        return self.role == MessageRole.TOOL


@dataclass(frozen=True)
class CodeSnippet:
    """A piece of workspace code offered as context (open file, selection)."""

    file_path: str
    content: str
