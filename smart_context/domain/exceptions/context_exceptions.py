"""
Context allocator exceptions.

The allocator is a pure computation over well-typed input, so it never
raises for over-budget results or unknown model names. These exceptions
only cover malformed calls.

Exception Hierarchy:
    ContextAllocatorError (base)
    └── ContextValidationError  - Malformed arguments (negative budget, bad messages)
"""

from typing import Any, Optional


class ContextAllocatorError(Exception):
    """
    Base exception for all context allocator errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
    """

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ContextValidationError(ContextAllocatorError):
    """
    Raised when an allocation call receives malformed arguments.

    Attributes:
        field: Name of the offending argument
        value: The rejected value (omitted from the message for large inputs)
    """

    def __init__(self, field: str, reason: str, value: Any = None) -> None:
        self.field = field
        self.value = value
        super().__init__(
            f"Invalid {field}: {reason}",
            details={"field": field, "reason": reason},
        )
