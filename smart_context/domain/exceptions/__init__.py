"""
Domain exceptions for the context allocator.
"""

from smart_context.domain.exceptions.context_exceptions import (
    ContextAllocatorError,
    ContextValidationError,
)

__all__ = [
    "ContextAllocatorError",
    "ContextValidationError",
]
