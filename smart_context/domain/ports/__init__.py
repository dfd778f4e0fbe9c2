"""Domain ports."""

from smart_context.domain.ports.context_allocator_port import ContextAllocatorPort

__all__ = ["ContextAllocatorPort"]
