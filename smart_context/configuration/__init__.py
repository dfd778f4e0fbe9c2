"""Configuration for the context allocator."""

from smart_context.configuration.config import ContextSettings, PriorityLevels, get_settings

__all__ = ["ContextSettings", "PriorityLevels", "get_settings"]
