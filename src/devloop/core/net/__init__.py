"""TCP port probing and allocation."""

from .ports import MAX_PORT, find_port, is_available

__all__ = ["MAX_PORT", "find_port", "is_available"]
