"""
devloop core primitives.

Each primitive is independent; the build tool imports what it needs:

    from devloop.core import find_port, retry, debounce, link_termination
"""

from .config import ConfigManager, get_config, reset_config_cache
from .debounce import DebounceState, Debouncer, debounce
from .exceptions import (
    BuildError,
    ConfigError,
    DevloopError,
    NetworkTimeout,
    PreconditionViolation,
    UnsupportedPlatformError,
)
from .net import find_port, is_available
from .process import LifecycleRegistry, link_termination, wait_for_interrupt
from .resilience import retry, retrying
from .stdlib_logging import configure_logging
from .utils import current_platform

__all__ = [
    "BuildError",
    "ConfigError",
    "ConfigManager",
    "DebounceState",
    "Debouncer",
    "DevloopError",
    "LifecycleRegistry",
    "NetworkTimeout",
    "PreconditionViolation",
    "UnsupportedPlatformError",
    "configure_logging",
    "current_platform",
    "debounce",
    "find_port",
    "get_config",
    "is_available",
    "link_termination",
    "reset_config_cache",
    "retry",
    "retrying",
    "wait_for_interrupt",
]
