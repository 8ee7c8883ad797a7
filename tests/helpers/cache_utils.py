"""Cache utilities for test isolation.

Resets devloop's module-level caches and process-wide state between tests.
"""
from __future__ import annotations


def reset_devloop_caches() -> None:
    """Reset ALL global caches in devloop modules to ensure test isolation."""
    from devloop.core.config import reset_config_cache
    from devloop.core.process.lifecycle import reset_registry
    from devloop.core.stdlib_logging import reset_logging_for_tests
    from devloop.core.utils.host_platform import current_platform
    from devloop.data import clear_caches

    reset_config_cache()
    clear_caches()
    current_platform.cache_clear()
    reset_registry()
    reset_logging_for_tests()
