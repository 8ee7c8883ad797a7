"""
devloop - asynchronous control-flow primitives for build tooling

Provides port probing/allocation, bounded retries, argument-collecting
debounce and signal-driven child process teardown for a development server
or build watcher.
"""

__version__ = "1.0.0"
__all__ = ["__version__"]
