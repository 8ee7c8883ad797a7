"""Process lifecycle hooks: child teardown on exit/signals and interrupt waits."""

from .lifecycle import (
    ChildHandle,
    LifecycleRegistry,
    ObserverHandle,
    get_registry,
    link_termination,
    reset_registry,
    wait_for_interrupt,
)

__all__ = [
    "ChildHandle",
    "LifecycleRegistry",
    "ObserverHandle",
    "get_registry",
    "link_termination",
    "reset_registry",
    "wait_for_interrupt",
]
