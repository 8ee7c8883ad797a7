"""Host operating system detection for platform-specific build steps."""
from __future__ import annotations

import platform
from functools import lru_cache
from typing import Literal

from devloop.core.exceptions import UnsupportedPlatformError

PlatformName = Literal["linux", "macos", "windows"]

_SYSTEM_TO_PLATFORM: dict[str, PlatformName] = {
    "Linux": "linux",
    "Darwin": "macos",
    "Windows": "windows",
}


def platform_for_system(system: str) -> PlatformName:
    """Map a ``platform.system()`` value to the build tool's platform name."""
    try:
        return _SYSTEM_TO_PLATFORM[system]
    except KeyError:
        raise UnsupportedPlatformError(system) from None


@lru_cache(maxsize=1)
def current_platform() -> PlatformName:
    """Return ``"linux"``, ``"macos"`` or ``"windows"`` for the running host.

    Raises:
        UnsupportedPlatformError: On any other operating system.
    """
    return platform_for_system(platform.system())


__all__ = ["PlatformName", "current_platform", "platform_for_system"]
