"""Small host-level helpers shared by the primitives."""

from .host_platform import PlatformName, current_platform, platform_for_system

__all__ = ["PlatformName", "current_platform", "platform_for_system"]
