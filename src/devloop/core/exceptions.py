from __future__ import annotations

from typing import Any, Dict, Mapping


class DevloopError(Exception):
    """Base exception for devloop."""

    context: Dict[str, Any]

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        if context is not None:
            # Store a shallow copy to avoid accidental mutation.
            self.context = dict(context)
        else:
            self.context = {}

    def to_json_error(self) -> Dict[str, Any]:
        """Return a JSON-serializable error payload."""
        return {
            "message": str(self),
            "code": self.__class__.__name__,
            "context": self.context,
        }


class BuildError(DevloopError):
    """Error reported to the build tool, tagged with the component that raised it."""

    def __init__(
        self,
        component: str,
        message: str,
        *,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        ctx = dict(context or {})
        ctx.setdefault("component", component)
        super().__init__(message, context=ctx)
        self.component = component
        self.message = message

    def __str__(self) -> str:
        return f"[{self.component}] {self.message}"


class NetworkTimeout(BuildError, TimeoutError):
    """Raised when a port probe gets no definitive answer before its deadline."""

    def __init__(
        self,
        message: str = "timeout when searching for unused port",
        *,
        host: str | None = None,
        port: int | None = None,
        timeout_seconds: float | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        ctx = dict(context or {})
        if host is not None:
            ctx["host"] = host
        if port is not None:
            ctx["port"] = port
        if timeout_seconds is not None:
            ctx["timeout_seconds"] = timeout_seconds
        BuildError.__init__(self, "net", message, context=ctx)


class UnsupportedPlatformError(BuildError):
    """Raised when the host operating system is not one the build tool targets."""

    def __init__(self, system: str) -> None:
        super().__init__("platform", f"unsupported platform: {system}", context={"system": system})
        self.system = system


class PreconditionViolation(DevloopError, AssertionError):
    """Raised when a primitive is called with arguments that indicate a programming error."""

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        DevloopError.__init__(self, message, context=context)
        AssertionError.__init__(self, message)


class ConfigError(DevloopError, ValueError):
    """Raised when configuration cannot be loaded or fails validation."""

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        DevloopError.__init__(self, message, context=context)
        ValueError.__init__(self, message)


__all__ = [
    "DevloopError",
    "BuildError",
    "NetworkTimeout",
    "UnsupportedPlatformError",
    "PreconditionViolation",
    "ConfigError",
]
