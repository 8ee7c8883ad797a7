from __future__ import annotations

import platform

import pytest

from devloop.core.exceptions import BuildError, UnsupportedPlatformError
from devloop.core.utils.host_platform import current_platform, platform_for_system


@pytest.mark.parametrize(
    ("system", "expected"),
    [("Linux", "linux"), ("Darwin", "macos"), ("Windows", "windows")],
)
def test_known_systems_map_to_platform_names(system: str, expected: str) -> None:
    assert platform_for_system(system) == expected


def test_unknown_system_is_rejected() -> None:
    with pytest.raises(UnsupportedPlatformError) as exc:
        platform_for_system("Plan9")

    err = exc.value
    assert isinstance(err, BuildError)
    assert err.system == "Plan9"
    assert str(err) == "[platform] unsupported platform: Plan9"


def test_current_platform_uses_host_system(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(platform, "system", lambda: "Darwin")
    current_platform.cache_clear()

    assert current_platform() == "macos"
