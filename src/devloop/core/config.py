"""
devloop configuration management (YAML-only).

Precedence (in increasing order):
  1) Bundled defaults (``devloop/data/config/*.yaml``)
  2) Project overlays (``<repo_root>/.devloop/config/*.yml``)
  3) Environment overrides (``DEVLOOP_*``)

Environment overrides:
- Path separator: double underscore ``__`` (e.g.
  ``DEVLOOP_network__probe__timeout_seconds=2.5``).
- Case handling: case-insensitive lookup against existing keys; new keys keep
  the case they were given.
- Type coercion: bool/int/float/JSON-like strings are coerced.

Explicit arguments passed to the primitives always win; configuration only
supplies the values callers leave out.
"""
from __future__ import annotations

import json
import logging
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import jsonschema
import yaml

from devloop.data import get_data_path, list_files, read_json

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = "DEVLOOP_"
PROJECT_ROOT_ENV = "DEVLOOP_PROJECT_ROOT"
PROJECT_CONFIG_DIRNAME = ".devloop"


def resolve_repo_root(repo_root: Optional[Path | str] = None) -> Path:
    """Return the directory whose ``.devloop/config`` overlays apply."""
    if repo_root is not None:
        return Path(repo_root).expanduser().resolve()
    env_root = os.environ.get(PROJECT_ROOT_ENV, "").strip()
    if env_root:
        return Path(env_root).expanduser().resolve()
    return Path.cwd().resolve()


class ConfigManager:
    """Load, merge, and validate devloop configuration.

    Typical usage:

    ```python
    from devloop.core.config import ConfigManager
    cfg = ConfigManager().load_config()
    ```

    Attributes:
        repo_root: Root used to locate project overlays.
        core_config_dir: Directory holding the bundled ``*.yaml`` defaults.
        project_config_dir: ``<repo_root>/.devloop/config`` where ``*.yml``
            overlays are loaded from.
    """

    def __init__(self, repo_root: Optional[Path | str] = None) -> None:
        self.repo_root = resolve_repo_root(repo_root)
        self.core_config_dir = get_data_path("config")
        self.project_config_dir = self.repo_root / PROJECT_CONFIG_DIRNAME / "config"

    # ---------- Merge helpers ----------
    def deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge ``override`` into ``base`` returning a copy.

        Dicts are merged recursively; any other value (lists included)
        replaces the base value.
        """
        result: Dict[str, Any] = dict(base)
        for key, value in (override or {}).items():
            if isinstance(result.get(key), dict) and isinstance(value, dict):
                result[key] = self.deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    # ---------- IO helpers ----------
    def load_yaml(self, path: Path) -> Dict[str, Any]:
        """Load a YAML mapping, returning ``{}`` when the file is missing or empty.

        Raises:
            ConfigError: If the file holds invalid YAML or a non-mapping document.
        """
        if not path.exists():
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}", context={"path": str(path)}) from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Expected a mapping in {path}", context={"path": str(path)})
        return data

    # ---------- Type coercion helpers ----------
    def _as_bool(self, v: str) -> Optional[bool]:
        low = v.strip().lower()
        if low in {"true", "false"}:
            return low == "true"
        return None

    def _as_int(self, v: str) -> Optional[int]:
        if re.fullmatch(r"[-+]?\d+", v.strip() or " "):
            return int(v)
        return None

    def _as_float(self, v: str) -> Optional[float]:
        s = v.strip()
        if re.fullmatch(r"[-+]?\d*\.\d+", s) or re.fullmatch(r"[-+]?\d+\.\d*", s):
            return float(s)
        return None

    def _as_json(self, v: str) -> Optional[Any]:
        s = v.strip()
        if (s.startswith("{") and s.endswith("}")) or (s.startswith("[") and s.endswith("]")):
            try:
                return json.loads(s)
            except json.JSONDecodeError:
                return None
        return None

    def _coerce_type(self, value: str) -> Any:
        """Coerce string to bool/int/float/JSON when appropriate."""
        for caster in (self._as_bool, self._as_int, self._as_float, self._as_json):
            result = caster(value)
            if result is not None:
                return result
        return value.strip()

    # ---------- Environment overrides ----------
    def _parse_env_key(self, raw: str) -> List[str]:
        segs = raw.split("__")
        if any(seg == "" for seg in segs):
            raise ConfigError(
                f"Malformed {ENV_PREFIX}* key: empty segment in '{raw}'. Use double underscores between parts.",
                context={"key": ENV_PREFIX + raw},
            )
        return segs

    def _set_nested(self, root: Dict[str, Any], path: List[str], value: Any) -> None:
        cur = root
        for i, part in enumerate(path):
            lower_map = {k.lower(): k for k in cur.keys() if isinstance(k, str)}
            key = lower_map.get(part.lower(), part)
            if i == len(path) - 1:
                cur[key] = value
                return
            nxt = cur.get(key)
            if nxt is None:
                nxt = cur[key] = {}
            if not isinstance(nxt, dict):
                raise ConfigError(
                    f"Path traverses non-dict value (path='{'__'.join(path)}', got {type(nxt).__name__})",
                    context={"path": "__".join(path)},
                )
            cur = nxt

    def apply_env_overrides(self, cfg: Dict[str, Any]) -> None:
        """Apply ``DEVLOOP_*`` overrides in-place to ``cfg``."""
        for key in sorted(os.environ.keys()):
            if not key.startswith(ENV_PREFIX) or key == PROJECT_ROOT_ENV:
                continue
            raw = key[len(ENV_PREFIX):]
            if not raw:
                continue
            path = self._parse_env_key(raw)
            self._set_nested(cfg, path, self._coerce_type(os.environ[key]))

    # ---------- Validation ----------
    def validate_schema(self, config: Dict[str, Any], schema_name: str = "config.schema.json") -> None:
        """Validate configuration against a bundled JSON schema.

        Raises:
            ConfigError: If validation fails.
        """
        schema = read_json("config", f"schemas/{schema_name}")
        try:
            jsonschema.validate(instance=config, schema=schema)
        except jsonschema.ValidationError as exc:
            location = ".".join(str(p) for p in exc.absolute_path) or "<root>"
            raise ConfigError(
                f"Invalid configuration at {location}: {exc.message}",
                context={"path": location},
            ) from exc

    def load_config(self, validate: bool = True) -> Dict[str, Any]:
        """Load configuration with correct precedence and optional validation.

        Precedence (lowest → highest): defaults → project → env.
        """
        cfg: Dict[str, Any] = {}

        for path in list_files("config", "*.yaml"):
            cfg = self.deep_merge(cfg, self.load_yaml(path))

        if self.project_config_dir.exists():
            for path in sorted(self.project_config_dir.glob("*.yml")):
                logger.debug(f"Loading config overlay {path}")
                cfg = self.deep_merge(cfg, self.load_yaml(path))

        self.apply_env_overrides(cfg)

        if validate:
            self.validate_schema(cfg)

        return cfg


@lru_cache(maxsize=4)
def _load_cached(repo_root: Path) -> Dict[str, Any]:
    return ConfigManager(repo_root).load_config()


def get_config(repo_root: Optional[Path | str] = None) -> Dict[str, Any]:
    """Return the merged configuration for ``repo_root`` (cached per root)."""
    return _load_cached(resolve_repo_root(repo_root))


def _section(cfg: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    cur: Any = cfg
    for key in keys:
        cur = cur.get(key, {}) if isinstance(cur, dict) else {}
    return cur if isinstance(cur, dict) else {}


def get_network_config(repo_root: Optional[Path | str] = None) -> Dict[str, Any]:
    """Port probe settings with safe fallbacks."""
    probe = _section(get_config(repo_root), "network", "probe")
    return {
        "host": str(probe.get("host", "0.0.0.0")),
        "timeout_seconds": float(probe.get("timeout_seconds", 10.0)),
    }


def get_retry_config(repo_root: Optional[Path | str] = None) -> Dict[str, Any]:
    """Retry settings with safe fallbacks."""
    retry_cfg = _section(get_config(repo_root), "resilience", "retry")
    return {"attempts": int(retry_cfg.get("attempts", 3))}


def get_debounce_config(repo_root: Optional[Path | str] = None) -> Dict[str, Any]:
    """Debounce settings with safe fallbacks."""
    debounce_cfg = _section(get_config(repo_root), "debounce")
    return {"wait_seconds": float(debounce_cfg.get("wait_seconds", 0.1))}


def get_logging_config(repo_root: Optional[Path | str] = None) -> Dict[str, Any]:
    logging_cfg = _section(get_config(repo_root), "logging")
    return {"level": str(logging_cfg.get("level", "INFO")).upper()}


def reset_config_cache() -> None:
    _load_cached.cache_clear()


__all__ = [
    "ConfigManager",
    "get_config",
    "get_network_config",
    "get_retry_config",
    "get_debounce_config",
    "get_logging_config",
    "reset_config_cache",
    "resolve_repo_root",
]
