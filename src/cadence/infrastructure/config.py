"""Configuration constants, .env parsing, and the task configuration bag."""

from __future__ import annotations

import os
from collections.abc import Iterator, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml


def read_env_file(keys: list[str], path: Path | None = None) -> dict[str, str]:
    """Read the requested ``KEY=value`` settings from a dotenv file.

    Defaults to ``.env`` in the working directory. Lines may carry an
    ``export`` prefix and values may be quoted. Nothing is written to
    ``os.environ``; real environment variables take precedence in ``_env``.
    """
    env_file = path if path is not None else Path.cwd() / ".env"
    try:
        lines = env_file.read_text().splitlines()
    except OSError:
        return {}

    wanted = set(keys)
    found: dict[str, str] = {}
    for raw in lines:
        line = raw.strip()
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        key, value = key.strip(), value.strip()
        if key not in wanted:
            continue
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        if value:
            found[key] = value
    return found


_env_config = read_env_file([
    "CADENCE_CONFIG",
    "CADENCE_DB_PATH",
    "SCHEDULER_POLL_INTERVAL",
    "SCHEDULER_MIN_POLL_INTERVAL",
    "MAX_CONCURRENT_TASKS",
])


def _env(key: str, default: str) -> str:
    return os.environ.get(key) or _env_config.get(key, default)


PROJECT_ROOT: Path = Path.cwd()
STORE_DIR: Path = (PROJECT_ROOT / "store").resolve()
DB_PATH: Path = Path(_env("CADENCE_DB_PATH", str(STORE_DIR / "cadence.db"))).resolve()
CONFIG_PATH: Path = Path(_env("CADENCE_CONFIG", str(PROJECT_ROOT / "cadence.yaml"))).resolve()

# Upper bound on the driver's sleep between poll cycles (seconds).
SCHEDULER_POLL_INTERVAL: float = float(_env("SCHEDULER_POLL_INTERVAL", "60"))
# The driver never polls more often than this, however short a task's interval.
SCHEDULER_MIN_POLL_INTERVAL: float = max(0.1, float(_env("SCHEDULER_MIN_POLL_INTERVAL", "1")))
MAX_CONCURRENT_TASKS: int = max(1, int(_env("MAX_CONCURRENT_TASKS", "5")))
DB_BUSY_TIMEOUT: float = 30.0


class Configuration(Mapping[str, Any]):
    """Read-only key/value bag handed to task eligibility predicates.

    Nested mappings are addressable with dotted keys, so
    ``config.get("run_log_cleanup.enabled")`` reads
    ``{"run_log_cleanup": {"enabled": ...}}``.
    """

    def __init__(self, values: Mapping[str, Any] | None = None) -> None:
        self._values: Mapping[str, Any] = MappingProxyType(dict(values or {}))

    def __getitem__(self, key: str) -> Any:
        if key in self._values:
            return self._values[key]
        node: Any = self._values
        for part in key.split("."):
            if not isinstance(node, Mapping) or part not in node:
                raise KeyError(key)
            node = node[part]
        return node

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key, default)
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)

    def __repr__(self) -> str:
        return f"Configuration({dict(self._values)!r})"


def load_configuration(path: Path | None = None) -> Configuration:
    """Load the task configuration from YAML. A missing file yields an empty bag."""
    config_path = path or CONFIG_PATH
    try:
        content = config_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return Configuration()

    raw = yaml.safe_load(content)
    if raw is None:
        return Configuration()
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration root must be a mapping: {config_path}")
    return Configuration(raw)
