"""
Registry configuration loaded from packetreg.toml.

The schema is intentionally small:

    administrator = "acct:admin"
    reward_pool = "acct:pool"
    registry_account = "acct:registry"
    state_dir = ".packetreg"
    log_level = "INFO"

PACKETREG_ADMINISTRATOR, PACKETREG_REWARD_POOL and PACKETREG_LOG_LEVEL
override the file.
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from .errors import ConfigError

CONFIG_FILENAME = "packetreg.toml"

ENV_OVERRIDES = {
    "administrator": "PACKETREG_ADMINISTRATOR",
    "reward_pool": "PACKETREG_REWARD_POOL",
    "log_level": "PACKETREG_LOG_LEVEL",
}

CONFIG_TEMPLATE = """\
# Packet registry configuration
administrator = "{administrator}"
reward_pool = "{reward_pool}"
registry_account = "{registry_account}"
state_dir = ".packetreg"
log_level = "WARNING"
"""


@dataclass(frozen=True)
class RegistryConfig:
    administrator: str
    reward_pool: str
    registry_account: str = "registry"
    state_dir: Path = Path(".packetreg")
    log_level: str = "WARNING"

    @property
    def event_log_path(self) -> Path:
        return self.state_dir / "events.jsonl"

    @property
    def ledger_path(self) -> Path:
        return self.state_dir / "ledger.json"


def _required_str(data: Mapping[str, Any], key: str) -> str:
    value = str(data.get(key, "")).strip()
    if not value:
        raise ConfigError(f"{key} is required")
    return value


def parse_config(data: Mapping[str, Any], *, base_dir: Path, env: Mapping[str, str] | None = None) -> RegistryConfig:
    """
    Build a RegistryConfig from parsed TOML data.

    Args:
        data: Parsed TOML table
        base_dir: Directory relative state_dir values resolve against
        env: Environment to read overrides from (defaults to os.environ)
    """
    env = os.environ if env is None else env
    merged = dict(data)
    for key, var in ENV_OVERRIDES.items():
        if env.get(var):
            merged[key] = env[var]

    log_level = str(merged.get("log_level", "WARNING")).strip().upper() or "WARNING"
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigError(f"unknown log_level: {log_level}")

    state_dir = Path(str(merged.get("state_dir", ".packetreg")).strip() or ".packetreg")
    if not state_dir.is_absolute():
        state_dir = base_dir / state_dir

    return RegistryConfig(
        administrator=_required_str(merged, "administrator"),
        reward_pool=_required_str(merged, "reward_pool"),
        registry_account=str(merged.get("registry_account", "registry")).strip() or "registry",
        state_dir=state_dir.resolve(),
        log_level=log_level,
    )


def load_config(path: Path, *, env: Mapping[str, str] | None = None) -> RegistryConfig:
    """Load and validate a packetreg.toml file."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigError(f"config not found: {path}") from e
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"invalid TOML in {path}: {e}") from e
    return parse_config(data, base_dir=path.resolve().parent, env=env)


def find_config(start: Path) -> Path | None:
    """Find packetreg.toml by walking up from `start`."""
    cur = start.resolve()
    for p in (cur, *cur.parents):
        candidate = p / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def write_config_template(
    path: Path,
    *,
    administrator: str,
    reward_pool: str,
    registry_account: str = "registry",
) -> None:
    if path.exists():
        raise ConfigError(f"refusing to overwrite existing config: {path}")
    path.write_text(
        CONFIG_TEMPLATE.format(
            administrator=administrator,
            reward_pool=reward_pool,
            registry_account=registry_account,
        ),
        encoding="utf-8",
    )
