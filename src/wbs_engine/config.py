"""
Engine configuration.

Loaded from an optional YAML file; every key has a default so an absent or
empty file yields the stock behaviour.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .item_models import ITEM_STATUSES
from .reorganize import REMOVAL_POLICIES, RemovalPolicy

CONFIG_ENV_VAR = "WBS_ENGINE_CONFIG"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(Exception):
    """Raised when the configuration file is unreadable or holds invalid values."""


@dataclass(frozen=True)
class EngineConfig:
    """Settings the hosting application passes into the engine."""

    done_status: str = "done"  # status that counts as complete for roll-ups and prerequisites
    removal_policy: RemovalPolicy = "reparent"
    expand_all: bool = True  # flattener default when no ids are given
    log_level: str = "WARNING"

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level)


def load_config(path: str | Path | None = None) -> EngineConfig:
    """Load configuration from `path`, the $WBS_ENGINE_CONFIG file, or defaults."""

    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return EngineConfig()

    config_path = Path(path)
    try:
        with config_path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"config file not found: {config_path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"{config_path}: invalid YAML: {exc}") from exc

    return parse_config(raw, source=str(config_path))


def parse_config(raw: Any, source: str = "config") -> EngineConfig:
    if raw is None:
        return EngineConfig()
    if not isinstance(raw, dict):
        raise ConfigError(f"{source}: expected mapping at top level")

    extras = sorted(set(raw) - {"done_status", "removal_policy", "expand_all", "log_level"})
    if extras:
        raise ConfigError(f"{source}: unexpected fields {extras}")

    defaults = EngineConfig()
    done_status = raw.get("done_status", defaults.done_status)
    if done_status not in ITEM_STATUSES:
        raise ConfigError(f"{source}.done_status: expected one of {list(ITEM_STATUSES)}")

    removal_policy = raw.get("removal_policy", defaults.removal_policy)
    if removal_policy not in REMOVAL_POLICIES:
        raise ConfigError(f"{source}.removal_policy: expected one of {list(REMOVAL_POLICIES)}")

    expand_all = raw.get("expand_all", defaults.expand_all)
    if not isinstance(expand_all, bool):
        raise ConfigError(f"{source}.expand_all: expected boolean")

    log_level = raw.get("log_level", defaults.log_level)
    if not isinstance(log_level, str) or log_level.upper() not in _LOG_LEVELS:
        raise ConfigError(f"{source}.log_level: expected one of {list(_LOG_LEVELS)}")

    return EngineConfig(
        done_status=done_status,
        removal_policy=removal_policy,
        expand_all=expand_all,
        log_level=log_level.upper(),
    )
