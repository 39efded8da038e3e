"""Configuration loading and validation."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from lifecycle.common.errors import ConfigError
from lifecycle.common.fs import read_yaml
from lifecycle.common.schema import validate_lifecycle_config

CONFIG_FILENAME = "lifecycle.yml"


@dataclass(frozen=True)
class ConfigBundle:
    verification: dict
    geocoding: dict
    notifications: dict
    storage: dict
    reports: dict

    @property
    def storage_path(self) -> Path:
        return Path(self.storage["path"])

    @property
    def reports_dir(self) -> Path:
        return Path(self.reports["dir"])


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    base = read_yaml(path) or {}
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path) or {}
    return _deep_merge(base, overlay)


def load_config(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> ConfigBundle:
    overlay_path = None
    if overlay_config_dir is not None:
        overlay_path = overlay_config_dir / CONFIG_FILENAME
    cfg = validate_lifecycle_config(
        _load_yaml_with_overlay(config_dir / CONFIG_FILENAME, overlay_path),
        allow_unknown=allow_unknown,
    )
    return ConfigBundle(
        verification=cfg["verification"],
        geocoding=cfg["geocoding"],
        notifications=cfg["notifications"],
        storage=cfg["storage"],
        reports=cfg["reports"],
    )


def resolve_secret(section: dict, key: str, environ: dict[str, str] | None = None) -> str:
    """Return ``section[key]``, preferring the environment variable named by ``<key>_env``."""
    env = os.environ if environ is None else environ
    env_name = section.get(f"{key}_env")
    if env_name and env.get(env_name):
        return env[env_name]
    value = section.get(key)
    return str(value) if value else ""
