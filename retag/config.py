"""Configuration loading for the tag migration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

import yaml

from retag.errors import ConfigError

DEFAULTS: Dict[str, Any] = {
    "influx": {"token": "", "timeout_s": 10.0},
    "logging": {"level": "INFO", "file": ""},
    "migration": {"batch_size": 1000, "dry_run": False},
}

REQUIRED = ("influx.host", "influx.bucket")

_ENV_OVERRIDES = {
    "INFLUX_HOST": ("influx", "host"),
    "INFLUX_TOKEN": ("influx", "token"),
    "INFLUX_BUCKET": ("influx", "bucket"),
    "RETAG_LOG_LEVEL": ("logging", "level"),
}


@dataclass
class InfluxSettings:
    host: str
    bucket: str
    token: str = ""
    timeout_s: float = 10.0


@dataclass
class LoggingSettings:
    level: str = "INFO"
    file: str = ""


@dataclass
class RetagSettings:
    influx: InfluxSettings
    logging: LoggingSettings
    batch_size: int = 1000
    dry_run: bool = False


def load_yaml(path: Path) -> Dict[str, Any]:
    """Read one YAML settings file; every failure surfaces as ``ConfigError``."""

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file {path} is not valid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must hold a mapping, got {type(data).__name__}")
    return data


def merge_defaults(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    """Layer ``overrides`` onto ``base``; ``None`` leaves the base value in place."""

    merged: Dict[str, Any] = dict(base)
    for key, value in overrides.items():
        if value is None:
            continue
        if isinstance(value, dict):
            current = merged.get(key)
            merged[key] = merge_defaults(current if isinstance(current, dict) else {}, value)
        else:
            merged[key] = value
    return merged


def validate_required(data: Mapping[str, Any], required_paths: Iterable[str]) -> None:
    missing = []
    for path in required_paths:
        node: Any = data
        ok = True
        for part in path.split("."):
            if not isinstance(node, dict) or part not in node or node[part] in (None, ""):
                ok = False
                break
            node = node[part]
        if not ok:
            missing.append(path)
    if missing:
        raise ConfigError(f"Missing required config fields: {', '.join(missing)}")


def _env_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for env, (section, key) in _ENV_OVERRIDES.items():
        value = os.getenv(env)
        if value:
            overrides.setdefault(section, {})[key] = value
    return overrides


def load_settings(config_path: Optional[Path] = None, overrides: Optional[Mapping[str, Any]] = None) -> RetagSettings:
    """Merge defaults, the YAML file, the environment and ``overrides``, in that order."""

    data = dict(DEFAULTS)
    path = config_path or (Path(os.environ["RETAG_CONFIG"]) if os.getenv("RETAG_CONFIG") else None)
    if path is not None:
        data = merge_defaults(data, load_yaml(Path(path).expanduser()))
    data = merge_defaults(data, _env_overrides())
    data = merge_defaults(data, overrides or {})
    validate_required(data, REQUIRED)

    influx = data["influx"]
    log_section = data.get("logging") or {}
    migration = data.get("migration") or {}
    try:
        timeout_s = float(influx.get("timeout_s", 10.0))
        batch_size = int(migration.get("batch_size", 1000))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid numeric setting: {exc}") from exc
    if timeout_s <= 0:
        raise ConfigError("influx.timeout_s must be positive")
    if batch_size < 1:
        raise ConfigError("migration.batch_size must be at least 1")

    return RetagSettings(
        influx=InfluxSettings(
            host=str(influx["host"]),
            bucket=str(influx["bucket"]),
            token=str(influx.get("token") or ""),
            timeout_s=timeout_s,
        ),
        logging=LoggingSettings(
            level=str(log_section.get("level", "INFO")).upper(),
            file=str(log_section.get("file") or ""),
        ),
        batch_size=batch_size,
        dry_run=bool(migration.get("dry_run", False)),
    )
