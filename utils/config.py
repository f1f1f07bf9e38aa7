"""
utils/config.py
YAML configuration loader.

Looks for ~/.portik/config.yaml unless a path is given. A missing file
yields the defaults; keys present in the file override them one level deep.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Optional

import yaml

from utils.constants import HISTORY_DIR_NAME
from utils.logger import get_logger

log = get_logger("portik.config")

CONFIG_FILE_NAME = "config.yaml"

DEFAULTS: dict[str, Any] = {
    "proto":        "tcp",
    "docker":       False,
    "interval":     "10s",
    "concurrency":  0,
    "history_path": None,
    "log_level":    "INFO",
    "dashboard": {
        "host":          "127.0.0.1",
        "port":          5055,
        "enable_auth":   False,
        "auth_username": "portik",
        "auth_password": "",
        "secret_key":    "",
    },
}


def default_config_path() -> Optional[Path]:
    try:
        return Path.home() / HISTORY_DIR_NAME / CONFIG_FILE_NAME
    except RuntimeError:
        return None


def load_config(path: str | Path | None = None) -> dict:
    """Return DEFAULTS merged with the YAML file at path (if it exists)."""
    cfg = copy.deepcopy(DEFAULTS)
    cfg_path = Path(path).expanduser() if path else default_config_path()
    if cfg_path is None:
        return cfg

    try:
        with open(cfg_path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        return cfg
    except yaml.YAMLError as exc:
        log.warning(f"Ignoring unreadable config {cfg_path}: {exc}")
        return cfg

    if not isinstance(data, dict):
        log.warning(f"Ignoring config {cfg_path}: top level must be a mapping")
        return cfg

    for key, value in data.items():
        if key not in cfg:
            continue
        if isinstance(cfg[key], dict) and isinstance(value, dict):
            cfg[key].update(value)
        else:
            cfg[key] = value
    return cfg


__all__ = ["DEFAULTS", "default_config_path", "load_config"]
