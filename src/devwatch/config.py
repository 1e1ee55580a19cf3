"""
Config file handling for devwatch.

Configuration lives in ~/.devwatch/config.yaml. Only the `monitor:`
section is read by the monitor; everything else is ignored.

Config file format:
    monitor:
      ntfy_server: http://localhost:8090
      ntfy_topic: dev-sessions
      poll_interval_ms: 5000
      link_host: 100.64.0.1
"""

import os
from pathlib import Path
from typing import Optional

import yaml


def _default_config_path() -> Path:
    base = os.environ.get("DEVWATCH_DIR")
    if base:
        return Path(base) / "config.yaml"
    return Path.home() / ".devwatch" / "config.yaml"


CONFIG_PATH = _default_config_path()


def load_config(path: Optional[Path] = None) -> dict:
    """Load the YAML config file.

    Returns an empty dict if the file is missing, unreadable, invalid YAML,
    or does not contain a mapping at the top level.
    """
    path = path or CONFIG_PATH
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (yaml.YAMLError, OSError):
        return {}

    if not isinstance(data, dict):
        return {}
    return data


def save_config(config: dict, path: Optional[Path] = None) -> None:
    """Write config dict as YAML, creating parent directories."""
    path = path or CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)


def get_monitor_config(path: Optional[Path] = None) -> dict:
    """Return the `monitor:` section of the config file (empty if absent)."""
    section = load_config(path).get("monitor")
    if not isinstance(section, dict):
        return {}
    return section
