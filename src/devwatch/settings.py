"""
Runtime settings for the devwatch monitor.

Settings are resolved once at startup from three layers, highest first:

1. the `monitor:` section of ~/.devwatch/config.yaml
2. environment variables (same names the dev-session scripts use)
3. built-in defaults

A value that cannot be parsed raises ConfigError. This is the only error
that is allowed to stop the monitor, and it can only happen at startup.
"""

import os
import shlex
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .status_constants import LINK_PREFER_PROBE, LINK_PREFERENCES


class ConfigError(ValueError):
    """Raised when a configuration value cannot be parsed."""


# Setting name -> environment variable
ENV_VARS = {
    "ntfy_server": "NTFY_SERVER",
    "ntfy_topic": "NTFY_TOPIC",
    "dashboard_url": "DASHBOARD_URL",
    "poll_interval_ms": "POLL_INTERVAL",
    "probe_timeout_ms": "PROBE_TIMEOUT",
    "notify_timeout_ms": "NOTIFY_TIMEOUT",
    "opencode_host": "OPENCODE_HOST",
    "link_host": "LINK_HOST",
    "inventory_command": "DEV_LIST_CMD",
    "inventory_timeout_ms": "DEV_LIST_TIMEOUT",
    "link_session_preference": "LINK_SESSION_PREFERENCE",
    "startup_notification": "STARTUP_NOTIFICATION",
    "state_ttl_seconds": "STATE_TTL",
    "max_probe_workers": "MAX_PROBE_WORKERS",
    "log_level": "DEVWATCH_LOG_LEVEL",
}

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


@dataclass
class MonitorSettings:
    """Resolved monitor configuration.

    Durations are kept in milliseconds to match POLL_INTERVAL; use the
    *_seconds properties when talking to sockets and timers.
    """

    ntfy_server: str = "http://localhost:8090"
    ntfy_topic: str = "dev-sessions"
    dashboard_url: str = "http://localhost:3333"
    poll_interval_ms: int = 5000
    probe_timeout_ms: int = 3000
    notify_timeout_ms: int = 5000
    opencode_host: str = "127.0.0.1"
    link_host: Optional[str] = None
    inventory_command: List[str] = field(default_factory=lambda: ["dev-list", "--json"])
    inventory_timeout_ms: int = 10000
    link_session_preference: str = LINK_PREFER_PROBE
    startup_notification: bool = True
    state_ttl_seconds: int = 86400
    max_probe_workers: int = 16
    log_level: str = "INFO"

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000.0

    @property
    def probe_timeout_seconds(self) -> float:
        return self.probe_timeout_ms / 1000.0

    @property
    def notify_timeout_seconds(self) -> float:
        return self.notify_timeout_ms / 1000.0

    @property
    def inventory_timeout_seconds(self) -> float:
        return self.inventory_timeout_ms / 1000.0

    @property
    def relay_url(self) -> str:
        """Full POST target for the notification relay."""
        return f"{self.ntfy_server.rstrip('/')}/{self.ntfy_topic}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _parse_int(name: str, value: Any, minimum: int = 1) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None
    if parsed < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {parsed}")
    return parsed


def _parse_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off", ""):
        return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


def _parse_command(name: str, value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        command = [str(part) for part in value]
    else:
        try:
            command = shlex.split(str(value))
        except ValueError as e:
            raise ConfigError(f"{name} is not a valid command line: {e}") from None
    if not command:
        raise ConfigError(f"{name} must not be empty")
    return command


def _parse_str(name: str, value: Any) -> str:
    text = str(value).strip()
    if not text:
        raise ConfigError(f"{name} must not be empty")
    return text


_INT_SETTINGS = {
    "poll_interval_ms": 1,
    "probe_timeout_ms": 1,
    "notify_timeout_ms": 1,
    "inventory_timeout_ms": 1,
    "state_ttl_seconds": 1,
    "max_probe_workers": 1,
}


def _coerce(name: str, value: Any) -> Any:
    if name in _INT_SETTINGS:
        return _parse_int(name, value, _INT_SETTINGS[name])
    if name == "startup_notification":
        return _parse_bool(name, value)
    if name == "inventory_command":
        return _parse_command(name, value)
    if name == "link_host":
        text = str(value).strip()
        return text or None
    if name == "link_session_preference":
        pref = str(value).strip().lower()
        if pref not in LINK_PREFERENCES:
            raise ConfigError(
                f"link_session_preference must be one of {', '.join(LINK_PREFERENCES)}, got {value!r}"
            )
        return pref
    if name == "log_level":
        level = str(value).strip().upper()
        if level not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {value!r}")
        return level
    return _parse_str(name, value)


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    file_config: Optional[Mapping[str, Any]] = None,
    **overrides: Any,
) -> MonitorSettings:
    """Resolve MonitorSettings from config file, environment and defaults.

    Args:
        environ: Environment mapping (default: os.environ)
        file_config: `monitor:` section of the config file (default: read
            from ~/.devwatch/config.yaml)
        **overrides: Explicit values (e.g. CLI flags) applied last; None
            values are ignored

    Raises:
        ConfigError: If any provided value cannot be parsed
    """
    if environ is None:
        environ = os.environ
    if file_config is None:
        from .config import get_monitor_config
        file_config = get_monitor_config()

    values: Dict[str, Any] = {}
    for name, env_var in ENV_VARS.items():
        if name in file_config and file_config[name] is not None:
            values[name] = _coerce(name, file_config[name])
        elif environ.get(env_var, "") != "":
            values[name] = _coerce(name, environ[env_var])

    for name, value in overrides.items():
        if name not in ENV_VARS:
            raise ConfigError(f"Unknown setting: {name}")
        if value is not None:
            values[name] = _coerce(name, value)

    return MonitorSettings(**values)
