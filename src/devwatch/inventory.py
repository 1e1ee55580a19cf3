"""
Session inventory from the dev-session scripts.

The dev-session tooling owns worktrees, tmux sessions and agent servers.
We only need its listing: `dev-list --json` prints a JSON array with one
object per session, e.g.

    {"name": "api-auth", "worktree": "/home/me/dev/worktrees/api-auth",
     "opencode_port": 4101, "tmux_exists": true, ...}

fetch_inventory() never raises. Any failure of the listing command means
"no sessions this tick", which leaves tracker state untouched.
"""

import json
import subprocess
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from .logging_config import get_logger

logger = get_logger("inventory")

DEFAULT_COMMAND = ["dev-list", "--json"]


@dataclass(frozen=True)
class SessionDescriptor:
    """One candidate session from the inventory."""

    name: str
    status_endpoint_host: str
    status_endpoint_port: Optional[int]
    working_directory_path: str
    is_host_process_active: bool

    @property
    def probeable(self) -> bool:
        """Whether this session should be probed this tick."""
        return self.is_host_process_active and self.status_endpoint_port is not None


def _parse_port(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        port = int(value)
    except (TypeError, ValueError):
        return None
    if not 0 < port < 65536:
        return None
    return port


def descriptor_from_dict(entry: Any, host: str = "127.0.0.1") -> Optional[SessionDescriptor]:
    """Convert one inventory entry to a SessionDescriptor.

    Returns None for entries without a usable name.
    """
    if not isinstance(entry, dict):
        return None
    name = entry.get("name")
    if not isinstance(name, str) or not name.strip():
        return None

    worktree = entry.get("worktree") or ""
    return SessionDescriptor(
        name=name,
        status_endpoint_host=host,
        status_endpoint_port=_parse_port(entry.get("opencode_port")),
        working_directory_path=str(worktree),
        is_host_process_active=entry.get("tmux_exists") is True,
    )


def parse_inventory(output: str, host: str = "127.0.0.1") -> List[SessionDescriptor]:
    """Parse listing command output into descriptors.

    Raises:
        ValueError: If the output is not a JSON array
    """
    data = json.loads(output)
    if not isinstance(data, list):
        raise ValueError(f"expected a JSON array, got {type(data).__name__}")

    descriptors: List[SessionDescriptor] = []
    seen = set()
    for entry in data:
        descriptor = descriptor_from_dict(entry, host)
        if descriptor is None:
            logger.debug("Skipping malformed inventory entry: %r", entry)
            continue
        if descriptor.name in seen:
            logger.debug("Skipping duplicate inventory entry: %s", descriptor.name)
            continue
        seen.add(descriptor.name)
        descriptors.append(descriptor)
    return descriptors


class CommandInventorySource:
    """Runs the dev-list command and parses its JSON output."""

    def __init__(
        self,
        command: Optional[Sequence[str]] = None,
        host: str = "127.0.0.1",
        timeout: float = 10.0,
    ):
        self.command = list(command or DEFAULT_COMMAND)
        self.host = host
        self.timeout = timeout

    def fetch_inventory(self) -> List[SessionDescriptor]:
        """Return the current inventory, or [] if it cannot be obtained."""
        try:
            result = subprocess.run(
                self.command,
                capture_output=True,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            logger.warning("Inventory command not found: %s", self.command[0])
            return []
        except subprocess.TimeoutExpired:
            logger.warning("Inventory command timed out after %.1fs", self.timeout)
            return []
        except OSError as e:
            logger.warning("Inventory command failed: %s", e)
            return []

        if result.returncode != 0:
            logger.warning(
                "Inventory command exited %d: %s",
                result.returncode,
                (result.stderr or b"").decode("utf-8", errors="replace").strip()[:200],
            )
            return []

        try:
            return parse_inventory(result.stdout.decode("utf-8"), self.host)
        except ValueError as e:
            # UnicodeDecodeError and json.JSONDecodeError are ValueErrors
            logger.warning("Inventory output is not valid: %s", e)
            return []
