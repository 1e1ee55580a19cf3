"""
Status probes against a session's opencode server.

Each active session runs its own opencode server. We ask it two things:

    GET /session/status     {"ses_abc": {"type": "busy"}, "ses_def": {"type": "idle"}}
    GET /session?limit=1    [{"id": "ses_abc", ...}]

The second request only happens when nothing is busy, to find the
conversation a completion notification should link to.

Every probe is bounded by a single deadline. Anything that goes wrong -
timeout, refused connection, non-2xx, bad JSON, a payload of the wrong
shape - is ProbeUnreachable. A malformed payload is never treated as idle,
otherwise garbage would look like "nothing running" and fire a false
completion notification.
"""

import json
import socket
import time
from http.client import HTTPException
from typing import Any, Callable, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .inventory import SessionDescriptor
from .logging_config import get_logger
from .monitor_core import ProbeBusy, ProbeIdle, ProbeResult, ProbeUnreachable
from .status_constants import BUSY_STATUS_TYPES

logger = get_logger("prober")

STATUS_PATH = "/session/status"
RECENT_SESSION_PATH = "/session?limit=1"


class MalformedPayload(ValueError):
    """The status endpoint answered with JSON of the wrong shape."""


def is_busy_record(record: Any) -> bool:
    """Whether one /session/status record means the sub-session is working.

    Current servers send {"type": "busy" | "retry" | "idle"}; older ones
    sent {"running": true}.
    """
    if not isinstance(record, dict):
        raise MalformedPayload(f"status record is not an object: {record!r}")
    if record.get("type") in BUSY_STATUS_TYPES:
        return True
    return record.get("running") is True


def find_busy_session(payload: Any) -> Optional[str]:
    """Return the first busy sub-session id in a status payload, or None.

    Raises:
        MalformedPayload: If the payload is not an id -> record mapping
    """
    if not isinstance(payload, dict):
        raise MalformedPayload(f"status payload is not an object: {type(payload).__name__}")
    busy_id = None
    for session_id, record in payload.items():
        # Check every record so a malformed one anywhere rejects the payload
        if is_busy_record(record) and busy_id is None:
            busy_id = str(session_id)
    return busy_id


def classify_status_payload(payload: Any, recent_session_id: Optional[str] = None) -> ProbeResult:
    """Classify a decoded /session/status payload.

    Pure function - no side effects, fully testable.

    Args:
        payload: Decoded JSON from /session/status
        recent_session_id: Most recent sub-session id, reported when idle

    Returns:
        ProbeBusy, ProbeIdle, or ProbeUnreachable for malformed payloads
    """
    try:
        busy_id = find_busy_session(payload)
    except MalformedPayload as e:
        return ProbeUnreachable(reason=f"malformed payload: {e}")
    if busy_id is not None:
        return ProbeBusy(active_agent_session_id=busy_id)
    return ProbeIdle(last_agent_session_id=recent_session_id)


def parse_recent_session_id(payload: Any) -> Optional[str]:
    """Extract the id of the first session in a /session listing."""
    if not isinstance(payload, list) or not payload:
        return None
    first = payload[0]
    if not isinstance(first, dict):
        return None
    session_id = first.get("id")
    if isinstance(session_id, str) and session_id:
        return session_id
    return None


class StatusProber:
    """Probes one session's agent server over HTTP with a bounded timeout."""

    def __init__(self, timeout: float = 3.0, clock: Callable[[], float] = time.monotonic):
        self.timeout = timeout
        self._clock = clock

    def _get_json(self, url: str, timeout: float) -> Any:
        req = Request(url, method="GET", headers={"Accept": "application/json"})
        with urlopen(req, timeout=timeout) as resp:
            return json.loads(resp.read().decode("utf-8"))

    def probe(self, descriptor: SessionDescriptor) -> ProbeResult:
        """Probe one session.

        Never raises; every failure is ProbeUnreachable.
        """
        if descriptor.status_endpoint_port is None:
            return ProbeUnreachable(reason="no port")

        base = f"http://{descriptor.status_endpoint_host}:{descriptor.status_endpoint_port}"
        deadline = self._clock() + self.timeout

        try:
            payload = self._get_json(base + STATUS_PATH, self.timeout)
        except HTTPError as e:
            return ProbeUnreachable(reason=f"HTTP {e.code}")
        except (URLError, socket.timeout, TimeoutError, ConnectionError) as e:
            return ProbeUnreachable(reason=str(getattr(e, "reason", e)))
        except (json.JSONDecodeError, UnicodeDecodeError):
            return ProbeUnreachable(reason="invalid JSON")
        except (OSError, HTTPException) as e:
            return ProbeUnreachable(reason=str(e) or type(e).__name__)

        result = classify_status_payload(payload)
        if not isinstance(result, ProbeIdle):
            return result

        recent_id = self._lookup_recent_session(base, deadline - self._clock())
        return ProbeIdle(last_agent_session_id=recent_id)

    def _lookup_recent_session(self, base: str, remaining: float) -> Optional[str]:
        """Best-effort lookup of the most recent sub-session id.

        Failure here doesn't make the probe unreachable: the status
        payload already told us the session is idle.
        """
        if remaining <= 0:
            logger.debug("No time left for recent-session lookup at %s", base)
            return None
        try:
            payload = self._get_json(base + RECENT_SESSION_PATH, remaining)
        except (OSError, HTTPException, ValueError) as e:
            # URLError, HTTPError and socket.timeout are OSErrors;
            # JSONDecodeError and UnicodeDecodeError are ValueErrors
            logger.debug("Recent-session lookup failed at %s: %s", base, e)
            return None
        return parse_recent_session_id(payload)
