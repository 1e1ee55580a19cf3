"""
Pure business logic for the agent activity monitor.

These types and functions contain no I/O and are fully unit-testable.
They are used by StateTracker and MonitorDaemon but can be tested
independently.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, Union

from .status_constants import (
    LINK_PREFER_LAST_BUSY,
    LINK_PREFER_PROBE,
    PHASE_BUSY,
    PHASE_IDLE,
    PHASE_UNKNOWN,
    PROBE_BUSY,
    PROBE_IDLE,
    PROBE_UNREACHABLE,
)


# =============================================================================
# Probe results
# =============================================================================


@dataclass(frozen=True)
class ProbeBusy:
    """At least one sub-session on the agent server is working."""

    active_agent_session_id: str
    kind: str = PROBE_BUSY


@dataclass(frozen=True)
class ProbeIdle:
    """No sub-session is working. Carries the most recent sub-session id, if known."""

    last_agent_session_id: Optional[str] = None
    kind: str = PROBE_IDLE


@dataclass(frozen=True)
class ProbeUnreachable:
    """Timeout, connection failure, non-2xx, or malformed payload."""

    reason: str = ""
    kind: str = PROBE_UNREACHABLE


ProbeResult = Union[ProbeBusy, ProbeIdle, ProbeUnreachable]


# =============================================================================
# Tracker state
# =============================================================================


@dataclass(frozen=True)
class SessionState:
    """Recorded state for one session name.

    phase and last_known_agent_session_id only change on a successful probe.
    """

    phase: str = PHASE_UNKNOWN
    last_known_agent_session_id: Optional[str] = None
    last_observed_at: Optional[datetime] = None
    first_seen_at: Optional[datetime] = None
    last_seen_at: Optional[datetime] = None
    consecutive_unreachable: int = 0


@dataclass(frozen=True)
class NotificationEvent:
    """Emitted once for a busy -> idle edge."""

    session_name: str
    agent_session_id: Optional[str]
    working_directory_path: str
    endpoint_port: Optional[int]
    endpoint_host: str = "127.0.0.1"


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of applying one probe result to a session state."""

    state: SessionState
    notify: bool
    agent_session_id: Optional[str] = None  # id to report when notify is True


def choose_agent_session_id(
    probe_id: Optional[str],
    last_busy_id: Optional[str],
    preference: str = LINK_PREFER_PROBE,
) -> Optional[str]:
    """Pick which agent session id a completion notification should link to.

    Pure function - no side effects, fully testable.

    Args:
        probe_id: Id carried by the triggering idle probe (may be None)
        last_busy_id: Id recorded while the session was busy (may be None)
        preference: LINK_PREFER_PROBE or LINK_PREFER_LAST_BUSY

    Returns:
        The preferred id, falling back to the other one when missing
    """
    if preference == LINK_PREFER_LAST_BUSY:
        return last_busy_id or probe_id
    return probe_id or last_busy_id


def apply_probe(
    state: SessionState,
    result: ProbeResult,
    now: datetime,
    preference: str = LINK_PREFER_PROBE,
) -> TransitionResult:
    """Apply one probe result to a session state.

    Pure function - no side effects, fully testable.

    Transition rules:
    - unreachable never changes phase or agent id (held)
    - the first successful observation from unknown sets a baseline, no notify
    - only busy -> idle notifies

    Args:
        state: Current recorded state
        result: Fresh probe result
        now: Observation time
        preference: Link id preference (see choose_agent_session_id)

    Returns:
        TransitionResult with the new state and whether to notify
    """
    if isinstance(result, ProbeUnreachable):
        return TransitionResult(
            state=replace(state, consecutive_unreachable=state.consecutive_unreachable + 1),
            notify=False,
        )

    if isinstance(result, ProbeBusy):
        new_state = replace(
            state,
            phase=PHASE_BUSY,
            last_known_agent_session_id=result.active_agent_session_id,
            last_observed_at=now,
            consecutive_unreachable=0,
        )
        return TransitionResult(state=new_state, notify=False)

    if isinstance(result, ProbeIdle):
        notify = state.phase == PHASE_BUSY
        agent_id = None
        if notify:
            agent_id = choose_agent_session_id(
                result.last_agent_session_id,
                state.last_known_agent_session_id,
                preference,
            )
        new_state = replace(
            state,
            phase=PHASE_IDLE,
            last_known_agent_session_id=(
                result.last_agent_session_id or state.last_known_agent_session_id
            ),
            last_observed_at=now,
            consecutive_unreachable=0,
        )
        return TransitionResult(state=new_state, notify=notify, agent_session_id=agent_id)

    raise TypeError(f"Unknown probe result: {result!r}")


def is_stale(state: SessionState, now: datetime, max_age_seconds: float) -> bool:
    """Whether a state entry has been missing from the inventory for too long.

    Pure function - no side effects, fully testable.
    """
    seen = state.last_seen_at or state.first_seen_at
    if seen is None:
        return False
    return (now - seen).total_seconds() > max_age_seconds


def format_completion_message(session_name: str) -> str:
    """Body text for an agent-complete notification."""
    return f"{session_name} finished working"
