"""
Per-session transition state for the monitor.

StateTracker is an explicit store owned by the MonitorDaemon (no module
globals), so tests can drive the transition table against a fresh
instance.
"""

from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .logging_config import get_logger
from .monitor_core import (
    NotificationEvent,
    ProbeResult,
    SessionState,
    apply_probe,
    is_stale,
)
from .status_constants import LINK_PREFER_PROBE

logger = get_logger("state")


class StateTracker:
    """Owns the authoritative session-name -> SessionState map.

    Not thread-safe: the monitor only mutates it from the loop thread,
    after each tick's probe fan-out has joined.
    """

    def __init__(self, link_preference: str = LINK_PREFER_PROBE):
        self.link_preference = link_preference
        self._states: Dict[str, SessionState] = {}

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, name: str) -> bool:
        return name in self._states

    def get(self, name: str) -> Optional[SessionState]:
        return self._states.get(name)

    def snapshot(self) -> Dict[str, SessionState]:
        """Return a shallow copy of the state map (states are immutable)."""
        return dict(self._states)

    def _ensure(self, name: str, now: datetime) -> SessionState:
        state = self._states.get(name)
        if state is None:
            state = SessionState(first_seen_at=now, last_seen_at=now)
            self._states[name] = state
        return state

    def mark_seen(self, names: Iterable[str], now: datetime) -> None:
        """Record that these names appeared in the current inventory."""
        for name in names:
            state = self._ensure(name, now)
            if state.last_seen_at != now:
                self._states[name] = replace(state, last_seen_at=now)

    def update(
        self,
        name: str,
        result: ProbeResult,
        now: datetime,
        working_directory_path: str = "",
        endpoint_port: Optional[int] = None,
        endpoint_host: str = "127.0.0.1",
    ) -> Optional[NotificationEvent]:
        """Feed one probe result for a session.

        Returns:
            A NotificationEvent for a busy -> idle edge, otherwise None
        """
        previous = self._ensure(name, now)
        transition = apply_probe(previous, result, now, self.link_preference)
        self._states[name] = transition.state

        if previous.phase != transition.state.phase:
            logger.debug("%s: %s -> %s", name, previous.phase, transition.state.phase)

        if not transition.notify:
            return None

        return NotificationEvent(
            session_name=name,
            agent_session_id=transition.agent_session_id,
            working_directory_path=working_directory_path,
            endpoint_port=endpoint_port,
            endpoint_host=endpoint_host,
        )

    def prune(self, now: datetime, max_age_seconds: float) -> List[str]:
        """Drop entries not seen in any inventory for max_age_seconds.

        Must only be called between ticks.

        Returns:
            Names that were removed
        """
        stale = [
            name for name, state in self._states.items()
            if is_stale(state, now, max_age_seconds)
        ]
        for name in stale:
            del self._states[name]
        if stale:
            logger.debug("Pruned %d stale session(s): %s", len(stale), ", ".join(sorted(stale)))
        return stale
