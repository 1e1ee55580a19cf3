"""
Protocol definitions for the monitor's external collaborators.

These interfaces allow dependency injection for testing, so the
MonitorDaemon can run against fake inventories, probers and notifiers
instead of subprocesses and HTTP.
"""

from typing import List, Optional, Protocol, Sequence, TYPE_CHECKING, runtime_checkable

if TYPE_CHECKING:
    from .inventory import SessionDescriptor
    from .monitor_core import ProbeResult


@runtime_checkable
class InventorySource(Protocol):
    """Interface for obtaining the current session inventory."""

    def fetch_inventory(self) -> List["SessionDescriptor"]:
        """Return the current sessions.

        Must never raise; returns an empty list on failure.
        """
        ...


@runtime_checkable
class StatusProberProtocol(Protocol):
    """Interface for probing one session's agent server."""

    def probe(self, descriptor: "SessionDescriptor") -> "ProbeResult":
        """Probe one session. Must never raise."""
        ...


@runtime_checkable
class NotifierProtocol(Protocol):
    """Interface for sending one outbound notification."""

    def notify(
        self,
        title: str,
        message: str,
        tags: Sequence[str] = (),
        click: Optional[str] = None,
        priority: Optional[int] = None,
    ) -> bool:
        """Send a notification. Returns True if delivered. Must never raise."""
        ...
