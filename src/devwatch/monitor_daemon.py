#!/usr/bin/env python3
"""
Monitor Daemon - watches dev-session agents and pings when they finish.

Each loop (tick):
1. Fetch the session inventory (dev-list)
2. Probe every active session's agent server concurrently
3. Feed results into the StateTracker
4. For each busy -> idle edge, build a deep link and dispatch a notification
5. Sleep for the rest of the interval

Ticks never overlap. The first tick after startup only records baselines
(nothing is busy -> idle yet), then an optional "monitor started"
notification is sent.

Nothing that happens inside a tick stops the loop: inventory, probe and
notification failures are values, and anything unexpected is logged and
the next tick runs as usual.

Pure business logic lives in monitor_core.py for testability.
"""

import os
import signal
import sys
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from .inventory import CommandInventorySource, SessionDescriptor
from .links import build_link
from .logging_config import get_logger
from .monitor_core import (
    NotificationEvent,
    ProbeBusy,
    ProbeIdle,
    ProbeResult,
    ProbeUnreachable,
)
from .notifier import (
    MESSAGE_MONITOR_STARTED,
    TAGS_MONITOR_STARTED,
    TITLE_MONITOR_STARTED,
    NotificationDispatcher,
    NtfyNotifier,
    agent_complete_message,
)
from .prober import StatusProber
from .protocols import InventorySource, NotifierProtocol, StatusProberProtocol
from .settings import MonitorSettings
from .state_tracker import StateTracker

logger = get_logger("monitor")

# Extra time the fan-out join allows beyond the per-probe timeout before
# abandoning a probe as unreachable.
PROBE_JOIN_GRACE_SECONDS = 1.0


@dataclass
class TickReport:
    """Summary of one tick."""

    loop: int
    inventory_size: int = 0
    probed: int = 0
    skipped: int = 0
    busy: int = 0
    idle: int = 0
    unreachable: int = 0
    events: List[NotificationEvent] = field(default_factory=list)
    dispatches: List[Future] = field(default_factory=list)
    duration_seconds: float = 0.0

    def summary(self) -> str:
        return (
            f"{self.inventory_size} sessions "
            f"(probed {self.probed}, skipped {self.skipped}: "
            f"{self.busy} busy, {self.idle} idle, {self.unreachable} unreachable), "
            f"{len(self.events)} notification(s)"
        )


class MonitorDaemon:
    """Scheduler for the agent activity monitor.

    All collaborators are injectable; by default they are built from
    settings (dev-list command, HTTP prober, ntfy notifier).
    """

    def __init__(
        self,
        settings: Optional[MonitorSettings] = None,
        source: Optional[InventorySource] = None,
        prober: Optional[StatusProberProtocol] = None,
        notifier: Optional[NotifierProtocol] = None,
        tracker: Optional[StateTracker] = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or MonitorSettings()
        self.source = source or CommandInventorySource(
            command=self.settings.inventory_command,
            host=self.settings.opencode_host,
            timeout=self.settings.inventory_timeout_seconds,
        )
        self.prober = prober or StatusProber(timeout=self.settings.probe_timeout_seconds)
        self.notifier = notifier or NtfyNotifier(
            self.settings.ntfy_server,
            self.settings.ntfy_topic,
            timeout=self.settings.notify_timeout_seconds,
        )
        if tracker is None:
            tracker = StateTracker(self.settings.link_session_preference)
        self.tracker = tracker
        self.dispatcher = NotificationDispatcher(self.notifier)

        self._clock = clock
        self._now = now
        self._sleep = sleep
        self._probe_executor = ThreadPoolExecutor(
            max_workers=self.settings.max_probe_workers,
            thread_name_prefix="devwatch-probe",
        )
        self._join_timeout = self.settings.probe_timeout_seconds + PROBE_JOIN_GRACE_SECONDS
        # Probes abandoned at a join deadline that may still hold a worker
        self._in_flight: Dict[str, Future] = {}

        self.loop_count = 0
        self.started_at: Optional[datetime] = None
        self._last_summary: Optional[str] = None

        # Shutdown flag
        self._shutdown = False

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------

    def probe_all(self, descriptors: Sequence[SessionDescriptor]) -> Dict[str, ProbeResult]:
        """Probe sessions concurrently, bounded by the join deadline.

        Probes still running at the deadline are abandoned and reported
        as unreachable. A session whose abandoned probe has not finished yet
        is not probed again, so a hung agent server ties up one worker at
        most.
        """
        if not descriptors:
            return {}

        self._in_flight = {name: f for name, f in self._in_flight.items() if not f.done()}

        results: Dict[str, ProbeResult] = {}
        futures = []
        for descriptor in descriptors:
            if descriptor.name in self._in_flight:
                results[descriptor.name] = ProbeUnreachable(reason="previous probe still running")
                continue
            futures.append((descriptor, self._probe_executor.submit(self.prober.probe, descriptor)))

        if not futures:
            return results
        _, not_done = wait([f for _, f in futures], timeout=self._join_timeout)

        for descriptor, future in futures:
            if future in not_done:
                # cancel() only drops probes still queued; running ones keep their worker
                if not future.cancel():
                    self._in_flight[descriptor.name] = future
                results[descriptor.name] = ProbeUnreachable(reason="probe deadline exceeded")
                continue
            exc = future.exception()
            if exc is not None:
                logger.warning("Probe for %s raised: %s", descriptor.name, exc)
                results[descriptor.name] = ProbeUnreachable(reason=str(exc))
            else:
                results[descriptor.name] = future.result()
        return results

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def link_for(self, event: NotificationEvent) -> str:
        """Deep link for a completion event.

        Falls back to the dashboard when the agent port is unknown.
        """
        if event.endpoint_port is None:
            return self.settings.dashboard_url
        host = self.settings.link_host or event.endpoint_host
        return build_link(host, event.endpoint_port, event.working_directory_path, event.agent_session_id)

    def dispatch(self, event: NotificationEvent) -> Future:
        """Hand one completion event to the notifier without waiting on it."""
        title, message, tags = agent_complete_message(event)
        click = self.link_for(event)
        logger.info(
            "%s finished working (agent session %s)",
            event.session_name,
            event.agent_session_id or "unknown",
        )
        return self.dispatcher.submit(title, message, tags, click)

    def send_startup_notification(self) -> Future:
        return self.dispatcher.submit(
            TITLE_MONITOR_STARTED,
            MESSAGE_MONITOR_STARTED,
            TAGS_MONITOR_STARTED,
            self.settings.dashboard_url,
        )

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self) -> TickReport:
        """Run one poll-probe-update-notify cycle."""
        started = self._clock()
        now = self._now()
        self.loop_count += 1
        report = TickReport(loop=self.loop_count)

        descriptors = self.source.fetch_inventory()
        report.inventory_size = len(descriptors)
        self.tracker.mark_seen([d.name for d in descriptors], now)

        active = [d for d in descriptors if d.probeable]
        report.skipped = len(descriptors) - len(active)
        results = self.probe_all(active)
        report.probed = len(results)

        # State updates happen here on the loop thread, after the join
        for descriptor in active:
            result = results[descriptor.name]
            event = self.tracker.update(
                descriptor.name,
                result,
                now,
                working_directory_path=descriptor.working_directory_path,
                endpoint_port=descriptor.status_endpoint_port,
                endpoint_host=descriptor.status_endpoint_host,
            )
            self._count(report, descriptor.name, result)
            if event is not None:
                report.events.append(event)

        for event in report.events:
            report.dispatches.append(self.dispatch(event))

        report.duration_seconds = self._clock() - started
        self._log_report(report)
        return report

    def _count(self, report: TickReport, name: str, result: ProbeResult) -> None:
        if isinstance(result, ProbeBusy):
            report.busy += 1
        elif isinstance(result, ProbeIdle):
            report.idle += 1
        else:
            report.unreachable += 1
            state = self.tracker.get(name)
            if state is not None and state.consecutive_unreachable == 1:
                logger.warning("%s unreachable: %s", name, result.reason)
            else:
                logger.debug("%s still unreachable: %s", name, result.reason)

    def _log_report(self, report: TickReport) -> None:
        summary = report.summary()
        if summary != self._last_summary or report.events:
            logger.info("Loop #%d: %s", report.loop, summary)
        else:
            logger.debug("Loop #%d: %s", report.loop, summary)
        self._last_summary = summary

    def _safe_tick(self) -> Optional[TickReport]:
        try:
            return self.tick()
        except Exception:
            logger.exception("Tick #%d failed; continuing", self.loop_count)
            return None

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def request_shutdown(self) -> None:
        self._shutdown = True

    def _interruptible_sleep(self, total_seconds: float) -> None:
        """Sleep in small chunks so a shutdown signal is noticed quickly."""
        chunk_size = 0.5
        elapsed = 0.0

        while elapsed < total_seconds and not self._shutdown:
            sleep_time = min(chunk_size, total_seconds - elapsed)
            self._sleep(sleep_time)
            elapsed += sleep_time

    def _install_signal_handlers(self) -> None:
        def handle_shutdown(signum, frame):
            logger.info("Shutdown signal received")
            self._shutdown = True

        signal.signal(signal.SIGTERM, handle_shutdown)
        signal.signal(signal.SIGINT, handle_shutdown)

    def run(self, max_ticks: Optional[int] = None, install_signal_handlers: bool = True) -> int:
        """Main loop. Returns the process exit code (0 on graceful shutdown).

        Args:
            max_ticks: Stop after this many ticks including the priming tick
                (None runs until a shutdown signal)
            install_signal_handlers: Install SIGTERM/SIGINT handlers; only
                possible from the main thread
        """
        settings = self.settings
        logger.info("Agent monitor starting (PID %d)", os.getpid())
        logger.info("ntfy: %s", settings.relay_url)
        logger.info("Dashboard: %s", settings.dashboard_url)
        logger.info("Poll interval: %dms, probe timeout: %dms", settings.poll_interval_ms, settings.probe_timeout_ms)

        if install_signal_handlers:
            self._install_signal_handlers()

        self.started_at = self._now()
        interval = settings.poll_interval_seconds
        ticks = 0

        try:
            while not self._shutdown:
                tick_started = self._clock()
                report = self._safe_tick()
                ticks += 1

                if ticks == 1:
                    logger.info("Tracking %d session(s)", len(self.tracker))
                    if settings.startup_notification:
                        self.send_startup_notification()

                # Garbage-collect between ticks, and never off an empty
                # inventory (which may just be a failed dev-list)
                if report is not None and report.inventory_size:
                    self.tracker.prune(self._now(), settings.state_ttl_seconds)

                if max_ticks is not None and ticks >= max_ticks:
                    break

                remaining = interval - (self._clock() - tick_started)
                if remaining > 0:
                    self._interruptible_sleep(remaining)
        finally:
            logger.info("Agent monitor shutting down")
            self.close()

        return 0

    def close(self) -> None:
        """Release worker threads.

        In-flight notifications get one notify timeout to finish; anything
        still queued after that is dropped.
        """
        self._probe_executor.shutdown(wait=False, cancel_futures=True)
        left = self.dispatcher.drain(self.settings.notify_timeout_seconds)
        if left:
            logger.warning("Dropping %d undelivered notification(s)", left)
        self.dispatcher.shutdown(wait_for_pending=False)


def main() -> int:
    """Entrypoint for `python -m devwatch.monitor_daemon`."""
    from .logging_config import setup_daemon_logging
    from .settings import ConfigError, load_settings

    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_daemon_logging(level=settings.log_level)
    return MonitorDaemon(settings).run()


if __name__ == "__main__":
    sys.exit(main())
