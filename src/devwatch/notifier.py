"""
ntfy notifications for finished agents.

Posts one message per busy -> idle transition to an ntfy-compatible relay
(POST {server}/{topic}, metadata in headers, message as the body).

Delivery is at-most-once: failures are logged and dropped, never retried.
Duplicate suppression is the StateTracker's job, not ours.
"""

import socket
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from http.client import HTTPException
from typing import Optional, Sequence
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .logging_config import get_logger
from .monitor_core import NotificationEvent, format_completion_message

logger = get_logger("notifier")

TITLE_AGENT_COMPLETE = "Agent Complete"
TAGS_AGENT_COMPLETE = ("white_check_mark", "robot")

TITLE_MONITOR_STARTED = "Monitor Started"
MESSAGE_MONITOR_STARTED = "Agent monitor is now running"
TAGS_MONITOR_STARTED = ("eyes",)


class NtfyNotifier:
    """Sends notifications to an ntfy relay topic."""

    def __init__(self, server: str, topic: str, timeout: float = 5.0):
        self.server = server.rstrip("/")
        self.topic = topic
        self.timeout = timeout

    @property
    def url(self) -> str:
        return f"{self.server}/{self.topic}"

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    @staticmethod
    def _headers(
        title: str,
        tags: Sequence[str],
        click: Optional[str] = None,
        priority: Optional[int] = None,
    ) -> dict:
        """Return ntfy headers for a message.

        Priority is clamped to 1-5; a value that isn't a number is left out.
        """
        headers = {"Title": title}
        if tags:
            headers["Tags"] = ",".join(tags)
        if click:
            headers["Click"] = click
        if priority is not None:
            try:
                level = int(priority)
            except (TypeError, ValueError):
                logger.debug("Ignoring non-numeric priority %r", priority)
            else:
                headers["Priority"] = str(max(1, min(5, level)))
        return headers

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def notify(
        self,
        title: str,
        message: str,
        tags: Sequence[str] = (),
        click: Optional[str] = None,
        priority: Optional[int] = None,
    ) -> bool:
        """Send one notification. Returns True on a 2xx response.

        Never raises.
        """
        try:
            req = Request(
                self.url,
                data=message.encode("utf-8"),
                method="POST",
                headers=self._headers(title, tags, click, priority),
            )
            with urlopen(req, timeout=self.timeout) as resp:
                status = resp.status
        except HTTPError as e:
            logger.warning("ntfy rejected '%s': HTTP %d", title, e.code)
            return False
        except (URLError, socket.timeout, OSError, HTTPException, ValueError) as e:
            # ValueError covers bodies and headers that can't be encoded
            logger.warning("ntfy send failed for '%s': %s", title, getattr(e, "reason", e))
            return False

        if not 200 <= status < 300:
            logger.warning("ntfy returned HTTP %d for '%s'", status, title)
            return False

        logger.info("ntfy sent: %s - %s", title, message)
        return True


# ----------------------------------------------------------------------
# Message helpers
# ----------------------------------------------------------------------


def agent_complete_message(event: NotificationEvent) -> tuple:
    """Return (title, message, tags) for an agent completion."""
    return (
        TITLE_AGENT_COMPLETE,
        format_completion_message(event.session_name),
        list(TAGS_AGENT_COMPLETE),
    )


class NotificationDispatcher:
    """Runs notifier calls on a small thread pool.

    The monitor loop submits and moves on; the outcome of each send is
    only logged. Each send is bounded by the notifier's own timeout.
    """

    def __init__(self, notifier, max_workers: int = 4):
        self.notifier = notifier
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="devwatch-notify"
        )
        self._lock = threading.Lock()
        self._outstanding: set = set()
        self.sent = 0
        self.failed = 0

    def submit(
        self,
        title: str,
        message: str,
        tags: Sequence[str] = (),
        click: Optional[str] = None,
        priority: Optional[int] = None,
    ) -> Future:
        future = self._executor.submit(self._send, title, message, list(tags), click, priority)
        with self._lock:
            self._outstanding.add(future)
        future.add_done_callback(self._forget)
        return future

    def _send(self, title, message, tags, click, priority) -> bool:
        try:
            ok = bool(self.notifier.notify(title, message, tags, click, priority))
        except Exception as e:
            logger.error("Notification '%s' raised: %s", title, e)
            ok = False
        with self._lock:
            if ok:
                self.sent += 1
            else:
                self.failed += 1
        return ok

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._outstanding.discard(future)

    def drain(self, timeout: float) -> int:
        """Wait up to timeout for outstanding sends. Returns how many are left."""
        with self._lock:
            outstanding = list(self._outstanding)
        if not outstanding:
            return 0
        _, not_done = wait(outstanding, timeout=timeout)
        return len(not_done)

    def shutdown(self, wait_for_pending: bool = False) -> None:
        """Stop accepting work. Queued sends are dropped unless wait_for_pending."""
        self._executor.shutdown(wait=wait_for_pending, cancel_futures=not wait_for_pending)
