"""
Unit tests for the status prober.

Payload classification is tested directly; the HTTP path runs against a
throwaway local server.
"""

import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from devwatch.monitor_core import ProbeBusy, ProbeIdle, ProbeUnreachable
from devwatch.prober import (
    MalformedPayload,
    StatusProber,
    classify_status_payload,
    find_busy_session,
    is_busy_record,
    parse_recent_session_id,
)

from monitor_fakes import make_descriptor


# =============================================================================
# Payload classification
# =============================================================================

class TestIsBusyRecord:

    @pytest.mark.parametrize("record", [{"type": "busy"}, {"type": "retry"}, {"running": True}])
    def test_busy(self, record):
        assert is_busy_record(record) is True

    @pytest.mark.parametrize("record", [{"type": "idle"}, {"running": False}, {}, {"running": "yes"}])
    def test_not_busy(self, record):
        assert is_busy_record(record) is False

    def test_non_object_raises(self):
        with pytest.raises(MalformedPayload):
            is_busy_record("busy")


class TestFindBusySession:

    def test_first_busy_wins(self):
        payload = {"ses_a": {"type": "idle"}, "ses_b": {"type": "busy"}, "ses_c": {"type": "busy"}}
        assert find_busy_session(payload) == "ses_b"

    def test_none_busy(self):
        assert find_busy_session({"ses_a": {"type": "idle"}}) is None

    def test_empty(self):
        assert find_busy_session({}) is None

    def test_bad_record_after_busy_still_rejected(self):
        with pytest.raises(MalformedPayload):
            find_busy_session({"ses_a": {"type": "busy"}, "ses_b": 42})

    @pytest.mark.parametrize("payload", [[], None, "idle", 3])
    def test_non_object_payload(self, payload):
        with pytest.raises(MalformedPayload):
            find_busy_session(payload)


class TestClassifyStatusPayload:

    def test_busy(self):
        assert classify_status_payload({"s1": {"type": "busy"}}) == ProbeBusy("s1")

    def test_legacy_running_flag(self):
        assert classify_status_payload({"s1": {"running": True}}) == ProbeBusy("s1")

    def test_idle_carries_recent_id(self):
        result = classify_status_payload({"s1": {"type": "idle"}}, recent_session_id="s9")
        assert result == ProbeIdle("s9")

    def test_empty_is_idle(self):
        assert classify_status_payload({}) == ProbeIdle(None)

    def test_malformed_is_unreachable_not_idle(self):
        result = classify_status_payload(["s1"])
        assert isinstance(result, ProbeUnreachable)
        assert "malformed" in result.reason


class TestParseRecentSessionId:

    def test_first_entry(self):
        assert parse_recent_session_id([{"id": "ses_1"}, {"id": "ses_0"}]) == "ses_1"

    @pytest.mark.parametrize("payload", [[], {}, None, ["x"], [{"id": ""}], [{"id": 5}], [{}]])
    def test_unusable(self, payload):
        assert parse_recent_session_id(payload) is None


# =============================================================================
# HTTP probing
# =============================================================================

class AgentServer:
    """Minimal stand-in for an agent server's status API."""

    def __init__(self):
        self.routes = {}
        self.delay = 0.0
        self.requests = []
        server = self

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self):
                server.requests.append(self.path)
                if server.delay:
                    time.sleep(server.delay)
                status, body = server.routes.get(self.path, (404, "not found"))
                if not isinstance(body, (str, bytes)):
                    body = json.dumps(body)
                if isinstance(body, str):
                    body = body.encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def log_message(self, format, *args):
                pass

        self.httpd = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
        self.httpd.daemon_threads = True
        self.port = self.httpd.server_address[1]
        self.thread = threading.Thread(target=self.httpd.serve_forever, daemon=True)

    def start(self):
        self.thread.start()
        return self

    def stop(self):
        self.httpd.shutdown()
        self.httpd.server_close()


@pytest.fixture
def agent_server():
    server = AgentServer().start()
    yield server
    server.stop()


def free_port() -> int:
    import socket

    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class TestStatusProber:

    def test_busy(self, agent_server):
        agent_server.routes["/session/status"] = (200, {"ses_a": {"type": "busy"}})

        result = StatusProber(timeout=2.0).probe(make_descriptor("a", port=agent_server.port))

        assert result == ProbeBusy("ses_a")
        assert agent_server.requests == ["/session/status"]

    def test_idle_looks_up_recent_session(self, agent_server):
        agent_server.routes["/session/status"] = (200, {"ses_a": {"type": "idle"}})
        agent_server.routes["/session?limit=1"] = (200, [{"id": "ses_recent"}])

        result = StatusProber(timeout=2.0).probe(make_descriptor("a", port=agent_server.port))

        assert result == ProbeIdle("ses_recent")

    def test_idle_when_recent_lookup_fails(self, agent_server):
        agent_server.routes["/session/status"] = (200, {})

        result = StatusProber(timeout=2.0).probe(make_descriptor("a", port=agent_server.port))

        assert result == ProbeIdle(None)

    def test_http_error(self, agent_server):
        agent_server.routes["/session/status"] = (500, "oops")

        result = StatusProber(timeout=2.0).probe(make_descriptor("a", port=agent_server.port))

        assert result == ProbeUnreachable("HTTP 500")

    def test_invalid_json(self, agent_server):
        agent_server.routes["/session/status"] = (200, "{not json")

        result = StatusProber(timeout=2.0).probe(make_descriptor("a", port=agent_server.port))

        assert result == ProbeUnreachable("invalid JSON")

    def test_wrong_shape_is_unreachable(self, agent_server):
        agent_server.routes["/session/status"] = (200, ["ses_a"])

        result = StatusProber(timeout=2.0).probe(make_descriptor("a", port=agent_server.port))

        assert isinstance(result, ProbeUnreachable)

    def test_timeout(self, agent_server):
        agent_server.routes["/session/status"] = (200, {})
        agent_server.delay = 1.0

        started = time.monotonic()
        result = StatusProber(timeout=0.2).probe(make_descriptor("a", port=agent_server.port))

        assert isinstance(result, ProbeUnreachable)
        assert time.monotonic() - started < 1.0

    def test_connection_refused(self):
        result = StatusProber(timeout=1.0).probe(make_descriptor("a", port=free_port()))
        assert isinstance(result, ProbeUnreachable)

    def test_no_port(self):
        result = StatusProber().probe(make_descriptor("a", port=None))
        assert result == ProbeUnreachable("no port")

    def test_recent_lookup_skipped_when_deadline_spent(self, agent_server):
        agent_server.routes["/session/status"] = (200, {})
        agent_server.routes["/session?limit=1"] = (200, [{"id": "ses_recent"}])
        ticks = iter([0.0, 5.0])

        prober = StatusProber(timeout=2.0, clock=lambda: next(ticks))
        result = prober.probe(make_descriptor("a", port=agent_server.port))

        assert result == ProbeIdle(None)
        assert agent_server.requests == ["/session/status"]
