"""
Unit tests for the session inventory source.
"""

import json
import subprocess
from unittest.mock import patch

import pytest

from devwatch.inventory import (
    CommandInventorySource,
    SessionDescriptor,
    descriptor_from_dict,
    parse_inventory,
)


SAMPLE = [
    {
        "name": "api-auth",
        "worktree": "/home/me/dev/worktrees/api-auth",
        "opencode_port": 4101,
        "tmux_exists": True,
    },
    {
        "name": "docs",
        "worktree": "/home/me/dev/worktrees/docs",
        "opencode_port": 4102,
        "tmux_exists": False,
    },
]


class TestDescriptorFromDict:

    def test_full_entry(self):
        d = descriptor_from_dict(SAMPLE[0], host="10.0.0.5")

        assert d == SessionDescriptor(
            name="api-auth",
            status_endpoint_host="10.0.0.5",
            status_endpoint_port=4101,
            working_directory_path="/home/me/dev/worktrees/api-auth",
            is_host_process_active=True,
        )
        assert d.probeable is True

    def test_inactive_host_process_is_not_probeable(self):
        d = descriptor_from_dict(SAMPLE[1])
        assert d.is_host_process_active is False
        assert d.probeable is False

    def test_missing_port_is_not_probeable(self):
        d = descriptor_from_dict({"name": "x", "tmux_exists": True})
        assert d.status_endpoint_port is None
        assert d.probeable is False

    def test_string_port_is_accepted(self):
        d = descriptor_from_dict({"name": "x", "opencode_port": "4105"})
        assert d.status_endpoint_port == 4105

    @pytest.mark.parametrize("port", ["abc", 0, 70000, True, -1])
    def test_bad_port_is_dropped(self, port):
        d = descriptor_from_dict({"name": "x", "opencode_port": port})
        assert d.status_endpoint_port is None

    def test_truthy_non_bool_tmux_flag_is_inactive(self):
        d = descriptor_from_dict({"name": "x", "opencode_port": 1, "tmux_exists": "yes"})
        assert d.is_host_process_active is False

    @pytest.mark.parametrize("entry", [None, [], "name", {}, {"name": ""}, {"name": 3}])
    def test_unusable_entries(self, entry):
        assert descriptor_from_dict(entry) is None

    def test_missing_worktree_becomes_empty(self):
        d = descriptor_from_dict({"name": "x"})
        assert d.working_directory_path == ""


class TestParseInventory:

    def test_parses_array(self):
        descriptors = parse_inventory(json.dumps(SAMPLE))
        assert [d.name for d in descriptors] == ["api-auth", "docs"]

    def test_empty_array(self):
        assert parse_inventory("[]") == []

    def test_skips_malformed_entries(self):
        output = json.dumps([{"nope": 1}, SAMPLE[0], "junk"])
        assert [d.name for d in parse_inventory(output)] == ["api-auth"]

    def test_drops_duplicate_names(self):
        dup = dict(SAMPLE[0], opencode_port=4999)
        descriptors = parse_inventory(json.dumps([SAMPLE[0], dup]))
        assert len(descriptors) == 1
        assert descriptors[0].status_endpoint_port == 4101

    def test_object_is_rejected(self):
        with pytest.raises(ValueError):
            parse_inventory('{"sessions": []}')

    def test_invalid_json_is_rejected(self):
        with pytest.raises(ValueError):
            parse_inventory("not json")


def completed(stdout="", returncode=0, stderr=""):
    if isinstance(stdout, str):
        stdout = stdout.encode("utf-8")
    return subprocess.CompletedProcess(
        args=[], returncode=returncode, stdout=stdout, stderr=stderr.encode("utf-8")
    )


class TestCommandInventorySource:

    def test_default_command(self):
        assert CommandInventorySource().command == ["dev-list", "--json"]

    def test_runs_command_with_timeout(self):
        source = CommandInventorySource(command=["my-list", "--json"], timeout=2.5)
        with patch("devwatch.inventory.subprocess.run", return_value=completed("[]")) as run:
            assert source.fetch_inventory() == []

        run.assert_called_once_with(
            ["my-list", "--json"], capture_output=True, timeout=2.5
        )

    def test_returns_descriptors(self):
        source = CommandInventorySource(host="192.168.1.4")
        with patch("devwatch.inventory.subprocess.run", return_value=completed(json.dumps(SAMPLE))):
            descriptors = source.fetch_inventory()

        assert len(descriptors) == 2
        assert all(d.status_endpoint_host == "192.168.1.4" for d in descriptors)

    def test_missing_command(self, caplog):
        with patch("devwatch.inventory.subprocess.run", side_effect=FileNotFoundError()):
            assert CommandInventorySource().fetch_inventory() == []
        assert "not found" in caplog.text

    def test_timeout(self):
        exc = subprocess.TimeoutExpired(cmd="dev-list", timeout=10)
        with patch("devwatch.inventory.subprocess.run", side_effect=exc):
            assert CommandInventorySource().fetch_inventory() == []

    def test_os_error(self):
        with patch("devwatch.inventory.subprocess.run", side_effect=PermissionError("denied")):
            assert CommandInventorySource().fetch_inventory() == []

    def test_nonzero_exit(self, caplog):
        with patch(
            "devwatch.inventory.subprocess.run",
            return_value=completed(stdout="[]", returncode=1, stderr="boom"),
        ):
            assert CommandInventorySource().fetch_inventory() == []
        assert "exited 1" in caplog.text

    def test_garbage_output(self):
        with patch("devwatch.inventory.subprocess.run", return_value=completed("<html>")):
            assert CommandInventorySource().fetch_inventory() == []

    def test_non_utf8_output_returns_empty(self, caplog):
        output = b'[{"name": "a", "worktree": "/home/\xff"}]'
        with patch("devwatch.inventory.subprocess.run", return_value=completed(output)):
            assert CommandInventorySource().fetch_inventory() == []
        assert "not valid" in caplog.text

    def test_non_utf8_stderr_is_logged(self, caplog):
        result = subprocess.CompletedProcess(args=[], returncode=2, stdout=b"", stderr=b"bad \xff path")
        with patch("devwatch.inventory.subprocess.run", return_value=result):
            assert CommandInventorySource().fetch_inventory() == []
        assert "exited 2" in caplog.text

    def test_real_subprocess_with_undecodable_output(self, tmp_path):
        script = tmp_path / "dev-list"
        script.write_text("#!/bin/sh\nprintf '[{\"name\": \"a\", \"worktree\": \"/home/\\377\"}]'\n")
        script.chmod(0o755)

        assert CommandInventorySource(command=[str(script)]).fetch_inventory() == []

    def test_real_subprocess(self, tmp_path):
        """Runs an actual command that prints a listing."""
        script = tmp_path / "dev-list"
        script.write_text("#!/bin/sh\necho '%s'\n" % json.dumps(SAMPLE[:1]))
        script.chmod(0o755)

        descriptors = CommandInventorySource(command=[str(script)]).fetch_inventory()

        assert [d.name for d in descriptors] == ["api-auth"]
