"""Tests for the manual and exec DNS-01 providers."""

from __future__ import annotations

import io
import subprocess
from unittest.mock import patch

import pytest

from acmeissue.challenge.base import SolverError
from acmeissue.challenge.dns01 import dns01_record
from acmeissue.challenge.providers.exec import ExecDnsSolver
from acmeissue.challenge.providers.manual import ManualDnsSolver

KEY_AUTH = "tok.thumb"
FQDN, VALUE = dns01_record("example.com", KEY_AUTH)

# ---------------------------------------------------------------------------
# Manual
# ---------------------------------------------------------------------------


class TestManualDnsSolver:
    def test_prints_record_and_waits_for_enter(self):
        out = io.StringIO()
        solver = ManualDnsSolver({"ttl": 300}, stdin=io.StringIO("\n"), stdout=out)
        solver.present("*.example.com", "tok", KEY_AUTH)
        assert f'{FQDN} 300 IN TXT "{VALUE}"' in out.getvalue()
        assert "Press 'Enter'" in out.getvalue()

    def test_end_of_input_fails(self):
        solver = ManualDnsSolver(stdin=io.StringIO(""), stdout=io.StringIO())
        with pytest.raises(SolverError, match="end of input"):
            solver.present("example.com", "tok", KEY_AUTH)

    def test_cleanup_reminds_operator(self):
        out = io.StringIO()
        ManualDnsSolver(stdout=out).cleanup("example.com", "tok", KEY_AUTH)
        assert "remove this TXT record" in out.getvalue()
        assert f"{FQDN} 120 IN TXT" in out.getvalue()

    def test_is_sequential(self):
        assert ManualDnsSolver().sequential


# ---------------------------------------------------------------------------
# Exec
# ---------------------------------------------------------------------------


@pytest.fixture()
def run():
    with patch("acmeissue.challenge.providers.exec.subprocess.run") as mocked:
        yield mocked


class TestExecDnsSolver:
    def test_requires_command(self):
        with pytest.raises(SolverError, match="requires a 'command'"):
            ExecDnsSolver({})

    def test_command_string_is_split(self):
        solver = ExecDnsSolver({"command": "/opt/hooks/dns --zone 'my zone'"})
        assert solver.command == ["/opt/hooks/dns", "--zone", "my zone"]

    def test_present_and_cleanup_arguments(self, run):
        solver = ExecDnsSolver({"command": ["/opt/hooks/dns"], "timeout": 15})
        solver.present("example.com", "tok", KEY_AUTH)
        solver.cleanup("example.com", "tok", KEY_AUTH)

        calls = [c.args[0] for c in run.call_args_list]
        assert calls == [
            ["/opt/hooks/dns", "present", FQDN, VALUE],
            ["/opt/hooks/dns", "cleanup", FQDN, VALUE],
        ]
        assert run.call_args.kwargs["timeout"] == 15.0
        assert run.call_args.kwargs["check"] is True

    def test_non_zero_exit(self, run):
        run.side_effect = subprocess.CalledProcessError(3, ["hook"], stderr="zone not found\n")
        solver = ExecDnsSolver({"command": "hook"})
        with pytest.raises(SolverError, match="exited with 3: zone not found$") as exc_info:
            solver.present("example.com", "tok", KEY_AUTH)
        assert not exc_info.value.retryable

    def test_timeout_is_retryable(self, run):
        run.side_effect = subprocess.TimeoutExpired(["hook"], 60)
        with pytest.raises(SolverError, match="timed out after 60s") as exc_info:
            ExecDnsSolver({"command": "hook"}).present("example.com", "tok", KEY_AUTH)
        assert exc_info.value.retryable

    def test_missing_program(self, run):
        run.side_effect = FileNotFoundError(2, "No such file or directory")
        with pytest.raises(SolverError, match="Cannot run hook"):
            ExecDnsSolver({"command": "hook"}).cleanup("example.com", "tok", KEY_AUTH)

    def test_propagation_window(self):
        assert ExecDnsSolver({"command": "hook"}).timeout() is None
        assert ExecDnsSolver({"command": "hook", "propagation_timeout": 5}).timeout() is None
        solver = ExecDnsSolver({"command": "hook", "propagation_timeout": 300, "propagation_interval": 15})
        assert solver.timeout() == (300.0, 15.0)

    def test_sequential_flag(self):
        assert not ExecDnsSolver({"command": "hook"}).sequential
        assert ExecDnsSolver({"command": "hook", "sequential": True}).sequential
