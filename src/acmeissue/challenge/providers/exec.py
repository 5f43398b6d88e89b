"""DNS-01 provider delegating to an external program.

The program is called as::

    <command> present <fqdn> <value>
    <command> cleanup <fqdn> <value>

and must exit 0 once the record has been created or removed.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from typing import TYPE_CHECKING, Any

from acmeissue.challenge.base import Solver, SolverError
from acmeissue.challenge.dns01 import dns01_record
from acmeissue.core.types import ChallengeType

if TYPE_CHECKING:
    from collections.abc import Mapping

log = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 60


class ExecDnsSolver(Solver):
    """Create and remove TXT records by running a command.

    Config keys:

    - ``command``: program to run (a string is split shell-style)
    - ``timeout``: seconds allowed per invocation (default 60)
    - ``propagation_timeout`` / ``propagation_interval``: custom
      propagation window; both must be set to take effect
    - ``sequential``: never run two invocations at once
    """

    challenge_type = ChallengeType.DNS_01
    description = "Run an external program to create and remove TXT records"

    def __init__(self, config: Mapping[str, Any] | None = None) -> None:
        super().__init__(config)
        command = self.config.get("command")
        if not command:
            msg = "exec provider requires a 'command'"
            raise SolverError(msg)
        self.command = shlex.split(command) if isinstance(command, str) else list(command)
        self.script_timeout = float(self.config.get("timeout", _DEFAULT_TIMEOUT))
        self.sequential = bool(self.config.get("sequential", False))

    def present(self, domain: str, token: str, key_auth: str) -> None:
        self._run("present", *dns01_record(domain, key_auth))

    def cleanup(self, domain: str, token: str, key_auth: str) -> None:
        self._run("cleanup", *dns01_record(domain, key_auth))

    def timeout(self) -> tuple[float, float] | None:
        propagation = self.config.get("propagation_timeout")
        interval = self.config.get("propagation_interval")
        if propagation is None or interval is None:
            return None
        return float(propagation), float(interval)

    def _run(self, action: str, fqdn: str, value: str) -> None:
        log.info("DNS %s: %s via %s", action, fqdn, self.command[0])
        try:
            subprocess.run(  # noqa: S603
                [*self.command, action, fqdn, value],
                check=True,
                timeout=self.script_timeout,
                capture_output=True,
                text=True,
            )
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or "").strip()
            msg = f"{self.command[0]} {action} {fqdn} exited with {exc.returncode}: {stderr}"
            raise SolverError(msg) from exc
        except subprocess.TimeoutExpired as exc:
            msg = f"{self.command[0]} {action} {fqdn} timed out after {self.script_timeout:g}s"
            raise SolverError(msg, retryable=True) from exc
        except OSError as exc:
            msg = f"Cannot run {self.command[0]}: {exc}"
            raise SolverError(msg) from exc
