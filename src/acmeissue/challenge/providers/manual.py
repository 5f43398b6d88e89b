"""Manual DNS-01 provider.

Prints the TXT record an operator has to create and blocks until they
press Enter.  Prompts are serialised: only one domain is presented at a
time.
"""

from __future__ import annotations

import logging
import sys
from typing import IO, TYPE_CHECKING, Any

from acmeissue.challenge.base import Solver, SolverError
from acmeissue.challenge.dns01 import dns01_record
from acmeissue.core.types import ChallengeType

if TYPE_CHECKING:
    from collections.abc import Mapping

log = logging.getLogger(__name__)

RECORD_TEMPLATE = '%s %d IN TXT "%s"'

_DEFAULT_TTL = 120


class ManualDnsSolver(Solver):
    """Ask the operator to publish the TXT record by hand.

    Config keys: ``ttl`` (shown in the printed record, default 120).
    """

    challenge_type = ChallengeType.DNS_01
    description = "Print the TXT record and wait for the operator to create it"
    sequential = True

    def __init__(
        self,
        config: Mapping[str, Any] | None = None,
        *,
        stdin: IO[str] | None = None,
        stdout: IO[str] | None = None,
    ) -> None:
        super().__init__(config)
        self.ttl = int(self.config.get("ttl", _DEFAULT_TTL))
        self._stdin = stdin
        self._stdout = stdout

    @property
    def stdin(self) -> IO[str]:
        return self._stdin or sys.stdin

    @property
    def stdout(self) -> IO[str]:
        return self._stdout or sys.stdout

    def present(self, domain: str, token: str, key_auth: str) -> None:
        fqdn, value = dns01_record(domain, key_auth)
        out = self.stdout
        out.write("Please create the following TXT record in your DNS zone:\n")
        out.write(RECORD_TEMPLATE % (fqdn, self.ttl, value) + "\n")
        out.write("Press 'Enter' when you are done\n")
        out.flush()
        if not self.stdin.readline():
            msg = f"No confirmation received for {fqdn} (end of input)"
            raise SolverError(msg)
        log.info("Operator confirmed TXT record %s", fqdn)

    def cleanup(self, domain: str, token: str, key_auth: str) -> None:
        fqdn, _ = dns01_record(domain, key_auth)
        out = self.stdout
        out.write("You can now remove this TXT record from your DNS zone:\n")
        out.write(RECORD_TEMPLATE % (fqdn, self.ttl, "...") + "\n")
        out.flush()
