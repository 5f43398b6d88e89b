"""DNS-01 record helpers and propagation checking (RFC 8555 §8.4).

The proof for ``example.com`` is a TXT record at
``_acme-challenge.example.com`` holding the base64url-encoded SHA-256
digest of the key authorization.  Wildcard identifiers publish under the
base domain.

Before the authority is told to validate, :class:`PropagationChecker`
polls DNS until the record is visible.  Three strategies exist:

``authoritative``
    Look up the zone's NS set and query those servers directly.
``recursive``
    Query the configured resolvers (or the system ones).
``none``
    Do not check; rely on the authority's own retries.
"""

from __future__ import annotations

import hashlib
import logging
from typing import TYPE_CHECKING

import dns.exception
import dns.name
import dns.resolver

from acmeissue.core.jws import b64url_encode
from acmeissue.core.poll import Poll
from acmeissue.core.types import PropagationStrategy
from acmeissue.errors import PropagationTimeout

if TYPE_CHECKING:
    import threading
    from collections.abc import Sequence

log = logging.getLogger(__name__)

CHALLENGE_LABEL = "_acme-challenge"


def dns01_record(domain: str, key_auth: str) -> tuple[str, str]:
    """Return ``(fqdn, value)`` of the TXT record proving *domain*.

    The FQDN carries a trailing dot.
    """
    digest = hashlib.sha256(key_auth.encode("ascii")).digest()
    base = domain.removeprefix("*.").rstrip(".")
    return f"{CHALLENGE_LABEL}.{base}.", b64url_encode(digest)


class PropagationChecker:
    """Poll DNS until a TXT record carries the expected value.

    Parameters
    ----------
    strategy:
        Which servers to ask; see the module docstring.
    resolvers:
        Recursive resolver addresses; empty means the system
        configuration.  Also used to locate the authoritative servers.
    query_timeout:
        Lifetime of a single DNS query in seconds.

    """

    def __init__(
        self,
        strategy: PropagationStrategy | str = PropagationStrategy.AUTHORITATIVE,
        resolvers: Sequence[str] = (),
        query_timeout: float = 10.0,
    ) -> None:
        self.strategy = PropagationStrategy(strategy)
        self.resolvers = list(resolvers)
        self.query_timeout = query_timeout

    def _resolver(self, nameservers: Sequence[str] | None = None) -> dns.resolver.Resolver:
        if nameservers:
            resolver = dns.resolver.Resolver(configure=False)
            resolver.nameservers = list(nameservers)
        else:
            resolver = dns.resolver.Resolver()
            if self.resolvers:
                resolver.nameservers = list(self.resolvers)
        resolver.lifetime = self.query_timeout
        return resolver

    def authoritative_servers(self, fqdn: str) -> list[str]:
        """Return the addresses of the nameservers of *fqdn*'s zone.

        An empty list means the lookup failed; callers fall back to the
        recursive resolvers.
        """
        recursive = self._resolver()
        try:
            zone = dns.resolver.zone_for_name(fqdn, resolver=recursive)
            ns_answer = recursive.resolve(zone, "NS")
        except dns.exception.DNSException as exc:
            log.warning("Authoritative NS lookup failed for %s: %s", fqdn, exc)
            return []

        addresses: list[str] = []
        for rdata in ns_answer:
            ns_name = rdata.target.to_text()
            for rdtype in ("A", "AAAA"):
                try:
                    answer = recursive.resolve(ns_name, rdtype)
                except dns.exception.DNSException:
                    continue
                addresses.extend(a.address for a in answer)
        log.debug("Authoritative servers for %s: %s", zone, addresses)
        return addresses

    def lookup(self, fqdn: str, nameservers: Sequence[str] | None = None) -> list[str]:
        """Return the TXT values currently visible at *fqdn*."""
        resolver = self._resolver(nameservers)
        try:
            answer = resolver.resolve(dns.name.from_text(fqdn), "TXT")
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return []
        except dns.exception.DNSException as exc:
            log.debug("TXT query for %s failed: %s", fqdn, exc)
            return []
        return [b"".join(rdata.strings).decode("ascii", errors="replace") for rdata in answer]

    def wait(
        self,
        fqdn: str,
        value: str,
        *,
        timeout: float,
        interval: float,
        cancel: threading.Event | None = None,
    ) -> None:
        """Block until *value* is published at *fqdn*.

        With the ``authoritative`` strategy every nameserver of the zone
        must answer with the record.

        Raises
        ------
        PropagationTimeout
            If the record is not visible within *timeout* seconds.
        OperationCancelled
            If *cancel* is set while waiting.

        """
        if self.strategy is PropagationStrategy.NONE:
            log.debug("Skipping propagation check for %s", fqdn)
            return

        servers: list[list[str] | None] = [None]
        if self.strategy is PropagationStrategy.AUTHORITATIVE:
            addresses = self.authoritative_servers(fqdn)
            if addresses:
                servers = [[address] for address in addresses]

        poll = Poll(timeout=timeout, interval=interval, cancel=cancel)
        for attempt in poll:
            missing = [ns for ns in servers if value not in self.lookup(fqdn, ns)]
            if not missing:
                log.info("TXT record %s visible after %d checks", fqdn, attempt + 1)
                return
            log.debug(
                "TXT record %s not yet visible on %d of %d servers",
                fqdn,
                len(missing),
                len(servers),
            )
            servers = missing
        raise PropagationTimeout(fqdn.rstrip(".").removeprefix(f"{CHALLENGE_LABEL}."), timeout)
