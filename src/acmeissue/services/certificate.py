"""Finalization, download and revocation of certificates (RFC 8555 §7.4, §7.6).

Finalization never yields a partial result: the order is polled until it
is ``valid`` with a certificate URL, and only then is the chain
downloaded and split into leaf and issuer blocks.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cryptography.hazmat.primitives import serialization

from acmeissue.core.crypto import (
    certificate_domains,
    csr_to_der,
    issuer_common_name,
    load_certificate,
    split_pem_chain,
)
from acmeissue.core.poll import Poll
from acmeissue.core.state import is_terminal, observe_transition
from acmeissue.core.types import OrderStatus
from acmeissue.errors import (
    AcmeError,
    AcmeProblem,
    FinalizationFailed,
    FinalizationTimeout,
    TransportError,
)
from acmeissue.models.certificate import CertificateResource

if TYPE_CHECKING:
    import threading
    from collections.abc import Callable

    from cryptography import x509

    from acmeissue.config.settings import PollSettings
    from acmeissue.core.types import RevocationReason
    from acmeissue.models.order import Order
    from acmeissue.repositories.certificate import CertificateRepository
    from acmeissue.repositories.order import OrderRepository

log = logging.getLogger(__name__)


def _order_problem(order: Order) -> AcmeProblem | None:
    return AcmeProblem.from_dict(order.error) if order.error else None


class CertificateService:
    """Turn a fully authorized order into a :class:`CertificateResource`."""

    def __init__(
        self,
        order_repo: OrderRepository,
        cert_repo: CertificateRepository,
        poll_settings: PollSettings,
    ) -> None:
        self._orders = order_repo
        self._certs = cert_repo
        self._poll_settings = poll_settings

    # -- Finalization ----------------------------------------------------------

    def _poll_order(
        self,
        order: Order,
        done: Callable[[Order], bool],
        cancel: threading.Event | None,
    ) -> Order:
        if done(order):
            return order
        poll = Poll.from_settings(self._poll_settings, cancel)
        previous = order.status
        for _ in poll:
            order, retry_after = self._orders.fetch(order.url)
            poll.retry_after(retry_after)
            observe_transition("order", order.url, previous, order.status)
            previous = order.status
            if done(order):
                return order
        raise FinalizationTimeout(order.url, poll.timeout)

    def finalize(
        self,
        order: Order,
        csr: x509.CertificateSigningRequest,
        *,
        bundle: bool = True,
        preferred_chain: str | None = None,
        cancel: threading.Event | None = None,
    ) -> CertificateResource:
        """Submit *csr* for *order* and return the issued certificate.

        Raises
        ------
        FinalizationFailed
            If the order turns ``invalid``.
        FinalizationTimeout
            If the order does not reach ``ready`` or ``valid`` in time.

        """
        order = self._poll_order(
            order,
            lambda o: o.status is not OrderStatus.PENDING,
            cancel,
        )
        if order.status is OrderStatus.READY:
            log.info("Finalizing order %s", order.url)
            order = self._orders.finalize(order, csr_to_der(csr))

        order = self._poll_order(order, lambda o: is_terminal("order", o.status), cancel)
        if order.status is not OrderStatus.VALID:
            raise FinalizationFailed(order.url, _order_problem(order))
        if not order.certificate:
            raise FinalizationFailed(order.url)

        log.info("Order %s is valid, downloading %s", order.url, order.certificate)
        return self.get(order.certificate, bundle=bundle, preferred_chain=preferred_chain)

    # -- Download ----------------------------------------------------------------

    def _select_chain(self, chain: bytes, alternates: list[str], preferred: str) -> bytes:
        """Return the first chain whose top issuer CN equals *preferred*."""
        candidates = [chain]
        for url in alternates:
            try:
                candidates.append(self._certs.download(url)[0])
            except AcmeError as exc:
                log.warning("Could not fetch alternate chain %s: %s", url, exc)
        for candidate in candidates:
            blocks = split_pem_chain(candidate)
            if blocks and issuer_common_name(load_certificate(blocks[-1])) == preferred:
                return candidate
        log.info("No chain issued by %r offered; using the default chain", preferred)
        return chain

    def get(
        self,
        url: str,
        *,
        bundle: bool = True,
        preferred_chain: str | None = None,
    ) -> CertificateResource:
        """Download the certificate at *url*.

        ``certificate`` is leaf plus issuer chain when *bundle* is set,
        otherwise the leaf alone; ``issuer_certificate`` always holds
        the issuer chain.
        """
        chain, alternates = self._certs.download(url)
        if preferred_chain:
            chain = self._select_chain(chain, alternates, preferred_chain)

        blocks = split_pem_chain(chain)
        if not blocks:
            raise TransportError(url, "certificate response holds no PEM blocks")
        leaf, issuer = blocks[0], b"".join(blocks[1:])
        if bundle and not issuer:
            log.warning("Certificate %s came without an issuer chain; bundle is the leaf only", url)

        domains = certificate_domains(load_certificate(leaf))
        return CertificateResource(
            domain=domains[0] if domains else "",
            cert_url=url,
            cert_stable_url=url,
            certificate=leaf + issuer if bundle else leaf,
            issuer_certificate=issuer,
        )

    # -- Revocation --------------------------------------------------------------

    def revoke(self, cert_pem: bytes, reason: RevocationReason | int | None = None) -> None:
        """Revoke the (first) certificate in *cert_pem*."""
        cert = load_certificate(cert_pem)
        self._certs.revoke(cert.public_bytes(serialization.Encoding.DER), reason)
        log.info("Revoked certificate with serial %x", cert.serial_number)
