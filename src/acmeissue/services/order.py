"""Order service: the issuance flow from domain list to certificate.

``obtain`` runs new-order → solve every authorization → finalize.  Key
type and CSR problems surface before the first network call; any
authorization failure aborts the order and best-effort deactivates the
authorizations left pending, so no certificate is ever returned for a
partially authorized order.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from acmeissue.core.crypto import (
    build_csr,
    csr_domains,
    csr_to_pem,
    generate_private_key,
    load_private_key_pem,
    private_key_to_pem,
    unique_domains,
)
from acmeissue.errors import ConfigurationError, ObtainError
from acmeissue.logging import log_context
from acmeissue.models.order import Identifier

if TYPE_CHECKING:
    from collections.abc import Sequence

    from cryptography import x509

    from acmeissue.config.settings import CertificateSettings
    from acmeissue.models.certificate import CertificateResource, ObtainRequest
    from acmeissue.models.order import Order
    from acmeissue.repositories.order import OrderRepository
    from acmeissue.services.authorization import AuthorizationService
    from acmeissue.services.certificate import CertificateService
    from acmeissue.services.challenge import ChallengeService

log = logging.getLogger(__name__)


class OrderService:
    """Issue certificates for domain lists or pre-built CSRs."""

    def __init__(
        self,
        order_repo: OrderRepository,
        authz_service: AuthorizationService,
        challenge_service: ChallengeService,
        certificate_service: CertificateService,
        settings: CertificateSettings,
    ) -> None:
        self._orders = order_repo
        self._authz = authz_service
        self._challenges = challenge_service
        self._certs = certificate_service
        self._settings = settings

    def obtain(self, request: ObtainRequest) -> CertificateResource:
        """Obtain a certificate for ``request.domains``.

        The first domain becomes the certificate's common name.  A new
        private key of the configured type is generated unless
        ``request.private_key`` is given.

        Raises
        ------
        UnsupportedKeyType
            Before any request, for an unknown key type.
        ObtainError
            If any domain could not be authorized.
        FinalizationFailed
            If the order failed after authorization.

        """
        domains = unique_domains(request.domains)
        if not domains:
            msg = "No domains to obtain a certificate for"
            raise ConfigurationError(msg)

        if request.private_key is not None:
            key = load_private_key_pem(request.private_key)
        else:
            key = generate_private_key(self._settings.key_type)
        must_staple = request.must_staple or self._settings.must_staple
        csr = build_csr(key, domains, must_staple=must_staple)

        log.info("Obtaining a certificate for %s", ", ".join(domains))
        resource = self._issue(
            domains,
            csr,
            bundle=request.bundle,
            preferred_chain=request.preferred_chain or self._settings.preferred_chain,
        )
        return replace(resource, private_key=private_key_to_pem(key), csr=csr_to_pem(csr))

    def obtain_for_csr(
        self,
        csr: x509.CertificateSigningRequest,
        *,
        bundle: bool = True,
        preferred_chain: str | None = None,
    ) -> CertificateResource:
        """Obtain a certificate for a pre-built *csr*.

        The domain set is the CSR's common name followed by its SANs.
        The returned resource carries no private key.
        """
        domains = csr_domains(csr)
        if not domains:
            msg = "The CSR names no domain"
            raise ConfigurationError(msg)

        log.info("Obtaining a certificate for CSR covering %s", ", ".join(domains))
        resource = self._issue(
            domains,
            csr,
            bundle=bundle,
            preferred_chain=preferred_chain or self._settings.preferred_chain,
        )
        return replace(resource, csr=csr_to_pem(csr))

    def _issue(
        self,
        domains: Sequence[str],
        csr: x509.CertificateSigningRequest,
        *,
        bundle: bool,
        preferred_chain: str | None,
    ) -> CertificateResource:
        order = self._orders.new([Identifier.for_domain(d) for d in domains])
        log.debug("Created order %s (%s)", order.url, order.status.value)
        with log_context(order=order.url):
            self._authorize(order)
            resource = self._certs.finalize(
                order,
                csr,
                bundle=bundle,
                preferred_chain=preferred_chain,
            )
        log.info("Issued certificate for %s", resource.domain)
        return replace(resource, domain=domains[0])

    def _authorize(self, order: Order) -> None:
        authzs = self._authz.fetch_all(order)
        try:
            self._challenges.solve_all(authzs)
        except ObtainError:
            self._authz.deactivate_pending(order.authorizations)
            raise
