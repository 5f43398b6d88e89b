"""High-level client: one account against one authority.

:class:`Client` is the dependency container of the issuance engine.  It
builds the transport, signed API, repositories, solvers and services
from an :class:`~acmeissue.config.settings.AcmeissueSettings` tree and
exposes the public operations.

Usage::

    from acmeissue.client import Client
    from acmeissue.config import build_settings

    settings = build_settings({"account": {"email": "me@example.com", "accept_tos": True}})
    with Client(settings, account) as client:
        client.register()
        resource = client.obtain(["example.com", "www.example.com"])
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from acmeissue.api.core import AcmeApi
from acmeissue.api.transport import Transport, build_ssl_context
from acmeissue.challenge.dns01 import PropagationChecker
from acmeissue.challenge.registry import SolverRegistry, build_solvers
from acmeissue.core.crypto import (
    certificate_domains,
    load_certificate,
    load_csr,
    parse_key_type,
)
from acmeissue.core.jws import algorithm_for_key
from acmeissue.models.certificate import ObtainRequest
from acmeissue.repositories import (
    AccountRepository,
    AuthorizationRepository,
    CertificateRepository,
    ChallengeRepository,
    OrderRepository,
)
from acmeissue.services import (
    AuthorizationService,
    CertificateService,
    ChallengeService,
    OrderService,
    RegistrationService,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from cryptography import x509

    from acmeissue.api.directory import Directory
    from acmeissue.challenge.base import Solver
    from acmeissue.config.settings import AcmeissueSettings
    from acmeissue.core.jws import PrivateKey
    from acmeissue.core.types import ChallengeType, RevocationReason
    from acmeissue.models.account import Account, Registration
    from acmeissue.models.certificate import CertificateResource

log = logging.getLogger(__name__)


class Client:
    """Issuance engine bound to one account.

    Configuration problems (key types, solver providers) are raised
    before the directory is fetched.

    Parameters
    ----------
    settings:
        The full settings tree.
    account:
        Contact email, account key and (when already registered) the
        registration resource.
    registry:
        Solver registry; the built-in providers when omitted.
    solvers:
        Pre-built solvers, replacing those derived from settings.
    opener:
        Replacement ``urllib`` opener for the transport.
    directory:
        Pre-fetched directory, skipping the discovery request.

    """

    def __init__(
        self,
        settings: AcmeissueSettings,
        account: Account,
        *,
        registry: SolverRegistry | None = None,
        solvers: dict[ChallengeType, Solver] | None = None,
        opener: Any = None,  # noqa: ANN401
        directory: Directory | None = None,
    ) -> None:
        self.settings = settings
        self.account = account

        # Configuration checks, before any network traffic
        parse_key_type(settings.certificate.key_type)
        algorithm_for_key(account.key)
        self.registry = registry or SolverRegistry()
        self.solvers = solvers if solvers is not None else build_solvers(
            settings.challenges,
            self.registry,
        )

        server = settings.server
        ssl_context = None
        if server.ca_bundle or not server.verify_ssl:
            ssl_context = build_ssl_context(server.ca_bundle, verify=server.verify_ssl)
        self.transport = Transport(
            user_agent=server.user_agent,
            timeout=server.timeout_seconds,
            ssl_context=ssl_context,
            opener=opener,
        )
        self.api = AcmeApi(
            self.transport,
            directory or server.directory_url,
            account.key,
            kid=account.url,
        )

        # Repositories
        self.accounts = AccountRepository(self.api)
        self.orders = OrderRepository(self.api)
        self.authorizations = AuthorizationRepository(self.api)
        self.challenges = ChallengeRepository(self.api)
        self.certificates = CertificateRepository(self.api)

        # Services
        polling = settings.polling
        dns01 = settings.challenges.dns01
        self.registration_service = RegistrationService(self.api, self.accounts)
        self.authorization_service = AuthorizationService(
            self.authorizations,
            polling.authorization,
        )
        self.challenge_service = ChallengeService(
            self.api,
            self.challenges,
            self.authorization_service,
            self.solvers,
            settings.challenges,
            polling.challenge,
            PropagationChecker(dns01.propagation, dns01.resolvers, dns01.query_timeout_seconds),
        )
        self.certificate_service = CertificateService(
            self.orders,
            self.certificates,
            polling.finalization,
        )
        self.order_service = OrderService(
            self.orders,
            self.authorization_service,
            self.challenge_service,
            self.certificate_service,
            settings.certificate,
        )

    # -- Lifecycle -------------------------------------------------------------

    def close(self) -> None:
        """Stop any listener a solver still holds open."""
        for solver in self.solvers.values():
            solver.close()

    def __enter__(self) -> Client:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- Account -----------------------------------------------------------------

    def _registered(self, registration: Registration) -> Registration:
        self.account = replace(self.account, registration=registration)
        return registration

    def register(self, *, tos_agreed: bool | None = None) -> Registration:
        """Register the account, with EAB when credentials are configured."""
        agreed = self.settings.account.accept_tos if tos_agreed is None else tos_agreed
        eab = self.settings.account.eab
        if eab.enabled:
            registration = self.registration_service.register_with_eab(
                self.account,
                tos_agreed=agreed,
                kid=eab.kid,
                hmac_key=eab.hmac_key,
            )
        else:
            registration = self.registration_service.register(self.account, tos_agreed=agreed)
        return self._registered(registration)

    def resolve_account_by_key(self) -> Registration:
        return self._registered(self.registration_service.resolve_account_by_key())

    def query_registration(self) -> Registration:
        return self._registered(self.registration_service.query())

    def update_registration(self, contact: list[str] | None = None) -> Registration:
        """Update contacts; defaults to the account's email."""
        contact = self.account.contact if contact is None else contact
        return self._registered(self.registration_service.update(contact))

    def delete_registration(self) -> Registration:
        return self._registered(self.registration_service.deactivate())

    def change_key(self, new_key: PrivateKey) -> None:
        algorithm_for_key(new_key)
        self.registration_service.change_key(new_key)
        self.account = replace(self.account, key=new_key)

    # -- Certificates --------------------------------------------------------------

    def obtain(
        self,
        domains: Iterable[str],
        *,
        bundle: bool | None = None,
        private_key: bytes | None = None,
        must_staple: bool = False,
        preferred_chain: str | None = None,
    ) -> CertificateResource:
        """Obtain a certificate for *domains* (first one is the CN)."""
        request = ObtainRequest(
            domains=tuple(domains),
            bundle=self.settings.certificate.bundle if bundle is None else bundle,
            private_key=private_key,
            must_staple=must_staple,
            preferred_chain=preferred_chain,
        )
        return self.order_service.obtain(request)

    def obtain_for_csr(
        self,
        csr: x509.CertificateSigningRequest,
        *,
        bundle: bool | None = None,
    ) -> CertificateResource:
        return self.order_service.obtain_for_csr(
            csr,
            bundle=self.settings.certificate.bundle if bundle is None else bundle,
        )

    def get_certificate(self, url: str, *, bundle: bool | None = None) -> CertificateResource:
        return self.certificate_service.get(
            url,
            bundle=self.settings.certificate.bundle if bundle is None else bundle,
            preferred_chain=self.settings.certificate.preferred_chain,
        )

    def revoke(self, cert_pem: bytes, reason: RevocationReason | int | None = None) -> None:
        self.certificate_service.revoke(cert_pem, reason)

    def renew(
        self,
        resource: CertificateResource,
        *,
        bundle: bool | None = None,
        reuse_key: bool = False,
        must_staple: bool = False,
    ) -> CertificateResource:
        """Re-obtain *resource* for the same names.

        CSR-driven resources (no private key) are renewed from their
        stored CSR; otherwise the domains are read from the current
        certificate, the common name first.
        """
        if resource.private_key is None and resource.csr:
            log.info("Renewing %s from its CSR", resource.domain)
            return self.obtain_for_csr(load_csr(resource.csr), bundle=bundle)

        domains = certificate_domains(load_certificate(resource.certificate))
        log.info("Renewing %s for %s", resource.domain, ", ".join(domains))
        return self.obtain(
            domains,
            bundle=bundle,
            private_key=resource.private_key if reuse_key else None,
            must_staple=must_staple,
        )
