"""``renew``: re-obtain a stored certificate close to expiry."""

from __future__ import annotations

import logging
from pathlib import Path

from acmeissue.cli.setup import certificates_storage, open_client
from acmeissue.core.crypto import (
    csr_domains,
    days_until_expiry,
    load_certificate,
    load_csr,
    unique_domains,
)
from acmeissue.errors import ConfigurationError

log = logging.getLogger(__name__)


def _domain(args) -> str:
    if args.csr:
        domains = csr_domains(load_csr(Path(args.csr).read_bytes()))
        if not domains:
            msg = f"The CSR {args.csr} names no domain"
            raise ConfigurationError(msg)
        return domains[0]
    return unique_domains(args.domains)[0]


def run_renew(settings, args) -> int:
    """Renew the certificate stored for the first domain.

    Nothing happens while more than ``--days`` (or
    ``certificate.renew_days``) days remain on the current certificate.
    """
    certificates = certificates_storage(settings)
    domain = _domain(args)
    if not certificates.exists(domain):
        msg = f"No certificate stored for {domain}; use 'run' to obtain one"
        raise ConfigurationError(msg)

    client, accounts = open_client(settings, register=False)
    with client:
        if client.account.registration is None:
            msg = f"Account {accounts.email} is not registered; use 'run' first"
            raise ConfigurationError(msg)

        resource = certificates.load(domain)
        days = args.days if args.days is not None else settings.certificate.renew_days
        remaining = days_until_expiry(load_certificate(resource.certificate))
        if remaining > days:
            log.info(
                "Certificate for %s expires in %d days, not renewing (threshold %d)",
                domain,
                int(remaining),
                days,
            )
            return 0

        if args.csr:
            renewed = client.obtain_for_csr(
                load_csr(Path(args.csr).read_bytes()),
                bundle=not args.no_bundle,
            )
        else:
            renewed = client.renew(
                resource,
                bundle=not args.no_bundle,
                reuse_key=args.reuse_key,
                must_staple=args.must_staple,
            )
    certificates.save(renewed)
    return 0
