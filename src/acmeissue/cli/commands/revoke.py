"""``revoke``: revoke stored certificates."""

from __future__ import annotations

import logging
from pathlib import Path

from acmeissue.cli.setup import certificates_storage, open_client
from acmeissue.core.crypto import csr_domains, load_csr, unique_domains
from acmeissue.errors import ConfigurationError

log = logging.getLogger(__name__)


def run_revoke(settings, args) -> int:
    """Revoke the certificate stored for each requested domain."""
    if args.csr:
        domains = csr_domains(load_csr(Path(args.csr).read_bytes()))[:1]
    else:
        domains = unique_domains(args.domains)

    certificates = certificates_storage(settings)
    client, accounts = open_client(settings, register=False)
    with client:
        if client.account.registration is None:
            msg = f"Account {accounts.email} is not registered"
            raise ConfigurationError(msg)
        for domain in domains:
            resource = certificates.load(domain)
            client.revoke(resource.certificate, args.reason)
            log.warning("Certificate for %s was revoked", domain)
    return 0
