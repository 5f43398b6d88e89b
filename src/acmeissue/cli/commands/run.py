"""``run``: register when needed, then obtain a certificate."""

from __future__ import annotations

import logging
from pathlib import Path

from acmeissue.cli.setup import certificates_storage, open_client
from acmeissue.core.crypto import load_csr

log = logging.getLogger(__name__)


def run_run(settings, args) -> int:
    """Obtain a certificate for ``args.domains`` or ``args.csr`` and store it."""
    client, _accounts = open_client(settings, register=True)
    with client:
        if args.csr:
            csr = load_csr(Path(args.csr).read_bytes())
            resource = client.obtain_for_csr(csr, bundle=not args.no_bundle)
        else:
            resource = client.obtain(
                args.domains,
                bundle=not args.no_bundle,
                must_staple=args.must_staple,
            )
    certificates_storage(settings).save(resource)
    return 0
