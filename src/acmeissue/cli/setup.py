"""Account bootstrap shared by the CLI commands."""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, TextIO

from acmeissue.cli.storage import AccountsStorage, CertificatesStorage
from acmeissue.client import Client
from acmeissue.errors import ToSNotAgreed

if TYPE_CHECKING:
    from acmeissue.config.settings import AcmeissueSettings

log = logging.getLogger(__name__)


def accept_tos_prompt(
    terms_url: str,
    *,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
) -> bool:
    """Ask whether to accept the terms at *terms_url*; empty input means yes."""
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    stdout.write(
        f"The authority's terms of service are at:\n  {terms_url}\n"
        "Do you accept them? Y/n\n",
    )
    stdout.flush()
    while True:
        answer = stdin.readline()
        if not answer:
            return False
        answer = answer.strip().lower()
        if answer in ("", "y", "yes"):
            return True
        if answer in ("n", "no"):
            return False
        stdout.write("Please answer y or n.\n")
        stdout.flush()


def open_client(settings: AcmeissueSettings, *, register: bool) -> tuple[Client, AccountsStorage]:
    """Build a :class:`Client` for the configured account.

    With *register*, an account without a stored registration is
    registered first; the operator is asked about the terms of service
    when they were not accepted up front.
    """
    accounts = AccountsStorage(settings, settings.account.email)
    account = accounts.load()
    client = Client(settings, account)
    if account.registration is not None or not register:
        return client, accounts

    try:
        client.register()
    except ToSNotAgreed as exc:
        if not accept_tos_prompt(exc.terms_url):
            client.close()
            raise
        client.register(tos_agreed=True)
    accounts.save(client.account)
    log.warning(
        "Your account credentials have been saved in %s. Keep a backup: "
        "the account key is needed to renew and revoke certificates.",
        accounts.account_dir,
    )
    return client, accounts


def certificates_storage(settings: AcmeissueSettings) -> CertificatesStorage:
    return CertificatesStorage(settings.storage.path)
