"""Account registration and management (RFC 8555 §7.3).

Terms-of-service and external-account-binding preconditions are checked
against the directory **before** any state-changing request is sent, so
a misconfigured client never creates half an account.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from acmeissue.core.jws import build_eab_jws
from acmeissue.errors import ConfigurationError, ExternalBindingRequired, ToSNotAgreed

if TYPE_CHECKING:
    from acmeissue.api.core import AcmeApi
    from acmeissue.core.jws import PrivateKey
    from acmeissue.models.account import Account, Registration
    from acmeissue.repositories.account import AccountRepository

log = logging.getLogger(__name__)


class RegistrationService:
    """Create, look up and manage the account bound to an API key.

    On every successful call that identifies the account, the account
    URL is stored on the :class:`~acmeissue.api.core.AcmeApi` as its
    ``kid`` so later requests are signed accordingly.
    """

    def __init__(self, api: AcmeApi, account_repo: AccountRepository) -> None:
        self._api = api
        self._accounts = account_repo

    # -- Preconditions -------------------------------------------------------

    def _check_preconditions(self, *, tos_agreed: bool, with_eab: bool) -> None:
        meta = self._api.directory.meta
        if meta.terms_of_service and not tos_agreed:
            raise ToSNotAgreed(meta.terms_of_service)
        if meta.external_account_required and not with_eab:
            raise ExternalBindingRequired(
                "the authority requires an external account binding (kid and HMAC key)",
            )

    def _payload(self, account: Account, *, tos_agreed: bool) -> dict:
        payload: dict = {"termsOfServiceAgreed": tos_agreed}
        if account.contact:
            payload["contact"] = account.contact
        return payload

    def _bind(self, registration: Registration) -> Registration:
        self._api.kid = registration.url
        log.info("Account %s is %s", registration.url, registration.status.value)
        return registration

    # -- Registration ----------------------------------------------------------

    def register(self, account: Account, *, tos_agreed: bool) -> Registration:
        """Register *account* (or fetch it if the key is already known).

        Raises
        ------
        ToSNotAgreed
            If the directory publishes terms and they were not accepted.
        ExternalBindingRequired
            If the directory demands a binding.

        """
        self._check_preconditions(tos_agreed=tos_agreed, with_eab=False)
        return self._bind(self._accounts.new(self._payload(account, tos_agreed=tos_agreed)))

    def register_with_eab(
        self,
        account: Account,
        *,
        tos_agreed: bool,
        kid: str,
        hmac_key: str,
    ) -> Registration:
        """Register *account* bound to an external account.

        Parameters
        ----------
        kid:
            Key identifier issued by the authority's operator.
        hmac_key:
            The base64url-encoded MAC key matching *kid*.

        """
        if not kid or not hmac_key:
            msg = "External account binding needs both a key id and an HMAC key"
            raise ConfigurationError(msg)
        self._check_preconditions(tos_agreed=tos_agreed, with_eab=True)
        payload = self._payload(account, tos_agreed=tos_agreed)
        payload["externalAccountBinding"] = build_eab_jws(
            self._api.jwk,
            kid,
            hmac_key,
            self._api.directory.new_account,
        )
        return self._bind(self._accounts.new(payload))

    def resolve_account_by_key(self) -> Registration:
        """Find the existing account for the API key without creating one.

        Raises
        ------
        AcmeProblem
            ``accountDoesNotExist`` when the key is unknown.

        """
        return self._bind(self._accounts.new({"onlyReturnExisting": True}))

    # -- Management ------------------------------------------------------------

    def _account_url(self) -> str:
        if self._api.kid is None:
            msg = "No account is registered for this key"
            raise ConfigurationError(msg)
        return self._api.kid

    def query(self) -> Registration:
        """Fetch the current state of the account resource."""
        return self._accounts.get(self._account_url())

    def update(self, contact: list[str]) -> Registration:
        """Replace the account's contact list."""
        registration = self._accounts.update(self._account_url(), {"contact": contact})
        log.info("Updated contacts of account %s", registration.url)
        return registration

    def deactivate(self) -> Registration:
        """Deactivate the account; the authority rejects it from then on."""
        registration = self._accounts.deactivate(self._account_url())
        log.warning("Deactivated account %s", registration.url)
        return registration

    def change_key(self, new_key: PrivateKey) -> None:
        """Roll the account over to *new_key* (RFC 8555 §7.3.5)."""
        if not self._api.directory.key_change:
            msg = "The authority does not advertise a keyChange endpoint"
            raise ConfigurationError(msg)
        account_url = self._account_url()
        self._accounts.key_change(account_url, new_key)
        self._api.replace_key(new_key)
        log.info("Rolled over the key of account %s", account_url)
