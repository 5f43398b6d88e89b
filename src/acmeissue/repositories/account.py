"""Account repository (RFC 8555 §7.3)."""

from __future__ import annotations

from typing import Any

from acmeissue.core.jws import build_key_change_jws
from acmeissue.core.types import AccountStatus
from acmeissue.models.account import Registration
from acmeissue.repositories.base import AuthorityRepository


class AccountRepository(AuthorityRepository):
    def new(self, payload: dict[str, Any]) -> Registration:
        """POST to ``newAccount``; the response Location is the account URL."""
        resp = self._api.post(self._api.directory.new_account, payload, use_jwk=True)
        return Registration.from_dict(self._location(resp), self._body(resp))

    def get(self, url: str) -> Registration:
        resp = self._api.post(url, {})
        return Registration.from_dict(url, self._body(resp))

    def update(self, url: str, payload: dict[str, Any]) -> Registration:
        resp = self._api.post(url, payload)
        return Registration.from_dict(url, self._body(resp))

    def deactivate(self, url: str) -> Registration:
        return self.update(url, {"status": AccountStatus.DEACTIVATED.value})

    def key_change(self, account_url: str, new_key) -> None:
        url = self._api.directory.key_change
        inner = build_key_change_jws(new_key, self._api.key, account_url, url)
        self._api.post(url, inner)
