"""Authorization repository (RFC 8555 §7.5)."""

from __future__ import annotations

from acmeissue.core.types import AuthorizationStatus
from acmeissue.models.authorization import Authorization
from acmeissue.repositories.base import AuthorityRepository


class AuthorizationRepository(AuthorityRepository):
    def fetch(self, url: str) -> tuple[Authorization, str | None]:
        """Return the authorization and the response's ``Retry-After`` value."""
        resp = self._api.post_as_get(url)
        return Authorization.from_dict(url, self._body(resp)), resp.header("retry-after")

    def get(self, url: str) -> Authorization:
        return self.fetch(url)[0]

    def deactivate(self, url: str) -> Authorization:
        resp = self._api.post(url, {"status": AuthorizationStatus.DEACTIVATED.value})
        return Authorization.from_dict(url, self._body(resp))
