"""Challenge repository (RFC 8555 §7.5.1)."""

from __future__ import annotations

from acmeissue.models.challenge import Challenge
from acmeissue.repositories.base import AuthorityRepository


class ChallengeRepository(AuthorityRepository):
    def fetch(self, url: str) -> tuple[Challenge, str | None]:
        """Return the challenge and the response's ``Retry-After`` value."""
        resp = self._api.post_as_get(url)
        return Challenge.from_dict(self._body(resp)), resp.header("retry-after")

    def accept(self, url: str) -> Challenge:
        """Tell the authority the challenge is ready to be validated."""
        resp = self._api.post(url, {})
        return Challenge.from_dict(self._body(resp))
