"""Authorization resource."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from acmeissue.core.types import AuthorizationStatus
from acmeissue.models.challenge import Challenge
from acmeissue.models.order import Identifier


@dataclass(frozen=True)
class Authorization:
    url: str
    identifier: Identifier
    status: AuthorizationStatus
    challenges: tuple[Challenge, ...] = ()
    wildcard: bool = False
    expires: str | None = None

    @classmethod
    def from_dict(cls, url: str, data: dict[str, Any]) -> Authorization:
        return cls(
            url=url,
            identifier=Identifier.from_dict(data["identifier"]),
            status=AuthorizationStatus(data["status"]),
            challenges=tuple(Challenge.from_dict(c) for c in data.get("challenges") or ()),
            wildcard=bool(data.get("wildcard", False)),
            expires=data.get("expires"),
        )

    @property
    def domain(self) -> str:
        """The identifier value, with ``*.`` restored for wildcards."""
        if self.wildcard:
            return f"*.{self.identifier.value}"
        return self.identifier.value

    def challenge(self, challenge_type: str) -> Challenge | None:
        for chall in self.challenges:
            if chall.type == challenge_type:
                return chall
        return None

    @property
    def offered_types(self) -> list[str]:
        return [c.type for c in self.challenges]

    def failed_challenge(self) -> Challenge | None:
        """Return the challenge carrying the authority's error, if any."""
        for chall in self.challenges:
            if chall.error:
                return chall
        return None
