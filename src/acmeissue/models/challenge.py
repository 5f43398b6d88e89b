"""Challenge resource."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from acmeissue.core.types import ChallengeStatus


@dataclass(frozen=True)
class Challenge:
    url: str
    type: str
    status: ChallengeStatus
    token: str = ""
    validated: str | None = None
    error: dict | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Challenge:
        return cls(
            url=data["url"],
            type=data["type"],
            status=ChallengeStatus(data.get("status", ChallengeStatus.PENDING)),
            token=data.get("token", ""),
            validated=data.get("validated"),
            error=data.get("error"),
        )
