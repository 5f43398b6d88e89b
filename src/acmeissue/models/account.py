"""Account identity and its registration resource."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from acmeissue.core.types import AccountStatus

if TYPE_CHECKING:
    from acmeissue.core.jws import PrivateKey


@dataclass(frozen=True)
class Registration:
    """The authority's account resource (RFC 8555 §7.1.2)."""

    url: str
    status: AccountStatus
    contact: tuple[str, ...] = ()
    orders: str | None = None
    terms_of_service_agreed: bool = False
    external_account_binding: dict | None = None
    raw: dict = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, url: str, data: dict[str, Any]) -> Registration:
        return cls(
            url=url,
            status=AccountStatus(data.get("status", AccountStatus.VALID)),
            contact=tuple(data.get("contact") or ()),
            orders=data.get("orders"),
            terms_of_service_agreed=bool(data.get("termsOfServiceAgreed", False)),
            external_account_binding=data.get("externalAccountBinding"),
            raw=dict(data),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "body": self.raw}


@dataclass(frozen=True)
class Account:
    """The client-held identity: contact email, private key, registration."""

    email: str
    key: PrivateKey
    registration: Registration | None = None

    @property
    def contact(self) -> list[str]:
        return [f"mailto:{self.email}"] if self.email else []

    @property
    def url(self) -> str | None:
        return self.registration.url if self.registration else None
