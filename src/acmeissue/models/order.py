"""Order resource and Identifier value object."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from acmeissue.core.crypto import identifier_type
from acmeissue.core.types import IdentifierType, OrderStatus


@dataclass(frozen=True)
class Identifier:
    """ACME identifier value object."""

    type: IdentifierType
    value: str

    @classmethod
    def for_domain(cls, domain: str) -> Identifier:
        return cls(type=identifier_type(domain), value=domain)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Identifier:
        return cls(type=IdentifierType(data["type"]), value=data["value"])

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type.value, "value": self.value}


@dataclass(frozen=True)
class Order:
    url: str
    status: OrderStatus
    identifiers: tuple[Identifier, ...]
    authorizations: tuple[str, ...]
    finalize: str
    certificate: str | None = None
    expires: str | None = None
    not_before: str | None = None
    not_after: str | None = None
    error: dict | None = None

    @classmethod
    def from_dict(cls, url: str, data: dict[str, Any]) -> Order:
        return cls(
            url=url,
            status=OrderStatus(data["status"]),
            identifiers=tuple(Identifier.from_dict(i) for i in data.get("identifiers") or ()),
            authorizations=tuple(data.get("authorizations") or ()),
            finalize=data.get("finalize", ""),
            certificate=data.get("certificate"),
            expires=data.get("expires"),
            not_before=data.get("notBefore"),
            not_after=data.get("notAfter"),
            error=data.get("error"),
        )

    @property
    def domains(self) -> list[str]:
        return [i.value for i in self.identifiers]
