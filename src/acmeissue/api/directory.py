"""ACME directory document (RFC 8555 §7.1.1).

The directory is the only URL the client is configured with; every
other endpoint is taken from it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from acmeissue.errors import ConfigurationError

if TYPE_CHECKING:
    from acmeissue.api.transport import Transport


@dataclass(frozen=True)
class DirectoryMeta:
    terms_of_service: str | None = None
    website: str | None = None
    caa_identities: tuple[str, ...] = ()
    external_account_required: bool = False


@dataclass(frozen=True)
class Directory:
    """Resource URLs advertised by the authority."""

    url: str
    new_nonce: str
    new_account: str
    new_order: str
    revoke_cert: str | None = None
    key_change: str | None = None
    new_authz: str | None = None
    renewal_info: str | None = None
    meta: DirectoryMeta = DirectoryMeta()

    @classmethod
    def from_dict(cls, url: str, data: dict[str, Any]) -> Directory:
        """Build from the decoded directory JSON.

        Raises
        ------
        ConfigurationError
            If a mandatory endpoint is missing (the URL is most likely
            not an ACME directory).

        """
        missing = [k for k in ("newNonce", "newAccount", "newOrder") if not data.get(k)]
        if missing:
            msg = f"{url} is not an ACME directory: missing {', '.join(missing)}"
            raise ConfigurationError(msg)

        meta = data.get("meta") or {}
        return cls(
            url=url,
            new_nonce=data["newNonce"],
            new_account=data["newAccount"],
            new_order=data["newOrder"],
            revoke_cert=data.get("revokeCert"),
            key_change=data.get("keyChange"),
            new_authz=data.get("newAuthz"),
            renewal_info=data.get("renewalInfo"),
            meta=DirectoryMeta(
                terms_of_service=meta.get("termsOfService"),
                website=meta.get("website"),
                caa_identities=tuple(meta.get("caaIdentities") or ()),
                external_account_required=bool(meta.get("externalAccountRequired", False)),
            ),
        )

    @classmethod
    def fetch(cls, transport: Transport, url: str) -> Directory:
        """GET and decode the directory at *url*."""
        return cls.from_dict(url, transport.get(url).json())
