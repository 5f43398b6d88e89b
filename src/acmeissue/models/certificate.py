"""Issuance request and result."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ObtainRequest:
    """Parameters of one issuance attempt for a list of domains.

    ``private_key`` (PEM) is reused when given; otherwise a fresh key of
    the configured type is generated.
    """

    domains: tuple[str, ...]
    bundle: bool = True
    private_key: bytes | None = None
    must_staple: bool = False
    preferred_chain: str | None = None


@dataclass(frozen=True)
class CertificateResource:
    """The final output of an issuance.

    ``certificate`` is the leaf, or leaf followed by the issuer chain
    when bundling was requested; ``issuer_certificate`` always holds the
    issuer chain on its own.  ``private_key`` is ``None`` for
    CSR-driven issuance.
    """

    domain: str
    cert_url: str
    cert_stable_url: str
    certificate: bytes
    issuer_certificate: bytes
    private_key: bytes | None = None
    csr: bytes | None = None

    def metadata(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "certUrl": self.cert_url,
            "certStableUrl": self.cert_stable_url,
        }
