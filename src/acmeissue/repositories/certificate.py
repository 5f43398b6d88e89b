"""Certificate repository (RFC 8555 §7.4.2 and §7.6)."""

from __future__ import annotations

from acmeissue.api.transport import PEM_CHAIN_CONTENT_TYPE
from acmeissue.core.jws import b64url_encode
from acmeissue.errors import ConfigurationError, TransportError
from acmeissue.repositories.base import AuthorityRepository


class CertificateRepository(AuthorityRepository):
    def download(self, url: str) -> tuple[bytes, list[str]]:
        """Return the PEM chain at *url* and any alternate chain URLs."""
        resp = self._api.post_as_get(url, accept=PEM_CHAIN_CONTENT_TYPE)
        if not resp.body:
            raise TransportError(url, "empty certificate chain")
        return resp.body, resp.links("alternate")

    def revoke(self, cert_der: bytes, reason: int | None = None) -> None:
        url = self._api.directory.revoke_cert
        if not url:
            msg = "The authority does not advertise a revokeCert endpoint"
            raise ConfigurationError(msg)
        payload: dict = {"certificate": b64url_encode(cert_der)}
        if reason is not None:
            payload["reason"] = int(reason)
        self._api.post(url, payload)
