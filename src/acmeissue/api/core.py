"""Signed requests to the authority.

:class:`AcmeApi` binds a :class:`~acmeissue.api.transport.Transport`,
the authority's directory and the account key.  Every state-changing
call goes through :meth:`AcmeApi.post`, which takes a nonce from the
shared :class:`~acmeissue.api.nonce.NoncePool`, signs the payload and
retries exactly once when the authority answers ``badNonce``.

Safe for concurrent use by the per-domain worker threads: the only
mutable shared state is the nonce pool, which is locked.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from acmeissue.api.directory import Directory
from acmeissue.api.nonce import NoncePool
from acmeissue.core.jws import public_key_to_jwk, sign_jws
from acmeissue.errors import (
    AcmeProblem,
    BadNonceProblem,
    ConfigurationError,
    TransportError,
)
from acmeissue.logging.sanitize import sanitize_for_logs

if TYPE_CHECKING:
    from acmeissue.api.transport import Response, Transport
    from acmeissue.core.jws import PrivateKey

log = logging.getLogger(__name__)


class AcmeApi:
    """Authenticated access to one authority on behalf of one account key.

    Parameters
    ----------
    transport:
        HTTP transport used for every request.
    directory:
        The authority's directory, or its URL to fetch it from.
    key:
        The account private key.
    kid:
        The account URL once registered; ``None`` until then, in which
        case only ``jwk``-signed requests are possible.

    """

    def __init__(
        self,
        transport: Transport,
        directory: Directory | str,
        key: PrivateKey,
        *,
        kid: str | None = None,
    ) -> None:
        self.transport = transport
        if isinstance(directory, str):
            directory = Directory.fetch(transport, directory)
        self.directory = directory
        self.kid = kid
        self._key = key
        self._jwk = public_key_to_jwk(key)
        self.nonces = NoncePool(self.fetch_nonce)

    # -- Account key --------------------------------------------------------

    @property
    def key(self) -> PrivateKey:
        return self._key

    @property
    def jwk(self) -> dict[str, str]:
        return self._jwk

    def replace_key(self, key: PrivateKey) -> None:
        """Switch to *key* after a successful key roll-over."""
        self._key = key
        self._jwk = public_key_to_jwk(key)

    # -- Nonces ------------------------------------------------------------

    def fetch_nonce(self) -> str:
        """Fetch a fresh nonce from the directory's ``newNonce`` endpoint."""
        resp = self.transport.head(self.directory.new_nonce)
        nonce = resp.header("replay-nonce")
        if not nonce:
            raise TransportError(self.directory.new_nonce, "response carried no Replay-Nonce")
        return nonce

    # -- Signed requests ---------------------------------------------------

    def post(
        self,
        url: str,
        payload: Any,  # noqa: ANN401
        *,
        use_jwk: bool = False,
        accept: str = "application/json",
    ) -> Response:
        """Sign *payload* and POST it to *url*.

        Parameters
        ----------
        url:
            Target resource URL.
        payload:
            JSON-serialisable payload; ``None`` sends a POST-as-GET.
        use_jwk:
            Embed the public key instead of the account URL
            (new-account and account lookup requests).
        accept:
            ``Accept`` header value.

        Raises
        ------
        AcmeProblem
            For any problem document other than a single ``badNonce``.
        TransportError
            On network failures.

        """
        if not use_jwk and self.kid is None:
            msg = "The account must be registered before sending kid-signed requests"
            raise ConfigurationError(msg)

        if log.isEnabledFor(logging.DEBUG):
            log.debug("POST %s payload=%s", url, json.dumps(sanitize_for_logs(payload)))

        try:
            return self._post_once(url, payload, use_jwk=use_jwk, accept=accept)
        except BadNonceProblem:
            log.debug("Authority rejected the nonce for %s, retrying once", url)
            return self._post_once(url, payload, use_jwk=use_jwk, accept=accept)

    def post_as_get(self, url: str, *, accept: str = "application/json") -> Response:
        """Fetch a resource with an empty signed payload (RFC 8555 §6.3)."""
        return self.post(url, None, accept=accept)

    def _post_once(
        self,
        url: str,
        payload: Any,  # noqa: ANN401
        *,
        use_jwk: bool,
        accept: str,
    ) -> Response:
        nonce = self.nonces.pop()
        jws = sign_jws(
            self._key,
            payload,
            url=url,
            nonce=nonce,
            kid=None if use_jwk else self.kid,
        )
        body = json.dumps(jws).encode("utf-8")
        try:
            resp = self.transport.post(url, body, accept=accept)
        except AcmeProblem as exc:
            self.nonces.push(exc.headers.get("replay-nonce"))
            raise
        self.nonces.push(resp.header("replay-nonce"))
        return resp
