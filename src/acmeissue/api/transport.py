"""HTTP transport to the authority.

:class:`Transport` sends plain requests through a ``urllib`` opener and
turns error responses into typed :class:`~acmeissue.errors.AcmeProblem`
exceptions.  Signing, nonces and account identity live one layer up in
:class:`~acmeissue.api.core.AcmeApi`.

The opener is injectable: anything with an ``open(request, timeout=)``
method returning an object with ``status``, ``headers`` and ``read()``
works, which is how the test-suite plugs in a fake authority.
"""

from __future__ import annotations

import contextlib
import json
import logging
import platform
import re
import ssl
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from typing import Any

from acmeissue import __version__
from acmeissue.errors import PROBLEM_CONTENT_TYPE, AcmeProblem, TransportError

log = logging.getLogger(__name__)

JOSE_CONTENT_TYPE = "application/jose+json"
PEM_CHAIN_CONTENT_TYPE = "application/pem-certificate-chain"

DEFAULT_USER_AGENT = (
    f"acmeissue/{__version__} Python/{platform.python_version()} ({platform.system().lower()})"
)

_LINK_RE = re.compile(r'<([^>]*)>\s*((?:;\s*[^;,]+)*)')
_LINK_PARAM_RE = re.compile(r';\s*([a-zA-Z]+)\s*=\s*"?([^";,]*)"?')


@dataclass(frozen=True)
class Response:
    """A completed HTTP exchange with lower-cased, multi-valued headers."""

    url: str
    status: int
    headers: dict[str, tuple[str, ...]] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> str | None:
        values = self.headers.get(name.lower())
        return values[0] if values else None

    def header_all(self, name: str) -> tuple[str, ...]:
        return self.headers.get(name.lower(), ())

    @property
    def location(self) -> str | None:
        return self.header("location")

    @property
    def content_type(self) -> str:
        return (self.header("content-type") or "").split(";")[0].strip().lower()

    def json(self) -> Any:  # noqa: ANN401
        try:
            return json.loads(self.body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            msg = f"invalid JSON response: {exc}"
            raise TransportError(self.url, msg) from exc

    def links(self, rel: str) -> list[str]:
        """Return the targets of ``Link`` headers with the given relation."""
        found = []
        for value in self.header_all("link"):
            for target, params in _LINK_RE.findall(value):
                attrs = dict(_LINK_PARAM_RE.findall(params))
                if attrs.get("rel") == rel:
                    found.append(urllib.parse.urljoin(self.url, target))
        return found


def _collect_headers(raw: Any) -> dict[str, tuple[str, ...]]:  # noqa: ANN401
    headers: dict[str, list[str]] = {}
    if raw is None:
        return {}
    for name, value in raw.items():
        headers.setdefault(name.lower(), []).append(value)
    return {name: tuple(values) for name, values in headers.items()}


def build_ssl_context(ca_bundle: str | None = None, *, verify: bool = True) -> ssl.SSLContext:
    """Create the client SSL context for talking to the authority."""
    ctx = ssl.create_default_context(cafile=ca_bundle)
    if not verify:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    return ctx


class Transport:
    """Unauthenticated HTTP client for the authority.

    Parameters
    ----------
    user_agent:
        Value of the ``User-Agent`` header; the library identifier is
        appended to any caller-supplied prefix.
    timeout:
        Socket timeout in seconds for each request.
    ssl_context:
        Custom TLS context (private CA bundles, test authorities).
    opener:
        Replacement for the ``urllib`` opener.

    """

    def __init__(
        self,
        *,
        user_agent: str | None = None,
        timeout: float = 30.0,
        ssl_context: ssl.SSLContext | None = None,
        opener: Any = None,  # noqa: ANN401
    ) -> None:
        self.user_agent = f"{user_agent} {DEFAULT_USER_AGENT}" if user_agent else DEFAULT_USER_AGENT
        self.timeout = timeout
        if opener is None:
            handlers = []
            if ssl_context is not None:
                handlers.append(urllib.request.HTTPSHandler(context=ssl_context))
            opener = urllib.request.build_opener(*handlers)
        self._opener = opener

    # -- Public API --------------------------------------------------------

    def get(self, url: str, *, accept: str = "application/json") -> Response:
        return self._send(urllib.request.Request(url, method="GET", headers={"Accept": accept}))

    def head(self, url: str) -> Response:
        return self._send(urllib.request.Request(url, method="HEAD"))

    def post(self, url: str, body: bytes, *, accept: str = "application/json") -> Response:
        req = urllib.request.Request(
            url,
            data=body,
            method="POST",
            headers={"Content-Type": JOSE_CONTENT_TYPE, "Accept": accept},
        )
        return self._send(req)

    # -- Internals ---------------------------------------------------------

    def _send(self, req: urllib.request.Request) -> Response:
        req.add_header("User-Agent", self.user_agent)
        url = req.full_url
        log.debug("%s %s", req.get_method(), url)

        try:
            resp = self._opener.open(req, timeout=self.timeout)
        except urllib.error.HTTPError as exc:
            body = b""
            with contextlib.suppress(OSError):
                body = exc.read()
            raise self._problem(url, exc.code, _collect_headers(exc.headers), body) from None
        except (urllib.error.URLError, OSError) as exc:
            raise TransportError(url, f"request failed: {exc}") from exc

        try:
            body = resp.read()
        finally:
            resp.close()

        response = Response(
            url=url,
            status=resp.status,
            headers=_collect_headers(resp.headers),
            body=body,
        )
        log.debug("%s %s -> %d", req.get_method(), url, response.status)
        return response

    @staticmethod
    def _problem(
        url: str,
        status: int,
        headers: dict[str, tuple[str, ...]],
        body: bytes,
    ) -> AcmeProblem:
        first = {name: values[0] for name, values in headers.items()}
        content_type = first.get("content-type", "").split(";")[0].strip().lower()
        if content_type in (PROBLEM_CONTENT_TYPE, "application/json"):
            try:
                data = json.loads(body)
            except (json.JSONDecodeError, UnicodeDecodeError):
                data = None
            if isinstance(data, dict):
                return AcmeProblem.from_dict(data, status, first)

        detail = body.decode("utf-8", errors="replace")[:500] or f"HTTP {status} from {url}"
        return AcmeProblem("about:blank", detail, status, headers=first)
