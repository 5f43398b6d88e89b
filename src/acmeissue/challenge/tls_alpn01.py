"""TLS-ALPN-01 solver (RFC 8737).

Runs a TLS listener that negotiates ``acme-tls/1`` and, selected by SNI,
presents a self-signed certificate for the domain carrying the critical
acmeIdentifier extension: the SHA-256 digest of the key authorization.
"""

from __future__ import annotations

import hashlib
import logging
import socket
import ssl
import tempfile
import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID, ObjectIdentifier

from acmeissue.challenge.base import Solver, SolverError
from acmeissue.challenge.http01 import parse_address
from acmeissue.core.crypto import private_key_to_pem
from acmeissue.core.types import ChallengeType

if TYPE_CHECKING:
    from collections.abc import Mapping

log = logging.getLogger(__name__)

# OID for the acmeIdentifier extension (RFC 8737 §3)
ACME_IDENTIFIER_OID = ObjectIdentifier("1.3.6.1.5.5.7.1.31")

ACME_TLS_ALPN = "acme-tls/1"

_DEFAULT_PORT = 443
_ACCEPT_POLL_SECONDS = 0.5
_HANDSHAKE_TIMEOUT = 10


def build_challenge_certificate(
    domain: str,
    key_auth: str,
) -> tuple[x509.Certificate, ec.EllipticCurvePrivateKey]:
    """Create the self-signed validation certificate for *domain*.

    The acmeIdentifier value is a DER OCTET STRING wrapping
    ``sha256(key_auth)``; the extension is marked critical.
    """
    key = ec.generate_private_key(ec.SECP256R1())
    digest = hashlib.sha256(key_auth.encode("ascii")).digest()
    now = datetime.now(UTC)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "ACME challenge")])
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(hours=1))
        .not_valid_after(now + timedelta(days=1))
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(domain)]), critical=False)
        .add_extension(
            x509.UnrecognizedExtension(ACME_IDENTIFIER_OID, b"\x04\x20" + digest),
            critical=True,
        )
        .sign(key, hashes.SHA256())
    )
    return cert, key


def _server_context() -> ssl.SSLContext:
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ctx.minimum_version = ssl.TLSVersion.TLSv1_2
    ctx.set_alpn_protocols([ACME_TLS_ALPN])
    return ctx


def build_challenge_context(domain: str, key_auth: str) -> ssl.SSLContext:
    """Return an SSL context serving the validation certificate."""
    cert, key = build_challenge_certificate(domain, key_auth)
    ctx = _server_context()
    # ssl only loads key material from files
    with tempfile.TemporaryDirectory(prefix="acmeissue-tls-") as tmp:
        cert_path = Path(tmp) / "cert.pem"
        key_path = Path(tmp) / "key.pem"
        cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
        key_path.write_bytes(private_key_to_pem(key))
        ctx.load_cert_chain(cert_path, key_path)
    return ctx


class TlsAlpnSolver(Solver):
    """Answer TLS-ALPN-01 validation from a built-in TLS listener.

    Config keys: ``address`` (``host:port``, default ``:443``).
    """

    challenge_type = ChallengeType.TLS_ALPN_01
    description = "Built-in TLS listener negotiating acme-tls/1 (default :443)"

    def __init__(self, config: Mapping[str, Any] | None = None) -> None:
        super().__init__(config)
        self.host, self.port = parse_address(self.config.get("address") or "", _DEFAULT_PORT)
        self._contexts: dict[str, ssl.SSLContext] = {}
        # _lock guards the SNI table, _listener_lock start/stop
        self._lock = threading.Lock()
        self._listener_lock = threading.Lock()
        self._sock: socket.socket | None = None
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    @property
    def bound_port(self) -> int | None:
        return self._sock.getsockname()[1] if self._sock else None

    def present(self, domain: str, token: str, key_auth: str) -> None:
        ctx = build_challenge_context(domain, key_auth)
        with self._listener_lock:
            with self._lock:
                self._contexts[domain.lower()] = ctx
            if self._sock is None:
                self._start()

    def cleanup(self, domain: str, token: str, key_auth: str) -> None:
        with self._listener_lock:
            with self._lock:
                self._contexts.pop(domain.lower(), None)
                idle = not self._contexts
            if idle:
                self._stop()

    def close(self) -> None:
        with self._listener_lock:
            with self._lock:
                self._contexts.clear()
            self._stop()

    # -- Listener ----------------------------------------------------------

    def _start(self) -> None:
        try:
            self._sock = socket.create_server((self.host, self.port))
        except OSError as exc:
            msg = f"Could not start TLS-ALPN-01 listener on {self.host}:{self.port}: {exc}"
            raise SolverError(msg) from exc
        self._sock.settimeout(_ACCEPT_POLL_SECONDS)
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._serve,
            args=(self._sock,),
            name="tlsalpn01-listener",
            daemon=True,
        )
        self._thread.start()
        log.info("TLS-ALPN-01 listener started on %s:%d", self.host, self.bound_port)

    def _stop(self) -> None:
        if self._sock is None:
            return
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
        self._sock.close()
        self._sock = None
        self._thread = None
        log.info("TLS-ALPN-01 listener stopped")

    def _serve(self, sock: socket.socket) -> None:
        base = _server_context()
        base.sni_callback = self._select_context
        while not self._stop_event.is_set():
            try:
                conn, peer = sock.accept()
            except TimeoutError:
                continue
            except OSError:
                break
            conn.settimeout(_HANDSHAKE_TIMEOUT)
            try:
                with base.wrap_socket(conn, server_side=True) as tls:
                    log.info(
                        "Completed TLS-ALPN-01 handshake with %s (alpn=%s)",
                        peer[0],
                        tls.selected_alpn_protocol(),
                    )
            except (ssl.SSLError, OSError) as exc:
                log.debug("TLS-ALPN-01 handshake with %s failed: %s", peer[0], exc)
                conn.close()

    def _select_context(self, sslsock: ssl.SSLObject, server_name: str | None, _ctx) -> int | None:
        with self._lock:
            ctx = self._contexts.get((server_name or "").lower())
        if ctx is None:
            return ssl.ALERT_DESCRIPTION_UNRECOGNIZED_NAME
        sslsock.context = ctx
        return None
