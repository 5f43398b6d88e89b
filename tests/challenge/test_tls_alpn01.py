"""Tests for the TLS-ALPN-01 solver."""

from __future__ import annotations

import hashlib
import socket
import ssl

import pytest
from cryptography import x509

from acmeissue.challenge.tls_alpn01 import (
    ACME_IDENTIFIER_OID,
    ACME_TLS_ALPN,
    TlsAlpnSolver,
    build_challenge_certificate,
)

KEY_AUTH = "token.thumbprint"


def _handshake(port: int, server_name: str) -> tuple[x509.Certificate, str | None]:
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    ctx.set_alpn_protocols([ACME_TLS_ALPN])
    with socket.create_connection(("127.0.0.1", port), timeout=5) as sock:
        with ctx.wrap_socket(sock, server_hostname=server_name) as tls:
            der = tls.getpeercert(binary_form=True)
            return x509.load_der_x509_certificate(der), tls.selected_alpn_protocol()


class TestChallengeCertificate:
    def test_acme_identifier_extension(self):
        cert, _ = build_challenge_certificate("example.com", KEY_AUTH)
        ext = cert.extensions.get_extension_for_oid(ACME_IDENTIFIER_OID)
        assert ext.critical
        assert ext.value.value == b"\x04\x20" + hashlib.sha256(KEY_AUTH.encode()).digest()

    def test_san_is_the_domain(self):
        cert, _ = build_challenge_certificate("example.com", KEY_AUTH)
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        assert san.get_values_for_type(x509.DNSName) == ["example.com"]


class TestTlsAlpnSolver:
    @pytest.fixture()
    def solver(self):
        solver = TlsAlpnSolver({"address": "127.0.0.1:0"})
        yield solver
        solver.close()

    def test_serves_certificate_by_sni(self, solver):
        solver.present("example.com", "t1", KEY_AUTH)
        solver.present("www.example.com", "t2", "other.thumbprint")

        cert, alpn = _handshake(solver.bound_port, "www.example.com")

        assert alpn == ACME_TLS_ALPN
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        assert san.get_values_for_type(x509.DNSName) == ["www.example.com"]
        digest = cert.extensions.get_extension_for_oid(ACME_IDENTIFIER_OID).value.value[2:]
        assert digest == hashlib.sha256(b"other.thumbprint").digest()

    def test_unknown_name_is_rejected(self, solver):
        solver.present("example.com", "t1", KEY_AUTH)
        with pytest.raises((ssl.SSLError, OSError)):
            _handshake(solver.bound_port, "unknown.example.com")

    def test_listener_stops_after_last_cleanup(self, solver):
        solver.present("example.com", "t1", KEY_AUTH)
        solver.present("www.example.com", "t2", KEY_AUTH)
        port = solver.bound_port

        solver.cleanup("example.com", "t1", KEY_AUTH)
        assert solver.bound_port == port
        solver.cleanup("www.example.com", "t2", KEY_AUTH)
        assert solver.bound_port is None

    def test_restart_after_stop(self, solver):
        solver.present("example.com", "t1", KEY_AUTH)
        solver.cleanup("example.com", "t1", KEY_AUTH)
        solver.present("example.com", "t1", KEY_AUTH)
        cert, _ = _handshake(solver.bound_port, "example.com")
        assert cert.extensions.get_extension_for_oid(ACME_IDENTIFIER_OID).critical
