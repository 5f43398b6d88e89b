"""In-process ACME authority used by the test-suite.

:class:`FakeAuthority` is a drop-in ``urllib`` opener: hand it to
:class:`acmeissue.api.transport.Transport` (or ``Client(opener=...)``)
and every request is answered from memory.  It verifies JWS signatures,
enforces single-use nonces and issues real certificates from a
throw-away CA, so the whole issuance flow runs without a network.

Knobs for failure injection:

``bad_nonce_count``
    Reject this many signed requests with ``badNonce``.
``invalid_domains``
    Challenges for these domains end ``invalid``.
``stuck_domains``
    Challenges for these domains stay ``processing`` forever.
``prevalidated``
    Authorizations for these domains are created ``valid``.
``validator``
    ``(domain, type, token, key_auth) -> bool`` consulted on accept.
"""

from __future__ import annotations

import hashlib
import hmac
import io
import itertools
import json
import secrets
import threading
import urllib.error
from datetime import UTC, datetime, timedelta
from email.message import Message

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from acmeissue.core.jws import (
    b64url_decode,
    b64url_encode,
    compute_thumbprint,
    key_authorization,
)
from acmeissue.errors import AcmeProblem

from jws_verify import jwk_to_public_key, parse_jws, verify_signature

BASE = "https://acme.test"
DIRECTORY_URL = f"{BASE}/directory"

_P = "urn:ietf:params:acme:error:"


class _Problem(Exception):
    def __init__(self, error_type: str, detail: str, status: int = 400) -> None:
        self.error_type = _P + error_type
        self.detail = detail
        self.status = status
        super().__init__(detail)


class FakeResponse:
    def __init__(self, url: str, status: int, headers: Message, body: bytes) -> None:
        self.url = url
        self.status = status
        self.headers = headers
        self._body = body

    def read(self) -> bytes:
        return self._body

    def close(self) -> None:
        pass


def make_ca(common_name: str) -> tuple[ec.EllipticCurvePrivateKey, x509.Certificate]:
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=3650))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )
    return key, cert


def _pem(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)


class FakeAuthority:
    """Thread-safe in-memory ACME server speaking through ``open()``."""

    def __init__(
        self,
        *,
        terms_of_service: str | None = None,
        eab_keys: dict[str, bytes] | None = None,
        eab_required: bool = False,
        alternate_issuer: str | None = None,
        offered: tuple[str, ...] = ("http-01", "dns-01", "tls-alpn-01"),
        validity_days: int = 90,
        key_change: bool = True,
    ) -> None:
        self.terms_of_service = terms_of_service
        self.eab_keys = eab_keys or {}
        self.eab_required = eab_required
        self.offered = offered
        self.validity_days = validity_days
        self.key_change_enabled = key_change

        self.ca_key, self.ca_cert = make_ca("Fake Root X1")
        self.alt_ca = make_ca(alternate_issuer) if alternate_issuer else None

        self.bad_nonce_count = 0
        self.invalid_domains: set[str] = set()
        self.stuck_domains: set[str] = set()
        self.prevalidated: set[str] = set()
        self.validator = None

        self.accounts: dict[str, dict] = {}
        self.orders: dict[str, dict] = {}
        self.authzs: dict[str, dict] = {}
        self.challenges: dict[str, dict] = {}
        self.certs: dict[str, dict] = {}
        self.revoked: dict[int, int | None] = {}
        self.requests: list[tuple[str, str]] = []

        self._nonces: set[str] = set()
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    # -- Directory -----------------------------------------------------------

    def directory(self) -> dict:
        data = {
            "newNonce": f"{BASE}/new-nonce",
            "newAccount": f"{BASE}/new-account",
            "newOrder": f"{BASE}/new-order",
            "revokeCert": f"{BASE}/revoke-cert",
        }
        if self.key_change_enabled:
            data["keyChange"] = f"{BASE}/key-change"
        meta: dict = {}
        if self.terms_of_service:
            meta["termsOfService"] = self.terms_of_service
        if self.eab_required:
            meta["externalAccountRequired"] = True
        if meta:
            data["meta"] = meta
        return data

    # -- Opener interface ------------------------------------------------------

    def open(self, req, timeout=None):  # noqa: ARG002
        method = req.get_method()
        url = req.full_url
        with self._lock:
            self.requests.append((method, url))
            try:
                status, body, headers = self._dispatch(method, url, req.data)
            except _Problem as exc:
                self._raise(url, exc.status, exc.error_type, exc.detail)
            except AcmeProblem as exc:
                self._raise(url, 400 if exc.status < 400 else exc.status, exc.error_type, exc.detail)
            msg = Message()
            msg["Replay-Nonce"] = self._new_nonce()
            for name, value in headers:
                msg[name] = value
            if isinstance(body, (dict, list)):
                msg["Content-Type"] = "application/json"
                body = json.dumps(body).encode("utf-8")
            return FakeResponse(url, status, msg, body or b"")

    def _raise(self, url: str, status: int, error_type: str, detail: str) -> None:
        msg = Message()
        msg["Content-Type"] = "application/problem+json"
        msg["Replay-Nonce"] = self._new_nonce()
        body = json.dumps({"type": error_type, "detail": detail, "status": status}).encode()
        raise urllib.error.HTTPError(url, status, detail, msg, io.BytesIO(body))

    def _new_nonce(self) -> str:
        nonce = secrets.token_urlsafe(16)
        self._nonces.add(nonce)
        return nonce

    def _next_url(self, kind: str) -> str:
        return f"{BASE}/{kind}/{next(self._ids)}"

    # -- Routing ---------------------------------------------------------------

    def _dispatch(self, method: str, url: str, data: bytes | None):
        path = url.removeprefix(BASE)
        if method == "GET" and path == "/directory":
            return 200, self.directory(), []
        if method == "HEAD" and path == "/new-nonce":
            return 200, b"", []
        if method != "POST":
            raise _Problem("malformed", f"{method} not allowed on {path}", 405)

        if self.bad_nonce_count > 0:
            self.bad_nonce_count -= 1
            raise _Problem("badNonce", "injected bad nonce")

        jws = parse_jws(data)
        if jws.nonce not in self._nonces:
            raise _Problem("badNonce", "unknown or reused nonce")
        self._nonces.discard(jws.nonce)
        if jws.url != url:
            raise _Problem("unauthorized", "url header does not match request URL", 401)

        if path == "/new-account":
            return self._new_account(jws)

        account_url, account = self._authenticate(jws)
        payload = jws.payload
        if path == "/new-order":
            return self._new_order(account_url, payload)
        if path == "/revoke-cert":
            return self._revoke(payload)
        if path == "/key-change":
            return self._key_change(url, account_url, account, payload)
        if path.startswith("/acct/"):
            return self._account(url, account_url, account, payload)
        if path.startswith("/order/") and path.endswith("/finalize"):
            return self._finalize(url.removesuffix("/finalize"), payload)
        if path.startswith("/order/"):
            return 200, self._order_body(url), []
        if path.startswith("/authz/"):
            return self._authz(url, payload)
        if path.startswith("/chall/"):
            return self._challenge(url, account, payload)
        if path.startswith("/cert/"):
            return self._certificate(url)
        raise _Problem("malformed", f"no resource at {path}", 404)

    def _authenticate(self, jws) -> tuple[str, dict]:
        if jws.kid is None:
            raise _Problem("malformed", "kid required")
        account = self.accounts.get(jws.kid)
        if account is None:
            raise _Problem("accountDoesNotExist", f"no account {jws.kid}")
        if account["status"] != "valid":
            raise _Problem("unauthorized", "account is not valid", 403)
        verify_signature(jws, jwk_to_public_key(account["jwk"]))
        return jws.kid, account

    # -- Accounts ----------------------------------------------------------------

    def _account_body(self, account: dict) -> dict:
        return {
            "status": account["status"],
            "contact": account["contact"],
            "termsOfServiceAgreed": account["tos"],
            "orders": account["orders_url"],
        }

    def _new_account(self, jws):
        if jws.jwk is None:
            raise _Problem("malformed", "new-account requires an embedded jwk")
        verify_signature(jws, jwk_to_public_key(jws.jwk))
        payload = jws.payload or {}
        thumbprint = compute_thumbprint(jws.jwk)
        for url, account in self.accounts.items():
            if account["thumbprint"] == thumbprint:
                return 200, self._account_body(account), [("Location", url)]
        if payload.get("onlyReturnExisting"):
            raise _Problem("accountDoesNotExist", "no account for this key")
        if self.terms_of_service and not payload.get("termsOfServiceAgreed"):
            raise _Problem("userActionRequired", "terms of service must be agreed", 403)

        eab = payload.get("externalAccountBinding")
        if self.eab_required and eab is None:
            raise _Problem("externalAccountRequired", "external account binding required")
        if eab is not None:
            self._check_eab(eab, jws.jwk)

        url = self._next_url("acct")
        self.accounts[url] = {
            "jwk": jws.jwk,
            "thumbprint": thumbprint,
            "status": "valid",
            "contact": list(payload.get("contact") or []),
            "tos": bool(payload.get("termsOfServiceAgreed")),
            "orders_url": f"{url}/orders",
            "eab": eab,
        }
        return 201, self._account_body(self.accounts[url]), [("Location", url)]

    def _check_eab(self, eab: dict, account_jwk: dict) -> None:
        inner = parse_jws(eab)
        if inner.algorithm != "HS256":
            raise _Problem("malformed", "EAB must use HS256")
        key = self.eab_keys.get(inner.protected_header.get("kid"))
        if key is None:
            raise _Problem("unauthorized", "unknown EAB key id", 403)
        expected = hmac.new(
            key,
            f"{inner.protected_b64}.{inner.payload_b64}".encode("ascii"),
            hashlib.sha256,
        ).digest()
        if not hmac.compare_digest(expected, inner.signature):
            raise _Problem("unauthorized", "EAB signature mismatch", 403)
        if inner.payload != account_jwk:
            raise _Problem("malformed", "EAB payload is not the account key")
        if inner.url != f"{BASE}/new-account":
            raise _Problem("malformed", "EAB url mismatch")

    def _account(self, url: str, account_url: str, account: dict, payload):
        if url != account_url:
            raise _Problem("unauthorized", "cannot access another account", 403)
        payload = payload or {}
        if "contact" in payload:
            account["contact"] = list(payload["contact"])
        if payload.get("status") == "deactivated":
            account["status"] = "deactivated"
        return 200, self._account_body(account), []

    def _key_change(self, url: str, account_url: str, account: dict, payload):
        inner = parse_jws(payload)
        if inner.jwk is None:
            raise _Problem("malformed", "inner JWS must embed the new jwk")
        if inner.nonce is not None or inner.url != url:
            raise _Problem("malformed", "inner JWS header is invalid")
        verify_signature(inner, jwk_to_public_key(inner.jwk))
        body = inner.payload or {}
        if body.get("account") != account_url or body.get("oldKey") != account["jwk"]:
            raise _Problem("malformed", "inner payload does not match the account")
        account["jwk"] = inner.jwk
        account["thumbprint"] = compute_thumbprint(inner.jwk)
        return 200, self._account_body(account), []

    # -- Orders and authorizations ----------------------------------------------

    def _new_order(self, account_url: str, payload):
        identifiers = payload.get("identifiers") or []
        if not identifiers:
            raise _Problem("malformed", "no identifiers")
        url = self._next_url("order")
        authz_urls = [self._new_authz(account_url, ident) for ident in identifiers]
        self.orders[url] = {
            "account": account_url,
            "status": "pending",
            "identifiers": identifiers,
            "authorizations": authz_urls,
            "certificate": None,
        }
        return 201, self._order_body(url), [("Location", url)]

    def _new_authz(self, account_url: str, ident: dict) -> str:
        url = self._next_url("authz")
        value = ident["value"]
        wildcard = value.startswith("*.")
        base = value.removeprefix("*.")
        types = ("dns-01",) if wildcard else self.offered
        challenges = []
        for challenge_type in types:
            chall_url = self._next_url("chall")
            self.challenges[chall_url] = {
                "type": challenge_type,
                "status": "pending",
                "token": secrets.token_urlsafe(24),
                "authz": url,
                "error": None,
            }
            challenges.append(chall_url)
        self.authzs[url] = {
            "account": account_url,
            "identifier": {"type": ident["type"], "value": base},
            "domain": value,
            "wildcard": wildcard,
            "status": "valid" if value in self.prevalidated else "pending",
            "challenges": challenges,
        }
        return url

    def _refresh_order(self, order: dict) -> None:
        statuses = [self.authzs[u]["status"] for u in order["authorizations"]]
        if order["status"] == "pending":
            if any(s not in ("pending", "valid") for s in statuses):
                order["status"] = "invalid"
            elif all(s == "valid" for s in statuses):
                order["status"] = "ready"

    def _order_body(self, url: str) -> dict:
        order = self.orders.get(url)
        if order is None:
            raise _Problem("malformed", f"no order {url}", 404)
        if order["status"] == "processing":
            self._issue(url, order)
        self._refresh_order(order)
        body = {
            "status": order["status"],
            "identifiers": order["identifiers"],
            "authorizations": order["authorizations"],
            "finalize": f"{url}/finalize",
        }
        if order["certificate"]:
            body["certificate"] = order["certificate"]
        if order["status"] == "invalid":
            body["error"] = {"type": _P + "unauthorized", "detail": "an authorization failed"}
        return body

    def _challenge_body(self, url: str) -> dict:
        chall = self.challenges[url]
        body = {"type": chall["type"], "url": url, "status": chall["status"], "token": chall["token"]}
        if chall["error"]:
            body["error"] = chall["error"]
        return body

    def _authz_body(self, url: str) -> dict:
        authz = self.authzs[url]
        body = {
            "identifier": authz["identifier"],
            "status": authz["status"],
            "challenges": [self._challenge_body(c) for c in authz["challenges"]],
        }
        if authz["wildcard"]:
            body["wildcard"] = True
        return body

    def _authz(self, url: str, payload):
        authz = self.authzs.get(url)
        if authz is None:
            raise _Problem("malformed", f"no authorization {url}", 404)
        if payload and payload.get("status") == "deactivated":
            authz["status"] = "deactivated"
        return 200, self._authz_body(url), []

    def _challenge(self, url: str, account: dict, payload):
        chall = self.challenges.get(url)
        if chall is None:
            raise _Problem("malformed", f"no challenge {url}", 404)
        authz = self.authzs[chall["authz"]]
        if payload is not None and chall["status"] == "pending":
            chall["status"] = "processing"
            return 200, self._challenge_body(url), []
        if chall["status"] == "processing" and authz["domain"] not in self.stuck_domains:
            self._validate(chall, authz, account)
        return 200, self._challenge_body(url), []

    def _validate(self, chall: dict, authz: dict, account: dict) -> None:
        domain = authz["domain"]
        key_auth = key_authorization(chall["token"], account["jwk"])
        ok = domain not in self.invalid_domains
        if ok and self.validator is not None:
            ok = self.validator(domain, chall["type"], chall["token"], key_auth)
        if ok:
            chall["status"] = "valid"
            authz["status"] = "valid"
        else:
            chall["status"] = "invalid"
            chall["error"] = {"type": _P + "unauthorized", "detail": f"validation of {domain} failed"}
            authz["status"] = "invalid"

    # -- Finalization and certificates -----------------------------------------

    def _finalize(self, order_url: str, payload):
        order = self.orders.get(order_url)
        if order is None:
            raise _Problem("malformed", "no such order", 404)
        self._refresh_order(order)
        if order["status"] != "ready":
            raise _Problem("orderNotReady", f"order is {order['status']}", 403)
        csr = x509.load_der_x509_csr(b64url_decode(payload["csr"]))
        san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        names = set(san.get_values_for_type(x509.DNSName))
        names |= {str(ip) for ip in san.get_values_for_type(x509.IPAddress)}
        wanted = {i["value"] for i in order["identifiers"]}
        if names != wanted:
            raise _Problem("badCSR", f"CSR names {sorted(names)} != order {sorted(wanted)}")
        order["csr"] = csr
        order["status"] = "processing"
        return 200, self._order_body_static(order_url), []

    def _order_body_static(self, url: str) -> dict:
        order = self.orders[url]
        return {
            "status": order["status"],
            "identifiers": order["identifiers"],
            "authorizations": order["authorizations"],
            "finalize": f"{url}/finalize",
        }

    def _sign_leaf(self, csr, ca_key, ca_cert) -> x509.Certificate:
        now = datetime.now(UTC)
        builder = (
            x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(ca_cert.subject)
            .public_key(csr.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=5))
            .not_valid_after(now + timedelta(days=self.validity_days))
        )
        for ext in csr.extensions:
            builder = builder.add_extension(ext.value, critical=ext.critical)
        return builder.sign(ca_key, hashes.SHA256())

    def _issue(self, url: str, order: dict) -> None:
        csr = order["csr"]
        leaf = self._sign_leaf(csr, self.ca_key, self.ca_cert)
        cert_url = self._next_url("cert")
        entry = {"chain": _pem(leaf) + _pem(self.ca_cert), "leaf": leaf, "alternates": []}
        if self.alt_ca is not None:
            alt_key, alt_cert = self.alt_ca
            alt_leaf = self._sign_leaf(csr, alt_key, alt_cert)
            alt_url = f"{cert_url}/alt"
            self.certs[alt_url] = {"chain": _pem(alt_leaf) + _pem(alt_cert), "leaf": alt_leaf, "alternates": []}
            entry["alternates"].append(alt_url)
        self.certs[cert_url] = entry
        order["certificate"] = cert_url
        order["status"] = "valid"

    def _certificate(self, url: str):
        entry = self.certs.get(url)
        if entry is None:
            raise _Problem("malformed", "no such certificate", 404)
        headers = [("Content-Type", "application/pem-certificate-chain")]
        headers += [("Link", f'<{alt}>;rel="alternate"') for alt in entry["alternates"]]
        return 200, entry["chain"], headers

    def _revoke(self, payload):
        der = b64url_decode(payload["certificate"])
        cert = x509.load_der_x509_certificate(der)
        known = {e["leaf"].serial_number for e in self.certs.values()}
        if cert.serial_number not in known:
            raise _Problem("malformed", "unknown certificate", 404)
        if cert.serial_number in self.revoked:
            raise _Problem("alreadyRevoked", "certificate already revoked")
        self.revoked[cert.serial_number] = payload.get("reason")
        return 200, b"", []

    # -- Test helpers ------------------------------------------------------------

    def account_for_key(self, jwk: dict) -> dict | None:
        thumbprint = compute_thumbprint(jwk)
        for account in self.accounts.values():
            if account["thumbprint"] == thumbprint:
                return account
        return None

    def count(self, method: str, fragment: str) -> int:
        with self._lock:
            return sum(1 for m, u in self.requests if m == method and fragment in u)


def eab_hmac_key() -> tuple[bytes, str]:
    """Return a raw MAC key and its base64url form."""
    raw = secrets.token_bytes(32)
    return raw, b64url_encode(raw)
