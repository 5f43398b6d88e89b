"""JWS signing, JWK encoding and key authorization (RFC 7515 / 7517 / 7638).

Uses the ``cryptography`` library directly -- no josepy dependency.
Every builder here is a pure function: it takes keys and header values
and returns the Flattened JSON Serialization as a dict, so the nested
signatures used by external account binding and key roll-over can be
unit-tested without any network code.

Security note:
    This module handles raw cryptographic operations.  Changes should
    be reviewed carefully for algorithm selection and the raw ``r||s``
    encoding of EC signatures.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac as _hmac
import json
import logging
from typing import Any

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa, utils

from acmeissue.errors import (
    ConfigurationError,
    UnsupportedKeyType,
)

log = logging.getLogger(__name__)

PrivateKey = rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey
PublicKey = rsa.RSAPublicKey | ec.EllipticCurvePublicKey


# --- Base64url helpers (RFC 7515 S2) -------------------------------------


def b64url_decode(s: str) -> bytes:
    """Decode a base64url string (no padding required).

    Parameters
    ----------
    s:
        Base64url-encoded string.

    Returns
    -------
    bytes
        Decoded bytes.

    """
    s = s.replace("-", "+").replace("_", "/")
    remainder = len(s) % 4  # noqa: PLR2004
    if remainder:
        s += "=" * (4 - remainder)  # noqa: PLR2004
    return base64.b64decode(s)


def b64url_encode(b: bytes) -> str:
    """Encode bytes to base64url without padding."""
    return base64.urlsafe_b64encode(b).rstrip(b"=").decode("ascii")


def _json_b64(obj: Any) -> str:  # noqa: ANN401
    return b64url_encode(json.dumps(obj, separators=(",", ":")).encode("utf-8"))


# --- Algorithm dispatch --------------------------------------------------

_RSA_ALGORITHMS: dict[str, hashes.HashAlgorithm] = {
    "RS256": hashes.SHA256(),
}

# Maps JWA algorithm name to (hash, JWK curve name, component length)
_EC_ALGORITHMS: dict[str, tuple[hashes.HashAlgorithm, str, int]] = {
    "ES256": (hashes.SHA256(), "P-256", 32),
    "ES384": (hashes.SHA384(), "P-384", 48),
}

_CURVE_TO_ALG = {"secp256r1": "ES256", "secp384r1": "ES384"}


def algorithm_for_key(key: PrivateKey | PublicKey) -> str:
    """Return the JWA algorithm used to sign with *key*.

    Raises
    ------
    UnsupportedKeyType
        For key types or curves the authority cannot verify.

    """
    if isinstance(key, (rsa.RSAPrivateKey, rsa.RSAPublicKey)):
        return "RS256"
    if isinstance(key, (ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey)):
        alg = _CURVE_TO_ALG.get(key.curve.name)
        if alg is not None:
            return alg
        raise UnsupportedKeyType(key.curve.name)
    raise UnsupportedKeyType(type(key).__name__)


# --- JWK encoding --------------------------------------------------------


def public_key_to_jwk(key: PrivateKey | PublicKey) -> dict[str, str]:
    """Encode the public half of *key* as a JWK dict (RFC 7517).

    Only the required members are emitted, so the result is also the
    canonical input to :func:`compute_thumbprint`.
    """
    pub = key.public_key() if hasattr(key, "private_numbers") else key
    if isinstance(pub, rsa.RSAPublicKey):
        numbers = pub.public_numbers()
        return {
            "kty": "RSA",
            "n": b64url_encode(_int_to_bytes(numbers.n)),
            "e": b64url_encode(_int_to_bytes(numbers.e)),
        }
    if isinstance(pub, ec.EllipticCurvePublicKey):
        alg = algorithm_for_key(pub)
        _, crv, size = _EC_ALGORITHMS[alg]
        numbers = pub.public_numbers()
        return {
            "kty": "EC",
            "crv": crv,
            "x": b64url_encode(numbers.x.to_bytes(size, "big")),
            "y": b64url_encode(numbers.y.to_bytes(size, "big")),
        }
    raise UnsupportedKeyType(type(pub).__name__)


def _int_to_bytes(value: int) -> bytes:
    return value.to_bytes((value.bit_length() + 7) // 8 or 1, "big")


# --- JWK thumbprint (RFC 7638) -------------------------------------------


def compute_thumbprint(jwk_dict: dict[str, Any]) -> str:
    """Compute the RFC 7638 JWK Thumbprint using SHA-256.

    Construct the canonical JSON representation with required members
    in lexicographic order, then return the base64url-encoded SHA-256
    hash.

    Parameters
    ----------
    jwk_dict:
        The JWK dictionary.

    Returns
    -------
    str
        Base64url-encoded thumbprint.

    """
    kty = jwk_dict.get("kty")

    if kty == "RSA":
        canonical = {"e": jwk_dict["e"], "kty": "RSA", "n": jwk_dict["n"]}
    elif kty == "EC":
        canonical = {
            "crv": jwk_dict["crv"],
            "kty": "EC",
            "x": jwk_dict["x"],
            "y": jwk_dict["y"],
        }
    else:
        msg = f"Cannot compute thumbprint for kty '{kty}'"
        raise ConfigurationError(msg)

    canonical_json = json.dumps(canonical, sort_keys=True, separators=(",", ":"))
    return b64url_encode(hashlib.sha256(canonical_json.encode("ascii")).digest())


# --- Key authorization (RFC 8555 S8.1) ------------------------------------


def key_authorization(token: str, jwk_dict: dict[str, Any]) -> str:
    """Compute the key authorization string: ``token.thumbprint``.

    Pure: the same token and account key always give the same value.
    """
    return f"{token}.{compute_thumbprint(jwk_dict)}"


# --- Signing --------------------------------------------------------------


def _sign(key: PrivateKey, alg: str, signing_input: bytes) -> bytes:
    if alg in _RSA_ALGORITHMS:
        return key.sign(signing_input, padding.PKCS1v15(), _RSA_ALGORITHMS[alg])
    hash_alg, _, size = _EC_ALGORITHMS[alg]
    # JWS EC signatures are raw r||s, not DER
    r, s = utils.decode_dss_signature(key.sign(signing_input, ec.ECDSA(hash_alg)))
    return r.to_bytes(size, "big") + s.to_bytes(size, "big")


def sign_jws(
    key: PrivateKey,
    payload: Any,  # noqa: ANN401
    *,
    url: str,
    nonce: str | None = None,
    kid: str | None = None,
) -> dict[str, str]:
    """Build a signed JWS in Flattened JSON Serialization.

    Parameters
    ----------
    key:
        The signing key (account key, or the new key for roll-over).
    payload:
        JSON-serialisable payload, or ``None`` for POST-as-GET (empty
        payload string).
    url:
        Target URL, placed in the protected header.
    nonce:
        Anti-replay nonce; omitted for the inner key-change JWS.
    kid:
        Account URL.  When ``None`` the public ``jwk`` is embedded
        instead (new-account and key-change inner requests).

    """
    alg = algorithm_for_key(key)
    protected: dict[str, Any] = {"alg": alg, "url": url}
    if nonce is not None:
        protected["nonce"] = nonce
    if kid is not None:
        protected["kid"] = kid
    else:
        protected["jwk"] = public_key_to_jwk(key)

    protected_b64 = _json_b64(protected)
    payload_b64 = "" if payload is None else _json_b64(payload)
    signature = _sign(key, alg, f"{protected_b64}.{payload_b64}".encode("ascii"))
    return {
        "protected": protected_b64,
        "payload": payload_b64,
        "signature": b64url_encode(signature),
    }


def build_eab_jws(
    account_jwk: dict[str, Any],
    eab_kid: str,
    hmac_key_b64: str,
    url: str,
) -> dict[str, str]:
    """Build the externalAccountBinding inner JWS (RFC 8555 S7.3.4).

    The inner object is signed with HS256 over the outer account JWK
    using the pre-shared MAC key; its serialised form becomes the
    ``externalAccountBinding`` member of the new-account payload.

    Raises
    ------
    ConfigurationError
        If the MAC key is not valid base64url.

    """
    try:
        hmac_key = b64url_decode(hmac_key_b64)
    except (ValueError, binascii.Error) as exc:
        msg = f"EAB HMAC key is not valid base64url: {exc}"
        raise ConfigurationError(msg) from exc

    protected_b64 = _json_b64({"alg": "HS256", "kid": eab_kid, "url": url})
    payload_b64 = _json_b64(account_jwk)
    signature = _hmac.new(
        hmac_key,
        f"{protected_b64}.{payload_b64}".encode("ascii"),
        hashlib.sha256,
    ).digest()
    return {
        "protected": protected_b64,
        "payload": payload_b64,
        "signature": b64url_encode(signature),
    }


def build_key_change_jws(
    new_key: PrivateKey,
    old_key: PrivateKey,
    account_url: str,
    url: str,
) -> dict[str, str]:
    """Build the inner key-change JWS (RFC 8555 S7.3.5).

    Signed by the *new* key with an embedded ``jwk`` and no nonce; the
    outer request is then signed by the old key as usual.
    """
    payload = {"account": account_url, "oldKey": public_key_to_jwk(old_key)}
    return sign_jws(new_key, payload, url=url)
