"""Key generation, CSR construction and PEM helpers.

Pure functions over the ``cryptography`` library.  Nothing here touches
the network or any shared state.
"""

from __future__ import annotations

import ipaddress
import re
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

from acmeissue.core.types import IdentifierType, KeyType
from acmeissue.errors import ConfigurationError, UnsupportedKeyType

if TYPE_CHECKING:
    from collections.abc import Iterable

    from acmeissue.core.jws import PrivateKey

_RSA_SIZES: dict[KeyType, int] = {
    KeyType.RSA2048: 2048,
    KeyType.RSA4096: 4096,
    KeyType.RSA8192: 8192,
}

_EC_CURVES: dict[KeyType, type[ec.EllipticCurve]] = {
    KeyType.EC256: ec.SECP256R1,
    KeyType.EC384: ec.SECP384R1,
}

# X.520 upper bound for the CommonName attribute
_MAX_CN_LENGTH = 64

_PEM_BLOCK_RE = re.compile(
    rb"-----BEGIN ([A-Z0-9 ]+)-----\r?\n.*?-----END \1-----\r?\n?",
    re.DOTALL,
)


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


def parse_key_type(name: str | KeyType) -> KeyType:
    """Resolve a key-type name (case-insensitive) to :class:`KeyType`.

    Raises
    ------
    UnsupportedKeyType
        For any name outside the supported set.

    """
    try:
        return KeyType(str(name).upper())
    except ValueError:
        raise UnsupportedKeyType(str(name)) from None


def generate_private_key(key_type: KeyType | str) -> PrivateKey:
    """Generate a fresh private key of the requested type."""
    key_type = parse_key_type(key_type)
    if key_type in _RSA_SIZES:
        return rsa.generate_private_key(public_exponent=65537, key_size=_RSA_SIZES[key_type])
    return ec.generate_private_key(_EC_CURVES[key_type]())


def private_key_to_pem(key: PrivateKey) -> bytes:
    """Serialise *key* as an unencrypted traditional-OpenSSL PEM block."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def load_private_key_pem(data: bytes) -> PrivateKey:
    """Load an RSA or EC private key from PEM.

    Raises
    ------
    ConfigurationError
        If the data is not a supported unencrypted private key.

    """
    try:
        key = serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError) as exc:
        msg = f"Cannot load private key: {exc}"
        raise ConfigurationError(msg) from exc
    if not isinstance(key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)):
        raise UnsupportedKeyType(type(key).__name__)
    return key


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


def unique_domains(domains: Iterable[str]) -> list[str]:
    """Lower-case, strip and deduplicate *domains* keeping first-seen order."""
    seen: dict[str, None] = {}
    for domain in domains:
        name = domain.strip().lower()
        if name:
            seen.setdefault(name, None)
    return list(seen)


def identifier_type(value: str) -> IdentifierType:
    """Return ``ip`` for IP-address literals, ``dns`` otherwise."""
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return IdentifierType.DNS
    return IdentifierType.IP


# ---------------------------------------------------------------------------
# CSR
# ---------------------------------------------------------------------------


def build_csr(
    key: PrivateKey,
    domains: Iterable[str],
    *,
    must_staple: bool = False,
) -> x509.CertificateSigningRequest:
    """Build a CSR for *domains* signed by *key*.

    The subject common name is the first domain; the SAN extension lists
    every domain, deduplicated in first-seen order.  With *must_staple*
    the TLS Feature ``status_request`` extension (OCSP must-staple,
    RFC 7633) is added.

    Raises
    ------
    ConfigurationError
        If *domains* is empty.

    """
    names = unique_domains(domains)
    if not names:
        msg = "At least one domain is required to build a CSR"
        raise ConfigurationError(msg)

    sans: list[x509.GeneralName] = []
    for name in names:
        if identifier_type(name) is IdentifierType.IP:
            sans.append(x509.IPAddress(ipaddress.ip_address(name)))
        else:
            sans.append(x509.DNSName(name))

    subject = []
    if len(names[0]) <= _MAX_CN_LENGTH:
        subject.append(x509.NameAttribute(NameOID.COMMON_NAME, names[0]))

    builder = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name(subject))
        .add_extension(x509.SubjectAlternativeName(sans), critical=False)
    )
    if must_staple:
        builder = builder.add_extension(
            x509.TLSFeature([x509.TLSFeatureType.status_request]),
            critical=False,
        )
    return builder.sign(key, hashes.SHA256())


def load_csr(data: bytes) -> x509.CertificateSigningRequest:
    """Load a CSR from PEM or DER bytes."""
    try:
        if b"-----BEGIN" in data:
            return x509.load_pem_x509_csr(data)
        return x509.load_der_x509_csr(data)
    except ValueError as exc:
        msg = f"Cannot load CSR: {exc}"
        raise ConfigurationError(msg) from exc


def csr_to_der(csr: x509.CertificateSigningRequest) -> bytes:
    return csr.public_bytes(serialization.Encoding.DER)


def csr_to_pem(csr: x509.CertificateSigningRequest) -> bytes:
    return csr.public_bytes(serialization.Encoding.PEM)


def _names_from(subject: x509.Name, extensions: x509.Extensions) -> list[str]:
    names = [
        str(attr.value) for attr in subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    ]
    try:
        san = extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        pass
    else:
        names.extend(san.get_values_for_type(x509.DNSName))
        names.extend(str(ip) for ip in san.get_values_for_type(x509.IPAddress))
    return unique_domains(names)


def csr_domains(csr: x509.CertificateSigningRequest) -> list[str]:
    """Return the CSR's common name followed by its SANs, deduplicated."""
    return _names_from(csr.subject, csr.extensions)


# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------


def split_pem_chain(data: bytes) -> list[bytes]:
    """Split a PEM stream into its individual blocks, in order."""
    blocks = []
    for match in _PEM_BLOCK_RE.finditer(data):
        block = match.group(0)
        if not block.endswith(b"\n"):
            block += b"\n"
        blocks.append(block)
    return blocks


def load_certificate(pem: bytes) -> x509.Certificate:
    """Load the first certificate of a PEM stream."""
    try:
        return x509.load_pem_x509_certificate(pem)
    except ValueError as exc:
        msg = f"Cannot load certificate: {exc}"
        raise ConfigurationError(msg) from exc


def certificate_domains(cert: x509.Certificate) -> list[str]:
    """Return the certificate's common name followed by its SANs."""
    return _names_from(cert.subject, cert.extensions)


def issuer_common_name(cert: x509.Certificate) -> str | None:
    attrs = cert.issuer.get_attributes_for_oid(NameOID.COMMON_NAME)
    return str(attrs[0].value) if attrs else None


def days_until_expiry(cert: x509.Certificate, now: datetime | None = None) -> float:
    """Return the number of days (fractional) left before *cert* expires."""
    now = now or datetime.now(UTC)
    return (cert.not_valid_after_utc - now).total_seconds() / 86400
