"""Enumerated types shared by the issuance engine.

All enums inherit from :class:`enum.StrEnum` so their ``.value`` is the
plain string the authority sends and expects on the wire.
:class:`RevocationReason` inherits from :class:`enum.IntEnum` per
RFC 5280 §5.3.1 integer codes.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum

# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------


class AccountStatus(StrEnum):
    VALID = "valid"
    DEACTIVATED = "deactivated"
    REVOKED = "revoked"


# ---------------------------------------------------------------------------
# Order
# ---------------------------------------------------------------------------


class OrderStatus(StrEnum):
    PENDING = "pending"
    READY = "ready"
    PROCESSING = "processing"
    VALID = "valid"
    INVALID = "invalid"


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class AuthorizationStatus(StrEnum):
    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"
    DEACTIVATED = "deactivated"
    EXPIRED = "expired"
    REVOKED = "revoked"


# ---------------------------------------------------------------------------
# Challenge
# ---------------------------------------------------------------------------


class ChallengeStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    VALID = "valid"
    INVALID = "invalid"


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


class IdentifierType(StrEnum):
    DNS = "dns"
    IP = "ip"


# ---------------------------------------------------------------------------
# Challenge types
# ---------------------------------------------------------------------------


class ChallengeType(StrEnum):
    HTTP_01 = "http-01"
    DNS_01 = "dns-01"
    TLS_ALPN_01 = "tls-alpn-01"


# Fallback selection order when no preferred type is configured
CHALLENGE_PREFERENCE: tuple[ChallengeType, ...] = (
    ChallengeType.HTTP_01,
    ChallengeType.DNS_01,
    ChallengeType.TLS_ALPN_01,
)


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


class KeyType(StrEnum):
    RSA2048 = "RSA2048"
    RSA4096 = "RSA4096"
    RSA8192 = "RSA8192"
    EC256 = "EC256"
    EC384 = "EC384"


# ---------------------------------------------------------------------------
# DNS propagation pre-check
# ---------------------------------------------------------------------------


class PropagationStrategy(StrEnum):
    AUTHORITATIVE = "authoritative"
    RECURSIVE = "recursive"
    NONE = "none"


# ---------------------------------------------------------------------------
# Revocation reasons (RFC 5280 §5.3.1)
# ---------------------------------------------------------------------------


class RevocationReason(IntEnum):
    UNSPECIFIED = 0
    KEY_COMPROMISE = 1
    CA_COMPROMISE = 2
    AFFILIATION_CHANGED = 3
    SUPERSEDED = 4
    CESSATION_OF_OPERATION = 5
    CERTIFICATE_HOLD = 6
    # 7 is unused
    REMOVE_FROM_CRL = 8
    PRIVILEGE_WITHDRAWN = 9
    AA_COMPROMISE = 10
