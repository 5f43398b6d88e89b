"""ACME resource state machines (RFC 8555), as observed by the client.

The authority owns every transition; the client only watches them while
polling.  The tables below let the poller tell terminal states apart
and flag transitions a conforming authority should never report.

Usage::

    from acmeissue.core.state import observe_transition
    from acmeissue.core.types import OrderStatus

    observe_transition("order", url, OrderStatus.PENDING, OrderStatus.READY)
"""

from __future__ import annotations

import logging
from enum import StrEnum

from acmeissue.core.types import (
    AuthorizationStatus,
    ChallengeStatus,
    OrderStatus,
)

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Order: pending → ready/invalid, ready → processing/valid/invalid,
#         processing → valid/invalid.  valid & invalid are terminal.
# ---------------------------------------------------------------------------

ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.READY, OrderStatus.INVALID}),
    OrderStatus.READY: frozenset(
        {OrderStatus.PROCESSING, OrderStatus.VALID, OrderStatus.INVALID},
    ),
    OrderStatus.PROCESSING: frozenset({OrderStatus.VALID, OrderStatus.INVALID}),
    OrderStatus.VALID: frozenset(),
    OrderStatus.INVALID: frozenset(),
}

# ---------------------------------------------------------------------------
# Authorization: pending → valid/invalid/deactivated/expired,
#                valid → deactivated/revoked/expired.  Others are terminal.
# ---------------------------------------------------------------------------

AUTHORIZATION_TRANSITIONS: dict[AuthorizationStatus, frozenset[AuthorizationStatus]] = {
    AuthorizationStatus.PENDING: frozenset(
        {
            AuthorizationStatus.VALID,
            AuthorizationStatus.INVALID,
            AuthorizationStatus.DEACTIVATED,
            AuthorizationStatus.EXPIRED,
        }
    ),
    AuthorizationStatus.VALID: frozenset(
        {
            AuthorizationStatus.DEACTIVATED,
            AuthorizationStatus.REVOKED,
            AuthorizationStatus.EXPIRED,
        }
    ),
    AuthorizationStatus.INVALID: frozenset(),
    AuthorizationStatus.DEACTIVATED: frozenset(),
    AuthorizationStatus.EXPIRED: frozenset(),
    AuthorizationStatus.REVOKED: frozenset(),
}

# ---------------------------------------------------------------------------
# Challenge: pending → processing/valid/invalid,
#            processing → valid/invalid/pending (retry)
# ---------------------------------------------------------------------------

CHALLENGE_TRANSITIONS: dict[ChallengeStatus, frozenset[ChallengeStatus]] = {
    ChallengeStatus.PENDING: frozenset(
        {ChallengeStatus.PROCESSING, ChallengeStatus.VALID, ChallengeStatus.INVALID},
    ),
    ChallengeStatus.PROCESSING: frozenset(
        {
            ChallengeStatus.VALID,
            ChallengeStatus.INVALID,
            ChallengeStatus.PENDING,  # retry
        }
    ),
    ChallengeStatus.VALID: frozenset(),
    ChallengeStatus.INVALID: frozenset(),
}

_TABLES: dict[str, dict] = {
    "order": ORDER_TRANSITIONS,
    "authorization": AUTHORIZATION_TRANSITIONS,
    "challenge": CHALLENGE_TRANSITIONS,
}


def is_terminal(resource_type: str, status: StrEnum) -> bool:
    """Return ``True`` if no further transition can leave *status*."""
    table = _TABLES[resource_type]
    if status not in table:
        msg = f"Unknown {resource_type} status {status!r}"
        raise ValueError(msg)
    return not table[status]


def is_allowed(resource_type: str, current: StrEnum, target: StrEnum) -> bool:
    """Return ``True`` if *current* → *target* is a legal transition."""
    if current == target:
        return True
    return target in _TABLES[resource_type].get(current, frozenset())


def observe_transition(
    resource_type: str,
    resource_id: str,
    from_status: StrEnum | None,
    to_status: StrEnum,
    *,
    reason: str | None = None,
) -> None:
    """Log a status change seen while polling.

    Repeated identical statuses are ignored; transitions absent from the
    resource's table are logged at WARNING since they indicate a
    non-conforming authority.
    """
    if from_status is None or from_status == to_status:
        return
    if not is_allowed(resource_type, from_status, to_status):
        log.warning(
            "Unexpected %s transition %s -> %s for %s",
            resource_type,
            from_status.value,
            to_status.value,
            resource_id,
        )
    log_transition(resource_type, resource_id, from_status, to_status, reason=reason)


def log_transition(
    resource_type: str,
    resource_id,
    from_status,
    to_status,
    *,
    reason: str | None = None,
) -> None:
    """Emit a structured log entry for a state transition.

    Parameters
    ----------
    resource_type:
        ``"order"``, ``"authorization"``, or ``"challenge"``.
    resource_id:
        The authority URL of the resource.
    from_status:
        The previous status value.
    to_status:
        The new status value.
    reason:
        Optional human-readable reason for the transition.

    """
    extra = {
        "event": "state_transition",
        "resource_type": resource_type,
        "resource_id": str(resource_id),
        "from_status": from_status.value if hasattr(from_status, "value") else str(from_status),
        "to_status": to_status.value if hasattr(to_status, "value") else str(to_status),
    }
    if reason:
        extra["reason"] = reason
    log.info(
        "%s %s: %s -> %s%s",
        resource_type,
        resource_id,
        extra["from_status"],
        extra["to_status"],
        f" ({reason})" if reason else "",
        extra=extra,
    )
