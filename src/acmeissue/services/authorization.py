"""Authorization polling and deactivation (RFC 8555 §7.5)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from acmeissue.core.poll import Poll
from acmeissue.core.state import observe_transition
from acmeissue.core.types import AuthorizationStatus
from acmeissue.errors import (
    AcmeError,
    AcmeProblem,
    AuthorizationFailed,
    AuthorizationTimeout,
)

if TYPE_CHECKING:
    import threading
    from collections.abc import Iterable

    from acmeissue.config.settings import PollSettings
    from acmeissue.models.authorization import Authorization
    from acmeissue.models.order import Order
    from acmeissue.repositories.authorization import AuthorizationRepository

log = logging.getLogger(__name__)


def authorization_problem(authz: Authorization) -> AcmeProblem | None:
    """Return the authority's error for a failed authorization, if any."""
    failed = authz.failed_challenge()
    if failed is None or not failed.error:
        return None
    return AcmeProblem.from_dict(failed.error)


class AuthorizationService:
    """Fetch, wait on and clean up the authorizations of an order."""

    def __init__(
        self,
        authz_repo: AuthorizationRepository,
        poll_settings: PollSettings,
    ) -> None:
        self._authz = authz_repo
        self._poll_settings = poll_settings

    def fetch_all(self, order: Order) -> list[Authorization]:
        """Fetch every authorization referenced by *order*, in order."""
        return [self._authz.get(url) for url in order.authorizations]

    def wait_valid(
        self,
        authz: Authorization,
        cancel: threading.Event | None = None,
    ) -> Authorization:
        """Re-fetch *authz* until it leaves ``pending``.

        Raises
        ------
        AuthorizationFailed
            If it ends in any status other than ``valid``; carries the
            failed challenge's problem when the authority gave one.
        AuthorizationTimeout
            If it is still pending when the deadline passes.

        """
        domain = authz.domain
        poll = Poll.from_settings(self._poll_settings, cancel)
        previous = authz.status
        for _ in poll:
            authz, retry_after = self._authz.fetch(authz.url)
            poll.retry_after(retry_after)
            observe_transition("authorization", authz.url, previous, authz.status)
            previous = authz.status
            if authz.status is not AuthorizationStatus.PENDING:
                break
        else:
            raise AuthorizationTimeout(domain, poll.timeout)

        if authz.status is not AuthorizationStatus.VALID:
            raise AuthorizationFailed(
                domain,
                authorization_problem(authz),
                status=authz.status.value,
            )
        log.info("Authorization for %s is valid", domain)
        return authz

    def deactivate_pending(self, urls: Iterable[str]) -> None:
        """Best-effort deactivation of authorizations still ``pending``.

        Errors are logged; this runs on failure paths only.
        """
        for url in urls:
            try:
                authz = self._authz.get(url)
                if authz.status is AuthorizationStatus.PENDING:
                    self._authz.deactivate(url)
                    log.info("Deactivated pending authorization for %s", authz.domain)
            except AcmeError as exc:
                log.warning("Could not deactivate authorization %s: %s", url, exc)
