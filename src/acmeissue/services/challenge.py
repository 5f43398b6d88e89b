"""Challenge service: drives authorizations to ``valid`` through solvers.

For each pending authorization one challenge is selected, its proof is
presented by the matching :class:`~acmeissue.challenge.base.Solver`,
DNS propagation is awaited where needed, the authority is told to
validate, and the challenge and authorization are polled to a final
status.  Cleanup of a presented proof always runs.

Authorizations of one order are solved concurrently on a bounded
thread pool.  The first domain to fail sets a shared cancellation
event: sibling pollers wake up, raise
:class:`~acmeissue.errors.OperationCancelled` and still clean up.
Solvers declaring themselves ``sequential`` are run one domain at a
time behind a per-type gate.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from typing import TYPE_CHECKING

from acmeissue.challenge.dns01 import dns01_record
from acmeissue.core.jws import key_authorization
from acmeissue.core.poll import Poll
from acmeissue.core.state import is_terminal, observe_transition
from acmeissue.core.types import (
    CHALLENGE_PREFERENCE,
    AuthorizationStatus,
    ChallengeStatus,
    ChallengeType,
)
from acmeissue.errors import (
    AcmeError,
    AcmeProblem,
    AuthorizationFailed,
    ChallengeSetupFailed,
    ChallengeTimeout,
    NoUsableChallenge,
    ObtainError,
    OperationCancelled,
)
from acmeissue.logging import log_context
from acmeissue.services.authorization import authorization_problem

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Sequence

    from acmeissue.api.core import AcmeApi
    from acmeissue.challenge.base import Solver
    from acmeissue.challenge.dns01 import PropagationChecker
    from acmeissue.config.settings import ChallengeSettings, PollSettings
    from acmeissue.models.authorization import Authorization
    from acmeissue.models.challenge import Challenge
    from acmeissue.repositories.challenge import ChallengeRepository
    from acmeissue.services.authorization import AuthorizationService

log = logging.getLogger(__name__)

_GATE_POLL_SECONDS = 0.2


class ChallengeService:
    """Solve the authorizations of an order.

    Parameters
    ----------
    api:
        Signed API; its account JWK feeds the key authorizations.
    challenge_repo:
        Accepts and fetches challenge resources.
    authz_service:
        Polls authorizations once their challenge is valid.
    solvers:
        One configured solver per challenge type.
    settings:
        Preferred/excluded types and the parallelism cap.
    poll_settings:
        Challenge polling deadline and backoff.
    propagation:
        DNS propagation checker used before accepting ``dns-01``.

    """

    def __init__(
        self,
        api: AcmeApi,
        challenge_repo: ChallengeRepository,
        authz_service: AuthorizationService,
        solvers: Mapping[ChallengeType, Solver],
        settings: ChallengeSettings,
        poll_settings: PollSettings,
        propagation: PropagationChecker,
    ) -> None:
        self._api = api
        self._challenges = challenge_repo
        self._authz = authz_service
        self._solvers = dict(solvers)
        self._settings = settings
        self._poll_settings = poll_settings
        self._propagation = propagation
        self._gates = {
            challenge_type: threading.Lock()
            for challenge_type, solver in self._solvers.items()
            if solver.sequential
        }

    # -- Selection -------------------------------------------------------------

    def select_challenge(self, authz: Authorization) -> tuple[Challenge, Solver]:
        """Pick the challenge to solve for *authz* and its solver.

        The configured preferred type wins when offered; otherwise the
        first offered type in http-01, dns-01, tls-alpn-01 order.
        Excluded types and types without a solver are skipped.

        Raises
        ------
        NoUsableChallenge
            If nothing offered is usable.

        """
        excluded = set(self._settings.exclude)
        order = list(CHALLENGE_PREFERENCE)
        if self._settings.preferred:
            preferred = ChallengeType(self._settings.preferred)
            order.remove(preferred)
            order.insert(0, preferred)

        for challenge_type in order:
            if challenge_type.value in excluded or challenge_type not in self._solvers:
                continue
            challenge = authz.challenge(challenge_type.value)
            if challenge is not None:
                return challenge, self._solvers[challenge_type]
        raise NoUsableChallenge(authz.domain, authz.offered_types)

    # -- Single authorization ------------------------------------------------------

    def solve(
        self,
        authz: Authorization,
        cancel: threading.Event | None = None,
    ) -> Authorization:
        """Drive one authorization to ``valid``.

        Raises
        ------
        NoUsableChallenge
        ChallengeSetupFailed
            If the solver could not present the proof.
        PropagationTimeout / ChallengeTimeout / AuthorizationTimeout
        AuthorizationFailed
            If the authority rejected the proof.
        OperationCancelled
            If *cancel* was set by a failing sibling.

        """
        cancel = cancel or threading.Event()
        if authz.status is AuthorizationStatus.VALID:
            log.info("Reusing valid authorization for %s", authz.domain)
            return authz
        if authz.status is not AuthorizationStatus.PENDING:
            raise AuthorizationFailed(
                authz.domain,
                authorization_problem(authz),
                status=authz.status.value,
            )

        challenge, solver = self.select_challenge(authz)
        challenge_type = ChallengeType(challenge.type)
        key_auth = key_authorization(challenge.token, self._api.jwk)
        log.info("Solving %s for %s", challenge.type, authz.domain)

        with self._gate(challenge_type, cancel):
            if cancel.is_set():
                raise OperationCancelled(f"{authz.domain}: cancelled before presenting")
            try:
                try:
                    solver.present(authz.domain, challenge.token, key_auth)
                except Exception as exc:  # noqa: BLE001
                    raise ChallengeSetupFailed(authz.domain, str(exc)) from exc

                if challenge_type is ChallengeType.DNS_01:
                    self._wait_propagation(authz.domain, key_auth, solver, cancel)
                self._validate(authz, challenge, cancel)
            finally:
                self._cleanup(solver, authz.domain, challenge.token, key_auth)

        return self._authz.wait_valid(authz, cancel)

    @contextmanager
    def _gate(self, challenge_type: ChallengeType, cancel: threading.Event) -> Iterator[None]:
        gate = self._gates.get(challenge_type)
        if gate is None:
            yield
            return
        while not gate.acquire(timeout=_GATE_POLL_SECONDS):
            if cancel.is_set():
                raise OperationCancelled(f"cancelled waiting for the {challenge_type} solver")
        try:
            yield
        finally:
            gate.release()

    def _wait_propagation(
        self,
        domain: str,
        key_auth: str,
        solver: Solver,
        cancel: threading.Event,
    ) -> None:
        dns = self._settings.dns01
        timeout, interval = solver.timeout() or (
            dns.propagation_timeout_seconds,
            dns.propagation_interval_seconds,
        )
        fqdn, value = dns01_record(domain, key_auth)
        self._propagation.wait(fqdn, value, timeout=timeout, interval=interval, cancel=cancel)

    def _validate(
        self,
        authz: Authorization,
        challenge: Challenge,
        cancel: threading.Event,
    ) -> None:
        """Accept *challenge* and poll it to a final status."""
        previous = challenge.status
        challenge = self._challenges.accept(challenge.url)
        poll = Poll.from_settings(self._poll_settings, cancel)
        for attempt in poll:
            if attempt:
                challenge, retry_after = self._challenges.fetch(challenge.url)
                poll.retry_after(retry_after)
            observe_transition("challenge", challenge.url, previous, challenge.status)
            previous = challenge.status
            if is_terminal("challenge", challenge.status):
                break
        else:
            raise ChallengeTimeout(authz.domain, poll.timeout)

        if challenge.status is ChallengeStatus.INVALID:
            problem = AcmeProblem.from_dict(challenge.error) if challenge.error else None
            raise AuthorizationFailed(authz.domain, problem)

    @staticmethod
    def _cleanup(solver: Solver, domain: str, token: str, key_auth: str) -> None:
        try:
            solver.cleanup(domain, token, key_auth)
        except Exception:  # noqa: BLE001
            log.warning(
                "Cleanup of %s proof for %s failed",
                solver.challenge_type,
                domain,
                exc_info=True,
            )

    # -- Whole order ----------------------------------------------------------------

    def _solve_in_context(self, authz: Authorization, cancel: threading.Event) -> Authorization:
        with log_context(domain=authz.domain):
            return self.solve(authz, cancel)

    def solve_all(self, authzs: Sequence[Authorization]) -> list[Authorization]:
        """Solve every authorization concurrently, failing fast.

        Returns the authorizations in their final (``valid``) state, in
        input order.

        Raises
        ------
        ObtainError
            Carrying each failed domain's error.  Domains that were only
            cancelled because of a sibling failure are not listed.

        """
        pending = [a for a in authzs if a.status is not AuthorizationStatus.VALID]
        for authz in authzs:
            if authz.status is AuthorizationStatus.VALID:
                log.info("Reusing valid authorization for %s", authz.domain)
        if not pending:
            return list(authzs)

        cancel = threading.Event()
        failures: dict[str, AcmeError] = {}
        results: dict[str, Authorization] = {}
        workers = max(1, min(self._settings.max_parallel, len(pending)))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="acmeissue-solve") as pool:
            futures = {pool.submit(self._solve_in_context, a, cancel): a for a in pending}
            for future in as_completed(futures):
                authz = futures[future]
                try:
                    results[authz.url] = future.result()
                except OperationCancelled:
                    log.debug("Solving %s cancelled", authz.domain)
                except AcmeError as exc:
                    log.error("Could not authorize %s: %s", authz.domain, exc.detail)
                    failures[authz.domain] = exc
                    cancel.set()
                except BaseException:
                    cancel.set()
                    raise

        if failures:
            raise ObtainError(failures)
        return [results.get(a.url, a) for a in authzs]
