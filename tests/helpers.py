"""Shared helpers for the acmeissue tests: solvers and settings."""

from __future__ import annotations

import threading
import time
from pathlib import Path

from acmeissue.challenge.base import Solver, SolverError
from acmeissue.config.settings import build_settings
from acmeissue.core.types import ChallengeType

from fake_authority import DIRECTORY_URL

# Polling windows short enough for the suite, long enough for threads
FAST_POLL = {"timeout_seconds": 2, "interval_seconds": 0.01, "max_interval_seconds": 0.05}


# ---------------------------------------------------------------------------
# Solvers
# ---------------------------------------------------------------------------


class RecordingSolver(Solver):
    """In-memory solver that records every call.

    ``presented`` maps live tokens to key authorizations, so a fake
    authority validator can check what is actually published.
    """

    challenge_type = ChallengeType.HTTP_01

    def __init__(
        self,
        config=None,
        *,
        challenge_type: ChallengeType = ChallengeType.HTTP_01,
        fail_present: tuple[str, ...] = (),
        fail_cleanup: tuple[str, ...] = (),
        sequential: bool = False,
        delay: float = 0.0,
    ) -> None:
        super().__init__(config)
        self.challenge_type = challenge_type
        self.fail_present = set(fail_present)
        self.fail_cleanup = set(fail_cleanup)
        self.sequential = sequential
        self.delay = delay
        self.presented: dict[str, str] = {}
        self.events: list[tuple[str, str]] = []
        self.active = 0
        self.max_active = 0
        self.closed = False
        self._lock = threading.Lock()

    def present(self, domain, token, key_auth):
        with self._lock:
            self.events.append(("present", domain))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        if self.delay:
            time.sleep(self.delay)
        if domain in self.fail_present:
            msg = f"cannot publish proof for {domain}"
            raise SolverError(msg)
        with self._lock:
            self.presented[token] = key_auth

    def cleanup(self, domain, token, key_auth):
        with self._lock:
            self.events.append(("cleanup", domain))
            self.active -= 1
            self.presented.pop(token, None)
        if domain in self.fail_cleanup:
            msg = f"cannot remove proof for {domain}"
            raise SolverError(msg)

    def close(self):
        self.closed = True

    def calls(self, action: str) -> list[str]:
        with self._lock:
            return [d for a, d in self.events if a == action]


def published_validator(*solvers: RecordingSolver):
    """Validator accepting a challenge only if a solver published its key authorization."""

    def validate(domain, challenge_type, token, key_auth):
        return any(s.presented.get(token) == key_auth for s in solvers)

    return validate


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def make_settings(tmp_path: Path | None = None, **sections):
    """Settings pointed at the fake authority with fast polling."""
    data = {
        "server": {"directory_url": DIRECTORY_URL},
        "account": {"email": "admin@example.com", "accept_tos": True},
        "certificate": {"key_type": "EC256"},
        "challenges": {
            "dns01": {"propagation": "none"},
        },
        "polling": {
            "authorization": dict(FAST_POLL),
            "challenge": dict(FAST_POLL),
            "finalization": dict(FAST_POLL),
        },
    }
    if tmp_path is not None:
        data["storage"] = {"path": str(tmp_path / "store")}
    for name, values in sections.items():
        base = data.setdefault(name, {})
        for key, value in values.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                base[key] = {**base[key], **value}
            else:
                base[key] = value
    return build_settings(data)


