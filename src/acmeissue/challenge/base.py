"""Abstract base class for challenge solvers.

All solvers (built-in and custom) must inherit from :class:`Solver` and
implement :meth:`present` and :meth:`cleanup`.  The orchestration layer
calls ``cleanup`` exactly once for every ``present`` it attempts.
"""

from __future__ import annotations

import abc
import logging
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from collections.abc import Mapping

    from acmeissue.core.types import ChallengeType

log = logging.getLogger(__name__)


class SolverError(Exception):
    """Raised by solvers when a proof cannot be presented or removed.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    retryable:
        Whether the failure is transient.

    """

    def __init__(self, detail: str, *, retryable: bool = False) -> None:  # noqa: FBT001, FBT002
        self.detail = detail
        self.retryable = retryable
        super().__init__(detail)


class Solver(abc.ABC):
    """Base class for all challenge solvers.

    Subclasses must set :attr:`challenge_type` and may override
    :attr:`sequential` and :meth:`timeout`.

    Parameters
    ----------
    config:
        Provider-specific options (listener address, webroot, command,
        API credentials...).

    """

    challenge_type: ClassVar[ChallengeType]
    """The ACME challenge type this solver fulfils."""

    description: ClassVar[str] = ""
    """One-line summary shown in CLI help."""

    sequential: bool = False
    """When ``True`` the orchestrator never runs two of this solver's
    present/cleanup cycles at the same time."""

    def __init__(self, config: Mapping[str, Any] | None = None) -> None:
        self.config = dict(config or {})

    @abc.abstractmethod
    def present(self, domain: str, token: str, key_auth: str) -> None:
        """Publish the proof artifact for *domain*.

        Must raise on failure; returning means the artifact is in place.
        """

    @abc.abstractmethod
    def cleanup(self, domain: str, token: str, key_auth: str) -> None:
        """Remove the artifact published by :meth:`present`."""

    def timeout(self) -> tuple[float, float] | None:
        """Return ``(propagation_timeout, poll_interval)`` in seconds.

        ``None`` keeps the configured defaults.
        """
        return None

    def close(self) -> None:  # noqa: B027
        """Release long-lived resources (listeners, sessions).

        Default implementation is a no-op.
        """
