"""Deadline-bounded polling with capped exponential backoff.

Every wait between attempts is a ``threading.Event.wait`` on the shared
cancellation signal, so a sibling failure interrupts a sleeping poller
immediately instead of after its interval.

Usage::

    poll = Poll(timeout=60, interval=1, max_interval=8, cancel=cancel)
    for _ in poll:
        resource = fetch()
        if done(resource):
            break
        poll.retry_after(response.header("retry-after"))
    else:
        raise ChallengeTimeout(domain, poll.timeout)
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Any

from acmeissue.errors import OperationCancelled

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

log = logging.getLogger(__name__)

_BACKOFF_FACTOR = 2.0


class Poll:
    """Iterator yielding attempt numbers until a deadline passes.

    The first attempt happens immediately.  Each later attempt waits the
    current interval, which doubles up to *max_interval*.  When the
    deadline is reached the iterator is exhausted, so ``for ... else``
    expresses the timeout branch.  A set *cancel* event raises
    :class:`OperationCancelled` at the next wait.

    Parameters
    ----------
    timeout:
        Overall deadline in seconds, measured from the first attempt.
    interval:
        Initial delay between attempts.
    max_interval:
        Upper bound for the backoff; defaults to *interval* (fixed
        interval polling).
    cancel:
        Shared cancellation signal.
    clock:
        Monotonic clock, injectable for tests.

    """

    def __init__(
        self,
        *,
        timeout: float,
        interval: float,
        max_interval: float | None = None,
        cancel: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.timeout = timeout
        self.interval = interval
        self.max_interval = max(max_interval or interval, interval)
        self._cancel = cancel or threading.Event()
        self._clock = clock
        self._override: float | None = None

    @classmethod
    def from_settings(cls, settings: Any, cancel: threading.Event | None = None) -> Poll:  # noqa: ANN401
        """Build from a :class:`~acmeissue.config.settings.PollSettings`."""
        return cls(
            timeout=settings.timeout_seconds,
            interval=settings.interval_seconds,
            max_interval=settings.max_interval_seconds,
            cancel=cancel,
        )

    def retry_after(self, value: str | None) -> None:
        """Use an authority ``Retry-After`` value as the next delay.

        Accepts delta-seconds or an HTTP date; the delay is capped at
        ``max_interval``.  Unparseable values are ignored.
        """
        if not value:
            return
        try:
            delay = float(value)
        except ValueError:
            try:
                when = parsedate_to_datetime(value)
            except (TypeError, ValueError):
                log.debug("Ignoring unparseable Retry-After %r", value)
                return
            if when.tzinfo is None:
                when = when.replace(tzinfo=UTC)
            delay = (when - datetime.now(UTC)).total_seconds()
        self._override = min(max(delay, 0.0), self.max_interval)

    def __iter__(self) -> Iterator[int]:
        deadline = self._clock() + self.timeout
        delay = self.interval
        attempt = 0
        while True:
            if self._cancel.is_set():
                raise OperationCancelled("polling cancelled")
            yield attempt
            attempt += 1

            remaining = deadline - self._clock()
            if remaining <= 0:
                return
            wait = self._override if self._override is not None else delay
            self._override = None
            if self._cancel.wait(min(wait, remaining)):
                raise OperationCancelled("polling cancelled")
            delay = min(delay * _BACKOFF_FACTOR, self.max_interval)
