"""Client-side replay-nonce pool.

Every signed request consumes exactly one nonce.  Nonces come from the
``Replay-Nonce`` header of earlier responses; when the pool is empty a
fresh one is fetched from the directory's ``newNonce`` endpoint.

All pool access happens under a lock and :meth:`NoncePool.pop` removes
the nonce it returns, so no two concurrent requests are ever handed the
same value.  Nonces fetched on demand go straight to the caller and
are never shared.

Usage::

    pool = NoncePool(fetch=api.fetch_nonce)
    nonce = pool.pop()           # cached or freshly fetched
    pool.push(resp.header("replay-nonce"))
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

log = logging.getLogger(__name__)

_DEFAULT_MAX_SIZE = 64


class NoncePool:
    """Thread-safe FIFO of unused nonces."""

    def __init__(
        self,
        fetch: Callable[[], str],
        max_size: int = _DEFAULT_MAX_SIZE,
    ) -> None:
        self._fetch = fetch
        self._nonces: deque[str] = deque(maxlen=max_size)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._nonces)

    def push(self, nonce: str | None) -> None:
        """Add a nonce received in a response header."""
        if not nonce:
            return
        with self._lock:
            self._nonces.append(nonce)

    def pop(self) -> str:
        """Remove and return a nonce, fetching a new one if none is cached."""
        with self._lock:
            if self._nonces:
                return self._nonces.popleft()
        log.debug("Nonce pool empty, fetching a fresh nonce")
        return self._fetch()

    def clear(self) -> None:
        with self._lock:
            self._nonces.clear()
