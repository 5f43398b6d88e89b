"""Per-thread logging context.

The engine solves each domain on its own worker thread; binding the
domain (and the order URL) here lets every record emitted on that
thread carry them without threading them through each call.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

CONTEXT_FIELDS = ("domain", "order")

_local = threading.local()


def current_context() -> dict[str, str]:
    """Return a copy of the fields bound on the calling thread."""
    return dict(getattr(_local, "fields", {}))


@contextmanager
def log_context(**fields: str) -> Iterator[None]:
    """Bind *fields* for the duration of the ``with`` block."""
    previous = getattr(_local, "fields", {})
    _local.fields = {**previous, **{k: v for k, v in fields.items() if v is not None}}
    try:
        yield
    finally:
        _local.fields = previous
