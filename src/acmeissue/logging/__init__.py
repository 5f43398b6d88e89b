"""Logging subsystem for acmeissue.

Public API::

    from acmeissue.logging import configure_logging, log_context

    configure_logging(settings.logging)
    with log_context(domain="example.org"):
        ...
"""

from acmeissue.logging.context import log_context
from acmeissue.logging.setup import configure_logging

__all__ = ["configure_logging", "log_context"]
