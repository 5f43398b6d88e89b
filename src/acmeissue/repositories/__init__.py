"""Repository classes over the authority's resources.

Each repository wraps an :class:`~acmeissue.api.core.AcmeApi` and turns
signed requests against one resource type into model objects; the
authority is the store, resource URLs are the primary keys.
"""

from acmeissue.repositories.account import AccountRepository
from acmeissue.repositories.authorization import AuthorizationRepository
from acmeissue.repositories.certificate import CertificateRepository
from acmeissue.repositories.challenge import ChallengeRepository
from acmeissue.repositories.order import OrderRepository

__all__ = [
    "AccountRepository",
    "AuthorizationRepository",
    "CertificateRepository",
    "ChallengeRepository",
    "OrderRepository",
]
