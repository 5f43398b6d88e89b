"""Issuance engine service layer.

Each service drives one stage of the issuance flow and talks to the
authority through the repository layer.
"""

from acmeissue.services.account import RegistrationService
from acmeissue.services.authorization import AuthorizationService
from acmeissue.services.certificate import CertificateService
from acmeissue.services.challenge import ChallengeService
from acmeissue.services.order import OrderService

__all__ = [
    "AuthorizationService",
    "CertificateService",
    "ChallengeService",
    "OrderService",
    "RegistrationService",
]
