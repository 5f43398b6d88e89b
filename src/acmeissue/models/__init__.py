"""Resource models for the issuance engine.

All models are frozen dataclasses built from the authority's JSON with
``from_dict``.  Use :func:`dataclasses.replace` for modifications
(copy-on-write).
"""

from acmeissue.models.account import Account, Registration
from acmeissue.models.authorization import Authorization
from acmeissue.models.certificate import CertificateResource, ObtainRequest
from acmeissue.models.challenge import Challenge
from acmeissue.models.order import Identifier, Order

__all__ = [
    "Account",
    "Authorization",
    "CertificateResource",
    "Challenge",
    "Identifier",
    "ObtainRequest",
    "Order",
    "Registration",
]
