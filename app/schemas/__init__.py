"""
Pydantic schemas package
"""

from .common import *
from .party import *
from .billing import *

__all__ = [
    "StandardResponse",
    "ErrorResponse",
    "PartyCreate",
    "GuestJoinRequest",
    "PartyUpdate",
    "StatusChange",
    "PartyResponse",
    "CheckoutRequest",
    "SmsRequest"
]
