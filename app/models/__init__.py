"""
Database models package
"""

from .party import Party, PartyStatus
from .subscription import Subscription

__all__ = ["Party", "PartyStatus", "Subscription"]
