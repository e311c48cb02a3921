"""
Events emitted by queue mutations: change events for subscribers and
notification requests for the SMS dispatcher.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict


def restaurant_display_name(slug: str) -> str:
    """'joes-grill' -> 'Joes Grill'"""
    if not slug:
        return "Restaurant"
    return " ".join(word[:1].upper() + word[1:] for word in slug.split("-"))


@dataclass
class PartyChange:
    """A committed insert/update/delete of one party row"""
    op: str  # insert, update, delete
    party: Any
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @property
    def restaurant_slug(self) -> str:
        return self.party.restaurant_slug


@dataclass
class JoinConfirmation:
    party_id: str
    restaurant_slug: str
    phone: str
    name: str
    position: int

    def message(self) -> str:
        return (
            f"Hi {self.name}! You've been added to the waitlist at "
            f"{restaurant_display_name(self.restaurant_slug)}. You're #{self.position} in line. "
            "We'll text you when your table is ready."
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "join_confirmation", "party_id": self.party_id, "phone": self.phone}


@dataclass
class TableReadyNotification:
    party_id: str
    restaurant_slug: str
    phone: str

    def message(self) -> str:
        return (
            f"Your table at {restaurant_display_name(self.restaurant_slug)} is ready! "
            "Please proceed to the host stand."
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "table_ready", "party_id": self.party_id, "phone": self.phone}
