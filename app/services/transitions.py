"""
Status transition guard and input validation for party mutations
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.models.party import PartyStatus
from app.services.errors import InvalidTransition, PartyClosed, ValidationError
from app.services.events import TableReadyNotification

ALLOWED_TRANSITIONS = {
    PartyStatus.WAITING: [PartyStatus.READY, PartyStatus.NO_SHOW],
    PartyStatus.READY: [PartyStatus.SEATED, PartyStatus.NO_SHOW],
    PartyStatus.SEATED: [],
    PartyStatus.NO_SHOW: [],
}


def allowed_targets(status) -> List[PartyStatus]:
    return list(ALLOWED_TRANSITIONS[PartyStatus(status)])


def is_editable(status) -> bool:
    """Size and notes can change until the party is seated or a no-show"""
    return bool(ALLOWED_TRANSITIONS[PartyStatus(status)])


def host_actions(status) -> List[str]:
    actions = [target.value for target in allowed_targets(status)]
    if is_editable(status):
        actions.append("edit")
    actions.append("remove")
    return actions


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _check_size(size) -> int:
    if isinstance(size, bool) or not isinstance(size, int) or size < 1:
        raise ValidationError("Party size must be a positive whole number", details={"size": size})
    return size


def validate_new_party(
    name: Optional[str],
    size: Any,
    phone: Optional[str] = None,
    notes: Optional[str] = None
) -> Dict[str, Any]:
    """Return cleaned fields for a new party or raise ValidationError"""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Party name is required")
    return {
        "name": name,
        "size": _check_size(size),
        "phone": _clean_optional(phone),
        "notes": _clean_optional(notes),
    }


def validate_edit(party, changes: Dict[str, Any]) -> Dict[str, Any]:
    """Cleaned updates for the fields present in changes.

    An absent field is left alone; notes sent as null or blank are cleared.
    """
    status = PartyStatus(party.status)
    if not is_editable(status):
        raise PartyClosed(party.id, status.value)

    updates = {}
    if "size" in changes:
        updates["size"] = _check_size(changes["size"])
    if "notes" in changes:
        updates["notes"] = _clean_optional(changes["notes"])
    if not updates:
        raise ValidationError("Nothing to update")
    return updates


@dataclass
class TransitionPlan:
    party_id: str
    current: PartyStatus
    target: PartyStatus
    updates: Dict[str, Any] = field(default_factory=dict)
    events: List[Any] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.updates)


def plan_transition(party, target, now: datetime) -> TransitionPlan:
    """Work out the writes and side-effect events for moving party to target.

    Asking for the status the party already has is a no-op: nothing is
    written and no notification is emitted.
    """
    current = PartyStatus(party.status)
    target = PartyStatus(target)
    plan = TransitionPlan(party_id=party.id, current=current, target=target)

    if current == target:
        return plan
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(current.value, target.value)

    plan.updates["status"] = target.value
    if target == PartyStatus.READY:
        plan.updates["ready_at"] = now
        if party.phone:
            plan.events.append(TableReadyNotification(
                party_id=party.id,
                restaurant_slug=party.restaurant_slug,
                phone=party.phone,
            ))
    return plan
