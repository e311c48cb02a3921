"""
Queue projection: derived view state for one restaurant's parties.

Everything here is a pure function of the party set and an explicit ``now``.
Positions are recomputed on every call and never stored.
"""

import math
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from app.models.party import PartyStatus
from app.services.transitions import host_actions

AVERAGE_WAIT_MINUTES = 10
NO_SHOW_THRESHOLD = timedelta(minutes=5)
ANALYTICS_WINDOW = timedelta(days=30)

WEEKDAYS = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
PEAK_HOUR_START = 11
PEAK_HOUR_COUNT = 12
SIZE_BUCKETS = ["1–2", "3–4", "5–6", "7+"]


def _created_key(party) -> datetime:
    # A record without a timestamp has only just been written
    return party.created_at or datetime.max


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_waiting_order(parties: Iterable[Any]) -> List[Any]:
    """Waiting parties in FIFO order; index + 1 is the position.

    The sort is stable, so ties on created_at keep fetch order.
    """
    waiting = [p for p in parties if p.status == PartyStatus.WAITING]
    return sorted(waiting, key=_created_key)


def queue_positions(parties: Iterable[Any]) -> Dict[str, int]:
    """Map of party id to 1-based position for waiting parties"""
    return {
        party.id: index + 1
        for index, party in enumerate(compute_waiting_order(parties))
    }


def estimate_wait_minutes(position: int) -> int:
    return max(position, 0) * AVERAGE_WAIT_MINUTES


def is_likely_no_show(party, now: datetime, threshold: timedelta = NO_SHOW_THRESHOLD) -> bool:
    """True when a party has been ready longer than threshold without being seated"""
    if party.status != PartyStatus.READY or party.ready_at is None:
        return False
    return now - party.ready_at > threshold


def queue_summary(parties: Iterable[Any], now: datetime) -> Dict[str, int]:
    """Aggregate numbers shown on the kiosk: no per-party data"""
    waiting = compute_waiting_order(parties)
    elapsed = [
        math.floor((now - p.created_at).total_seconds() / 60)
        for p in waiting
        if p.created_at is not None
    ]
    average = _round_half_up(sum(elapsed) / len(elapsed)) if elapsed else 0
    return {
        "waiting_count": len(waiting),
        "average_wait_minutes": average,
        "estimated_wait_minutes": estimate_wait_minutes(len(waiting) + 1),
    }


def _hour_label(hour: int) -> str:
    suffix = "PM" if hour >= 12 else "AM"
    display = 12 if hour % 12 == 0 else hour % 12
    return f"{display}:00 {suffix}"


def _size_bucket(size: int) -> str:
    if size <= 2:
        return SIZE_BUCKETS[0]
    if size <= 4:
        return SIZE_BUCKETS[1]
    if size <= 6:
        return SIZE_BUCKETS[2]
    return SIZE_BUCKETS[3]


def compute_kpis(
    parties: Iterable[Any],
    now: datetime,
    window_start: Optional[datetime] = None
) -> Dict[str, Any]:
    """Analytics for the trailing window ending at ``now``.

    Every bucket list is zero-filled so its length never depends on the data.
    """
    if window_start is None:
        window_start = now - ANALYTICS_WINDOW

    in_window = [
        p for p in parties
        if p.created_at is not None and window_start <= p.created_at < now
    ]
    today = [p for p in in_window if p.created_at.date() == now.date()]

    no_shows_today = sum(1 for p in today if p.status == PartyStatus.NO_SHOW)
    no_show_rate = _round_half_up(no_shows_today / len(today) * 100) if today else 0

    day_counts = {day: 0 for day in WEEKDAYS}
    hour_counts: Dict[int, int] = {}
    size_counts = {bucket: 0 for bucket in SIZE_BUCKETS}
    for party in in_window:
        day_counts[WEEKDAYS[(party.created_at.weekday() + 1) % 7]] += 1
        hour_counts[party.created_at.hour] = hour_counts.get(party.created_at.hour, 0) + 1
        size_counts[_size_bucket(party.size or 0)] += 1

    busiest_days = sorted(
        ({"day": day, "parties": day_counts[day]} for day in WEEKDAYS),
        key=lambda item: item["parties"],
        reverse=True,
    )
    peak_hours = [
        {"hour": _hour_label(hour), "parties": hour_counts.get(hour, 0)}
        for hour in range(PEAK_HOUR_START, PEAK_HOUR_START + PEAK_HOUR_COUNT)
    ]

    return {
        "window_start": window_start.isoformat(),
        "window_end": now.isoformat(),
        "parties_today": len(today),
        "guests_today": sum(p.size or 0 for p in today),
        "no_show_rate": no_show_rate,
        "busiest_days": busiest_days,
        "peak_hours": peak_hours,
        "party_size_distribution": [
            {"name": bucket, "value": size_counts[bucket]} for bucket in SIZE_BUCKETS
        ],
    }


def party_to_dict(party) -> Dict[str, Any]:
    status = party.status.value if isinstance(party.status, PartyStatus) else party.status
    return {
        "id": party.id,
        "restaurant_slug": party.restaurant_slug,
        "name": party.name,
        "size": party.size,
        "phone": party.phone,
        "notes": party.notes,
        "status": status,
        "created_at": party.created_at.isoformat() if party.created_at else None,
        "ready_at": party.ready_at.isoformat() if party.ready_at else None,
    }


class QueueProjection:
    """Projection owned by one restaurant scope.

    Built from a full read, then kept current with ``apply_change`` as
    change events arrive. Parties are held in fetch order.
    """

    def __init__(
        self,
        restaurant_slug: str,
        parties: Iterable[Any],
        now: datetime,
        no_show_threshold: timedelta = NO_SHOW_THRESHOLD
    ):
        self.restaurant_slug = restaurant_slug
        self.now = now
        self.no_show_threshold = no_show_threshold
        self._parties: Dict[str, Any] = {}
        for party in parties:
            self._check_scope(party)
            self._parties[party.id] = party
        self._rebuild()

    def _check_scope(self, party):
        if party.restaurant_slug != self.restaurant_slug:
            raise ValueError(
                f"Party {party.id} belongs to '{party.restaurant_slug}', not '{self.restaurant_slug}'"
            )

    def _rebuild(self):
        self.parties = sorted(self._parties.values(), key=_created_key)
        self.waiting = compute_waiting_order(self.parties)
        self.positions = {party.id: index + 1 for index, party in enumerate(self.waiting)}

    def set_clock(self, now: datetime) -> "QueueProjection":
        self.now = now
        return self

    def apply_change(self, op: str, party) -> None:
        """Apply one insert/update/delete to the projection"""
        self._check_scope(party)
        if op == "delete":
            self._parties.pop(party.id, None)
        elif op in ("insert", "update"):
            self._parties[party.id] = party
        else:
            raise ValueError(f"Unknown change operation: {op}")
        self._rebuild()

    def get(self, party_id: str):
        return self._parties.get(party_id)

    def position_of(self, party_id: str) -> Optional[int]:
        return self.positions.get(party_id)

    def summary(self) -> Dict[str, int]:
        return queue_summary(self.parties, self.now)

    def host_entries(self) -> List[Dict[str, Any]]:
        entries = []
        for party in self.parties:
            position = self.positions.get(party.id)
            entry = party_to_dict(party)
            entry.update({
                "position": position,
                "estimated_wait_minutes": estimate_wait_minutes(position) if position else 0,
                "likely_no_show": is_likely_no_show(party, self.now, self.no_show_threshold),
                "actions": host_actions(party.status),
            })
            entries.append(entry)
        return entries

    def host_view(self) -> Dict[str, Any]:
        return {
            "restaurant_slug": self.restaurant_slug,
            "parties": self.host_entries(),
            "waiting_count": len(self.waiting),
            "average_wait_minutes": estimate_wait_minutes(1),
        }

    def guest_status(self, party_id: str) -> Optional[Dict[str, Any]]:
        """Narrowed view for one guest: their own party and aggregate counts only"""
        party = self._parties.get(party_id)
        if party is None:
            return None
        position = self.positions.get(party_id)
        status = party.status.value if isinstance(party.status, PartyStatus) else party.status
        return {
            "party": {
                "id": party.id,
                "name": party.name,
                "size": party.size,
                "status": status,
            },
            "position": position,
            "estimated_wait_minutes": estimate_wait_minutes(position) if position else None,
            "waiting_count": len(self.waiting),
        }
