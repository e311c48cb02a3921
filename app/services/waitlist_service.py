"""
Waitlist operations with real-time change publishing
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.services.errors import PartyNotFound
from app.services.events import JoinConfirmation, PartyChange
from app.services.projection import QueueProjection, compute_kpis, queue_summary
from app.services.repositories import PartyRepo, snapshot
from app.services.transitions import plan_transition, validate_edit, validate_new_party

logger = logging.getLogger(__name__)


def load_projection(db: Session, slug: str, now: Optional[datetime] = None) -> QueueProjection:
    """Full read of a restaurant's parties into a fresh projection"""
    parties = [snapshot(p) for p in PartyRepo.list_for_restaurant(db, slug)]
    return QueueProjection(
        slug,
        parties,
        now or datetime.utcnow(),
        timedelta(minutes=settings.NO_SHOW_THRESHOLD_MINUTES)
    )


@dataclass
class MutationResult:
    """Outcome of a queue mutation.

    ``projection`` comes from a full re-read after the write committed.
    ``notifications`` are for the dispatcher; delivering them is not part
    of the mutation.
    """
    party: Any
    projection: QueueProjection
    notifications: List[Any] = field(default_factory=list)


class WaitlistService:
    """Service for queue mutations and projections"""

    def __init__(self, websocket_manager, clock: Callable[[], datetime] = datetime.utcnow):
        self.websocket_manager = websocket_manager
        self.clock = clock

    def _projection(self, db: Session, slug: str) -> QueueProjection:
        return load_projection(db, slug, self.clock())

    def _get_party(self, db: Session, slug: str, party_id: str):
        party = PartyRepo.get(db, slug, party_id)
        if party is None:
            raise PartyNotFound(party_id)
        return party

    async def _publish(self, op: str, party) -> None:
        await self.websocket_manager.publish_change(PartyChange(op=op, party=party))

    async def create_party(
        self,
        db: Session,
        slug: str,
        name: Optional[str],
        size: Any,
        phone: Optional[str] = None,
        notes: Optional[str] = None
    ) -> MutationResult:
        """Add a party to the end of the queue"""
        fields = validate_new_party(name, size, phone, notes)
        fields["created_at"] = self.clock()
        party = snapshot(PartyRepo.create(db, slug, fields))
        logger.info(f"Party {party.id} ({party.size}) joined {slug}")
        await self._publish("insert", party)

        projection = self._projection(db, slug)
        notifications = []
        position = projection.position_of(party.id)
        if party.phone and position:
            notifications.append(JoinConfirmation(
                party_id=party.id,
                restaurant_slug=slug,
                phone=party.phone,
                name=party.name,
                position=position,
            ))
        return MutationResult(party=party, projection=projection, notifications=notifications)

    async def change_status(self, db: Session, slug: str, party_id: str, target) -> MutationResult:
        """Move a party along the status graph"""
        party = self._get_party(db, slug, party_id)
        plan = plan_transition(party, target, self.clock())

        if plan.changed:
            updated = PartyRepo.update(db, party, plan.updates)
            if updated is None:
                raise PartyNotFound(party_id)
            party = snapshot(updated)
            logger.info(f"Party {party_id} in {slug}: {plan.current.value} -> {plan.target.value}")
            await self._publish("update", party)
        else:
            party = snapshot(party)

        return MutationResult(
            party=party,
            projection=self._projection(db, slug),
            notifications=plan.events,
        )

    async def edit_party(self, db: Session, slug: str, party_id: str, **changes) -> MutationResult:
        """Change size and/or notes; fields not passed are left as stored"""
        party = self._get_party(db, slug, party_id)
        updates = validate_edit(party, changes)
        updated = PartyRepo.update(db, party, updates)
        if updated is None:
            raise PartyNotFound(party_id)
        party = snapshot(updated)
        await self._publish("update", party)
        return MutationResult(party=party, projection=self._projection(db, slug))

    async def remove_party(self, db: Session, slug: str, party_id: str) -> MutationResult:
        """Delete a party outright"""
        party = self._get_party(db, slug, party_id)
        removed = snapshot(party)
        PartyRepo.delete(db, party)
        logger.info(f"Party {party_id} removed from {slug}")
        await self._publish("delete", removed)
        return MutationResult(party=removed, projection=self._projection(db, slug))

    def host_view(self, db: Session, slug: str) -> Dict[str, Any]:
        return self._projection(db, slug).host_view()

    def guest_status(self, db: Session, slug: str, party_id: str) -> Dict[str, Any]:
        """Status for one guest; the party must belong to this restaurant"""
        projection = self._projection(db, slug)
        status = projection.guest_status(party_id)
        if status is None:
            raise PartyNotFound(party_id)
        return status

    def queue_summary(self, db: Session, slug: str) -> Dict[str, int]:
        parties = PartyRepo.list_for_restaurant(db, slug)
        return queue_summary(parties, self.clock())

    def analytics(self, db: Session, slug: str) -> Dict[str, Any]:
        now = self.clock()
        window_start = now - timedelta(days=settings.ANALYTICS_WINDOW_DAYS)
        parties = PartyRepo.list_for_restaurant(db, slug, since=window_start)
        return compute_kpis(parties, now, window_start)
