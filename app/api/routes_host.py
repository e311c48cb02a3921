"""
Host dashboard API routes - requires host token
"""

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from app.api.ws import websocket_manager
from app.core.db import get_db
from app.schemas.party import PartyCreate, PartyUpdate, StatusChange
from app.services.notifier import notification_dispatcher
from app.services.projection import estimate_wait_minutes, party_to_dict
from app.services.waitlist_service import MutationResult, WaitlistService
from app.utils.responses import success_response
from app.utils.security import verify_host_token

router = APIRouter()

# Initialize waitlist service with WebSocket manager
waitlist_service = WaitlistService(websocket_manager)

def _schedule_notifications(background_tasks: BackgroundTasks, result: MutationResult):
    for notification in result.notifications:
        background_tasks.add_task(notification_dispatcher.deliver, notification)

def _mutation_payload(result: MutationResult) -> dict:
    position = result.projection.position_of(result.party.id)
    return {
        "party": party_to_dict(result.party),
        "position": position,
        "estimated_wait_minutes": estimate_wait_minutes(position) if position else 0,
        "queue": result.projection.host_view(),
    }

@router.get("/{slug}/parties")
async def list_parties(
    slug: str,
    db: Session = Depends(get_db),
    token: str = Depends(verify_host_token)
):
    """Full queue projection for the host dashboard"""
    return success_response(
        message="Waitlist retrieved",
        data=waitlist_service.host_view(db, slug)
    )

@router.post("/{slug}/parties")
async def add_walk_in(
    slug: str,
    party_data: PartyCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    token: str = Depends(verify_host_token)
):
    """Add a walk-in party"""
    result = await waitlist_service.create_party(
        db,
        slug,
        name=party_data.name,
        size=party_data.size,
        phone=party_data.phone,
        notes=party_data.notes
    )
    _schedule_notifications(background_tasks, result)

    return success_response(
        message="Party added to the waitlist",
        data=_mutation_payload(result),
        status_code=201
    )

@router.patch("/{slug}/parties/{party_id}")
async def edit_party(
    slug: str,
    party_id: str,
    party_update: PartyUpdate,
    db: Session = Depends(get_db),
    token: str = Depends(verify_host_token)
):
    """Update party size and notes"""
    result = await waitlist_service.edit_party(
        db, slug, party_id, **party_update.model_dump(exclude_unset=True)
    )
    return success_response(
        message="Party updated successfully",
        data=_mutation_payload(result)
    )

@router.post("/{slug}/parties/{party_id}/status")
async def change_party_status(
    slug: str,
    party_id: str,
    change: StatusChange,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    token: str = Depends(verify_host_token)
):
    """Mark a party ready, seated or no-show"""
    result = await waitlist_service.change_status(db, slug, party_id, change.status)
    _schedule_notifications(background_tasks, result)

    return success_response(
        message=f"Party marked {change.status.value}",
        data=_mutation_payload(result)
    )

@router.delete("/{slug}/parties/{party_id}")
async def remove_party(
    slug: str,
    party_id: str,
    db: Session = Depends(get_db),
    token: str = Depends(verify_host_token)
):
    """Remove a party from the waitlist"""
    result = await waitlist_service.remove_party(db, slug, party_id)
    return success_response(
        message="Party removed",
        data={"party_id": party_id, "queue": result.projection.host_view()}
    )

@router.get("/{slug}/analytics")
async def get_analytics(
    slug: str,
    db: Session = Depends(get_db),
    token: str = Depends(verify_host_token)
):
    """KPIs for the trailing analytics window"""
    return success_response(
        message="Analytics retrieved",
        data=waitlist_service.analytics(db, slug)
    )
