"""
Guest-facing API routes (kiosk and status page)
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from app.api.routes_host import waitlist_service
from app.core.db import get_db
from app.schemas.party import GuestJoinRequest
from app.services.notifier import notification_dispatcher
from app.services.projection import estimate_wait_minutes
from app.utils.responses import success_response, rate_limit_error
from app.utils.security import rate_limit_check, get_client_ip

router = APIRouter()

def _check_rate_limit(request: Request):
    client_ip = get_client_ip(request)
    if not rate_limit_check(client_ip):
        rate_limit_error()

@router.post("/{slug}")
async def join_waitlist(
    slug: str,
    request: Request,
    join_data: GuestJoinRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    """Add the guest's party to the queue"""
    _check_rate_limit(request)

    result = await waitlist_service.create_party(
        db,
        slug,
        name=join_data.name,
        size=join_data.size,
        phone=join_data.phone,
        notes=join_data.notes
    )
    for notification in result.notifications:
        background_tasks.add_task(notification_dispatcher.deliver, notification)

    position = result.projection.position_of(result.party.id)
    return success_response(
        message="You're on the list!",
        data={
            "party_id": result.party.id,
            "position": position,
            "estimated_wait_minutes": estimate_wait_minutes(position) if position else None,
            "status_url": f"/join/{slug}/status/{result.party.id}"
        },
        status_code=201
    )

@router.get("/{slug}/summary")
async def queue_summary(
    slug: str,
    request: Request,
    db: Session = Depends(get_db)
):
    """Aggregate queue numbers for the kiosk"""
    _check_rate_limit(request)

    return success_response(
        message="Queue summary",
        data=waitlist_service.queue_summary(db, slug)
    )

@router.get("/{slug}/status/{party_id}")
async def party_status(
    slug: str,
    party_id: str,
    request: Request,
    db: Session = Depends(get_db)
):
    """A guest's own position and estimated wait"""
    _check_rate_limit(request)

    return success_response(
        message="Party status",
        data=waitlist_service.guest_status(db, slug, party_id)
    )
