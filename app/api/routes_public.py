"""
Public API routes - no authentication required
"""

from fastapi import APIRouter
from fastapi.responses import Response

from app.services.events import restaurant_display_name
from app.services.qr_service import QRService
from app.utils.responses import success_response

router = APIRouter()

@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "ok"}

@router.get("/restaurants/{slug}/modes")
async def device_modes(slug: str):
    """Links for setting a tablet up as host dashboard or guest kiosk"""
    return success_response(
        message="Choose device mode",
        data={
            "restaurant_slug": slug,
            "restaurant_name": restaurant_display_name(slug),
            "modes": [
                {
                    "mode": "host",
                    "description": "For the host stand. Seat parties and manage the queue.",
                    "url": f"/host/{slug}",
                },
                {
                    "mode": "kiosk",
                    "description": "Full-screen sign-up for walk-ins or QR scans.",
                    "url": f"/join/{slug}",
                },
            ]
        }
    )

@router.get("/restaurants/{slug}/qr.png")
async def get_join_qr_code(slug: str):
    """QR code image that opens the restaurant's join page"""
    qr_bytes = QRService.generate_join_qr(slug)

    return Response(
        content=qr_bytes,
        media_type="image/png",
        headers={"Content-Disposition": f"inline; filename=qr_{slug}.png"}
    )
