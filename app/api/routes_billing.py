"""
Billing and SMS routes: checkout sessions, payment webhooks, outbound texts
"""

import logging
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.db import get_db
from app.schemas.billing import CheckoutRequest, SmsRequest
from app.services.billing_service import billing_service
from app.services.errors import WaitlistError
from app.services.notifier import sms_notifier
from app.utils.responses import success_response, error_response, service_error_response

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/checkout")
async def create_checkout(
    checkout_data: CheckoutRequest,
    db: Session = Depends(get_db)
):
    """Open a subscription checkout session for a restaurant"""
    try:
        session_id = billing_service.create_checkout_session(
            db,
            plan_type=checkout_data.plan_type,
            billing_period=checkout_data.billing_period,
            restaurant_id=checkout_data.restaurant_id
        )
    except WaitlistError as e:
        return service_error_response(e)
    except Exception as e:
        logger.error(f"Checkout error: {e}")
        return error_response(message="Failed to create checkout session", status_code=500)

    return success_response(
        message="Checkout session created",
        data={"sessionId": session_id}
    )

@router.post("/send-sms")
async def send_sms(sms_data: SmsRequest):
    """Send a text message through the SMS provider"""
    if not sms_notifier.configured:
        return error_response(message="SMS service not configured", status_code=500)

    if not sms_data.phone or not sms_data.message:
        return error_response(message="Phone and message are required", status_code=400)

    result = await sms_notifier.send(sms_data.phone, sms_data.message)
    if not result.success:
        return error_response(
            message="Failed to send SMS",
            details=result.error,
            status_code=result.status_code or 500
        )

    return success_response(
        message="SMS sent",
        data={"success": True, "sid": result.sid}
    )

@router.post("/webhooks/payments")
async def payments_webhook(
    request: Request,
    db: Session = Depends(get_db)
):
    """Receive signed subscription lifecycle events from Stripe"""
    payload = await request.body()

    try:
        event = billing_service.verify_webhook(payload, request.headers.get("stripe-signature"))
    except WaitlistError as e:
        return service_error_response(e)

    try:
        result = billing_service.handle_webhook_event(db, event)
    except Exception as e:
        logger.error(f"Webhook processing error: {e}")
        return error_response(message="Webhook processing failed", status_code=500)

    return success_response(
        message="Webhook received",
        data={"received": True, "handled": result.get("handled", False)}
    )
