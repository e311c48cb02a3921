"""
Stripe billing service
Handles subscription checkout and webhook reconciliation
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import stripe
from sqlalchemy.orm import Session

from app.core.config import settings
from app.services.errors import PaymentError, ValidationError, WebhookVerificationError
from app.services.repositories import SubscriptionRepo

logger = logging.getLogger(__name__)


def _from_epoch(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)


def _object_id(value: Any) -> Optional[str]:
    # Expandable fields arrive either as an id or as the expanded object
    if isinstance(value, dict):
        return value.get("id")
    return value


class BillingService:
    """
    Stripe integration for restaurant subscriptions

    Checkout sessions carry the restaurant id in their metadata (and in the
    subscription's metadata) so webhook events can be reconciled back to it.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        price_ids: Optional[Dict[str, str]] = None
    ):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.price_ids = price_ids if price_ids is not None else dict(settings.STRIPE_PRICE_IDS)
        if api_key:
            stripe.api_key = api_key

    @classmethod
    def from_settings(cls) -> "BillingService":
        return cls(
            api_key=settings.STRIPE_SECRET_KEY,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        )

    # ==================== CHECKOUT ====================

    def resolve_price_id(self, plan_type: Optional[str], billing_period: Optional[str]) -> str:
        price_id = self.price_ids.get(f"{plan_type}_{billing_period}")
        if not price_id:
            raise ValidationError(
                "Invalid plan or billing period",
                details={"plan_type": plan_type, "billing_period": billing_period}
            )
        return price_id

    def _get_or_create_customer(self, db: Session, restaurant_id: str) -> str:
        customer_id = SubscriptionRepo.customer_id_for_restaurant(db, restaurant_id)
        if customer_id:
            return customer_id

        customer = stripe.Customer.create(metadata={"restaurant_id": restaurant_id})
        logger.info(f"Created Stripe customer {customer.id} for restaurant {restaurant_id}")
        SubscriptionRepo.upsert(db, restaurant_id, {"stripe_customer_id": customer.id})
        return customer.id

    def create_checkout_session(
        self,
        db: Session,
        plan_type: Optional[str],
        billing_period: Optional[str],
        restaurant_id: Optional[str]
    ) -> str:
        """Validate the plan, then open a subscription checkout session"""
        if not restaurant_id:
            raise ValidationError("Restaurant ID is required")
        price_id = self.resolve_price_id(plan_type, billing_period)

        metadata = {
            "restaurant_id": restaurant_id,
            "plan_type": plan_type,
            "billing_period": billing_period,
        }
        try:
            customer_id = self._get_or_create_customer(db, restaurant_id)
            session = stripe.checkout.Session.create(
                customer=customer_id,
                mode="subscription",
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                success_url=f"{settings.BASE_URL}/dashboard?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{settings.BASE_URL}/pricing",
                metadata=metadata,
                subscription_data={"metadata": metadata},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating checkout session: {str(e)}")
            raise PaymentError("Failed to create checkout session") from e

        logger.info(f"Created checkout session {session.id} for restaurant {restaurant_id}")
        return session.id

    # ==================== WEBHOOKS ====================

    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify the Stripe-Signature header and decode the event"""
        if not signature or not self.webhook_secret:
            raise WebhookVerificationError("Missing signature or webhook secret")

        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                signature,
                self.webhook_secret,
                stripe.Webhook.DEFAULT_TOLERANCE
            )
            event = json.loads(payload)
        except stripe.SignatureVerificationError as e:
            logger.error(f"Invalid webhook signature: {str(e)}")
            raise WebhookVerificationError("Webhook signature verification failed") from e
        except ValueError as e:
            logger.error(f"Invalid webhook payload: {str(e)}")
            raise WebhookVerificationError("Invalid webhook payload") from e

        logger.info(f"Verified webhook event: {event.get('type')}")
        return event

    def handle_webhook_event(self, db: Session, event: Dict[str, Any]) -> Dict[str, Any]:
        """Apply a verified event; unknown types are acknowledged and ignored"""
        event_type = event.get("type")
        data = (event.get("data") or {}).get("object") or {}

        handlers = {
            "customer.subscription.created": self._handle_subscription_changed,
            "customer.subscription.updated": self._handle_subscription_changed,
            "customer.subscription.deleted": self._handle_subscription_deleted,
            "invoice.payment_failed": self._handle_payment_failed,
            "invoice.paid": self._handle_invoice_paid,
        }

        handler = handlers.get(event_type)
        if handler is None:
            logger.info(f"Unhandled webhook event type: {event_type}")
            return {"handled": False, "type": event_type}

        result = handler(db, data)
        result["type"] = event_type
        return result

    def _restaurant_for(self, db: Session, subscription: Dict[str, Any]) -> Optional[str]:
        restaurant_id = (subscription.get("metadata") or {}).get("restaurant_id")
        if restaurant_id:
            return restaurant_id
        customer_id = _object_id(subscription.get("customer"))
        if customer_id:
            return SubscriptionRepo.restaurant_for_customer(db, customer_id)
        return None

    def _handle_subscription_changed(self, db: Session, subscription: Dict[str, Any]) -> Dict[str, Any]:
        restaurant_id = self._restaurant_for(db, subscription)
        if not restaurant_id:
            logger.warning(f"Subscription {subscription.get('id')} has no restaurant to reconcile with")
            return {"handled": False}

        # Newer API versions report the billing period per subscription item
        period_source = subscription
        if subscription.get("current_period_start") is None:
            items = (subscription.get("items") or {}).get("data") or []
            if items:
                period_source = items[0]

        metadata = subscription.get("metadata") or {}
        fields = {
            "stripe_subscription_id": subscription.get("id"),
            "stripe_customer_id": _object_id(subscription.get("customer")),
            "status": subscription.get("status"),
            "current_period_start": _from_epoch(period_source.get("current_period_start")),
            "current_period_end": _from_epoch(period_source.get("current_period_end")),
        }
        if metadata.get("plan_type"):
            fields["plan_type"] = metadata["plan_type"]
        if metadata.get("billing_period"):
            fields["billing_period"] = metadata["billing_period"]

        SubscriptionRepo.upsert(db, restaurant_id, fields)
        logger.info(f"Subscription {subscription.get('id')} for {restaurant_id} is {subscription.get('status')}")
        return {"handled": True, "restaurant_id": restaurant_id}

    def _handle_subscription_deleted(self, db: Session, subscription: Dict[str, Any]) -> Dict[str, Any]:
        restaurant_id = (subscription.get("metadata") or {}).get("restaurant_id")
        if restaurant_id:
            count = SubscriptionRepo.update_where(db, "restaurant_id", restaurant_id, {"status": "canceled"})
        else:
            count = SubscriptionRepo.update_where(
                db, "stripe_subscription_id", subscription.get("id"), {"status": "canceled"}
            )
        logger.info(f"Subscription {subscription.get('id')} canceled ({count} records)")
        return {"handled": True, "updated": count}

    @staticmethod
    def _invoice_subscription_id(invoice: Dict[str, Any]) -> Optional[str]:
        subscription_id = _object_id(invoice.get("subscription"))
        if subscription_id:
            return subscription_id
        details = (invoice.get("parent") or {}).get("subscription_details") or {}
        return _object_id(details.get("subscription"))

    def _set_status_for_invoice(self, db: Session, invoice: Dict[str, Any], status: str) -> Dict[str, Any]:
        subscription_id = self._invoice_subscription_id(invoice)
        if not subscription_id:
            logger.warning(f"Invoice {invoice.get('id')} is not tied to a subscription")
            return {"handled": False}
        count = SubscriptionRepo.update_where(db, "stripe_subscription_id", subscription_id, {"status": status})
        logger.info(f"Subscription {subscription_id} set to {status} ({count} records)")
        return {"handled": True, "updated": count}

    def _handle_payment_failed(self, db: Session, invoice: Dict[str, Any]) -> Dict[str, Any]:
        return self._set_status_for_invoice(db, invoice, "past_due")

    def _handle_invoice_paid(self, db: Session, invoice: Dict[str, Any]) -> Dict[str, Any]:
        return self._set_status_for_invoice(db, invoice, "active")


billing_service = BillingService.from_settings()
