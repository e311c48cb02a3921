"""
Billing and SMS request schemas
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

class CheckoutRequest(BaseModel):
    """Checkout session request"""
    model_config = ConfigDict(populate_by_name=True)

    plan_type: Optional[str] = Field(default=None, alias="planType")
    billing_period: Optional[str] = Field(default=None, alias="billingPeriod")
    restaurant_id: Optional[str] = Field(default=None, alias="restaurantId")

class SmsRequest(BaseModel):
    """Outbound SMS request"""
    phone: Optional[str] = None
    message: Optional[str] = None
