"""
Subscription model
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime

from app.core.db import Base

class Subscription(Base):
    __tablename__ = "subscriptions"
    
    id = Column(Integer, primary_key=True, index=True)
    restaurant_id = Column(String(100), unique=True, nullable=False, index=True)
    stripe_customer_id = Column(String(100), nullable=True, index=True)
    stripe_subscription_id = Column(String(100), nullable=True, index=True)
    status = Column(String(50), nullable=True)  # provider status: active, past_due, canceled, ...
    plan_type = Column(String(50), nullable=True)
    billing_period = Column(String(20), nullable=True)
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
