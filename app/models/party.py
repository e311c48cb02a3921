"""
Party model
"""

import enum
import uuid
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, Index

from app.core.db import Base

class PartyStatus(str, enum.Enum):
    WAITING = "waiting"
    READY = "ready"
    SEATED = "seated"
    NO_SHOW = "no_show"

def new_party_id() -> str:
    return str(uuid.uuid4())

class Party(Base):
    __tablename__ = "parties"
    
    id = Column(String(36), primary_key=True, default=new_party_id)
    restaurant_slug = Column(String(100), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    size = Column(Integer, nullable=False, default=2)
    phone = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=PartyStatus.WAITING.value)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    ready_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    __table_args__ = (
        Index("ix_parties_slug_created", "restaurant_slug", "created_at"),
    )
