"""
Party-related Pydantic schemas
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from app.models.party import PartyStatus

class PartyCreate(BaseModel):
    """Schema for a host-entered walk-in"""
    name: str
    size: int = 2
    phone: Optional[str] = None
    notes: Optional[str] = None

class GuestJoinRequest(BaseModel):
    """Schema for a guest joining from the kiosk"""
    name: str
    size: int = 2
    phone: Optional[str] = None
    notes: Optional[str] = None

class PartyUpdate(BaseModel):
    """Schema for a host edit; omitted fields keep their stored value"""
    size: Optional[int] = None
    notes: Optional[str] = None

class StatusChange(BaseModel):
    """Schema for a status transition"""
    status: PartyStatus

class PartyResponse(BaseModel):
    """Party response schema"""
    id: str
    restaurant_slug: str
    name: str
    size: int
    phone: Optional[str] = None
    notes: Optional[str] = None
    status: PartyStatus
    created_at: datetime
    ready_at: Optional[datetime] = None
    
    class Config:
        from_attributes = True
