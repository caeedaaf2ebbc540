from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class StopBase(BaseModel):
    """Base stop schema"""
    name: str = Field(..., min_length=1, max_length=100)
    address: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class StopCreate(StopBase):
    """Schema for creating a stop (admin only)"""
    pass


class StopUpdate(BaseModel):
    """Schema for updating a stop (admin only)"""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    address: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    is_active: Optional[bool] = None


class StopResponse(StopBase):
    """Stop response with metadata"""
    id: int
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StopSnapshot(BaseModel):
    """Minimal stop reference embedded in journey and booking payloads"""
    id: int
    name: str

    class Config:
        from_attributes = True
