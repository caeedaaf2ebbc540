from pydantic import BaseModel, Field
from typing import List, Optional, Literal
from datetime import datetime

from buspass.schemas.route import RouteSummary

BusType = Literal["ordinary", "express", "ac", "sleeper", "semi-sleeper"]


class BusBase(BaseModel):
    """Base bus schema"""
    bus_number: str = Field(..., min_length=1, max_length=50)
    bus_name: Optional[str] = None
    bus_type: BusType = "ordinary"
    capacity: int = Field(40, ge=1)
    fare: float = Field(..., ge=0, description="Price per stop-segment")
    features: List[str] = Field(default_factory=list)
    is_active: bool = True


class BusCreate(BusBase):
    """Schema for creating a bus (admin only)"""
    route_id: int


class BusUpdate(BaseModel):
    """Schema for updating a bus (admin only)"""
    bus_number: Optional[str] = Field(None, min_length=1, max_length=50)
    bus_name: Optional[str] = None
    bus_type: Optional[BusType] = None
    capacity: Optional[int] = Field(None, ge=1)
    fare: Optional[float] = Field(None, ge=0)
    features: Optional[List[str]] = None
    route_id: Optional[int] = None
    is_active: Optional[bool] = None


class BusSummary(BaseModel):
    """Bus fields exposed to clients, with its route"""
    id: int
    bus_number: str
    bus_name: Optional[str] = None
    bus_type: str
    capacity: int
    fare: float
    features: List[str] = Field(default_factory=list)
    is_active: bool
    route: RouteSummary

    class Config:
        from_attributes = True


class BusAdmin(BusSummary):
    """Full bus schema (admin view)"""
    route_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BusSchedule(BaseModel):
    """One line of the bus timetable listing"""
    bus_id: int
    bus_number: str
    bus_type: str
    route_name: str
    departure_time: str
    arrival_time: str
    date: str
    available_seats: int
    fare: float
