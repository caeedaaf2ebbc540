from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from buspass.schemas.stop import StopResponse

# "06:00 AM", "7:30 pm"
TIME_OF_DAY_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9] (AM|PM|am|pm)$"


class RouteBase(BaseModel):
    """Base route schema"""
    name: str = Field(..., min_length=1, max_length=100)
    operational_start_time: str = Field(..., pattern=TIME_OF_DAY_PATTERN, description="HH:MM AM/PM")
    operational_end_time: str = Field(..., pattern=TIME_OF_DAY_PATTERN, description="HH:MM AM/PM")
    distance: Optional[float] = Field(None, ge=0, description="Total distance in km")
    estimated_duration: Optional[int] = Field(None, ge=0, description="Total duration in minutes")
    average_stop_time: Optional[int] = Field(None, gt=0, description="Minutes per stop-segment")
    is_active: bool = True


class RouteCreate(RouteBase):
    """Schema for creating a route (admin only)"""
    stop_ids: List[int] = Field(..., min_length=2, description="Ordered stop IDs")


class RouteUpdate(BaseModel):
    """Schema for updating a route (admin only)"""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    operational_start_time: Optional[str] = Field(None, pattern=TIME_OF_DAY_PATTERN)
    operational_end_time: Optional[str] = Field(None, pattern=TIME_OF_DAY_PATTERN)
    distance: Optional[float] = Field(None, ge=0)
    estimated_duration: Optional[int] = Field(None, ge=0)
    average_stop_time: Optional[int] = Field(None, gt=0)
    is_active: Optional[bool] = None
    stop_ids: Optional[List[int]] = Field(None, min_length=2)


class RouteStopAdd(BaseModel):
    """Insert a stop into a route, at the end when position is omitted"""
    stop_id: int
    position: Optional[int] = Field(None, ge=0)


class RouteResponse(RouteBase):
    """Route response with its ordered stops"""
    id: int
    stops: List[StopResponse]
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RouteSummary(BaseModel):
    """Route reference embedded in bus payloads"""
    id: int
    name: str
    operational_start_time: str
    operational_end_time: str

    class Config:
        from_attributes = True


class RouteStopsResponse(BaseModel):
    """Response model for route stops"""
    route_id: int
    route_name: str
    from_location: str
    to_location: str
    stops: List[StopResponse]
