from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date, datetime

from buspass.schemas.stop import StopSnapshot
from buspass.schemas.search import Pagination


class BookingCreate(BaseModel):
    """Booking request - the amount is always computed server-side"""
    user_id: str = Field(..., min_length=1, max_length=100)
    bus_id: int
    source_stop_id: int
    destination_stop_id: int
    number_of_seats: int
    journey_date: date


class BookingBusInfo(BaseModel):
    id: int
    bus_number: str
    bus_type: str
    fare: float

    class Config:
        from_attributes = True


class BookingRouteInfo(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class BookingResponse(BaseModel):
    """Booking with its bus, route and stops resolved"""
    id: int
    booking_code: str
    user_id: str
    bus: BookingBusInfo
    route: BookingRouteInfo
    source_stop: StopSnapshot
    destination_stop: StopSnapshot
    number_of_seats: int
    total_amount: float
    journey_date: date
    status: str
    qr_code_data: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BookingListResponse(BaseModel):
    """Paginated bookings (admin view)"""
    message: str
    items: List[BookingResponse] = Field(default_factory=list)
    pagination: Pagination
