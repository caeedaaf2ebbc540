from pydantic import BaseModel, Field
from typing import List, Optional

from buspass.schemas.bus import BusSummary
from buspass.schemas.stop import StopSnapshot


class JourneyInfo(BaseModel):
    """Journey details for one bus between the searched stops"""
    source_stop: StopSnapshot
    destination_stop: StopSnapshot
    departure_time: str = Field(..., description="Route start time when boarding at its first stop, else N/A")
    arrival_time: str = Field("N/A", description="Not tracked per stop; always N/A")
    duration: int = Field(..., description="Minutes")
    fare: float = Field(..., description="Per-seat segment fare")
    date: str
    route_operational_start_time: str
    route_operational_end_time: str


class BusWithJourneyInfo(BaseModel):
    """Search result item: a bus and its computed journey"""
    bus: BusSummary
    journey_info: JourneyInfo


class SearchOptions(BaseModel):
    """Optional search refinements"""
    bus_type: Optional[str] = None
    max_price: Optional[str] = None
    sort_by: Optional[str] = None
    sort_order: str = "asc"
    page: int = 1
    limit: int = 5


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    limit: int
    has_next_page: bool
    has_prev_page: bool


class BusSearchResponse(BaseModel):
    """Response schema for bus search"""
    message: str
    items: List[BusWithJourneyInfo] = Field(default_factory=list)
    pagination: Pagination
