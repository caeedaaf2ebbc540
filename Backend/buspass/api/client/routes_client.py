from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from buspass.db.session import get_db
from buspass.schemas.booking import BookingCreate, BookingResponse
from buspass.schemas.bus_pass import (
    OtpVerification,
    PassApplicationCreate,
    PassApplicationResponse,
    PassCancel,
    PassRenew,
    PassResponse,
)
from buspass.schemas.bus import BusSummary, BusSchedule
from buspass.schemas.route import RouteResponse, RouteStopsResponse
from buspass.schemas.search import BusSearchResponse
from buspass.schemas.stop import StopResponse
from buspass.services.pass_service import DocumentStore, OtpStore, get_document_store, get_otp_store
from buspass.api.client import controllers_client

router = APIRouter(prefix="/client", tags=["Client"])


# ============ Public Endpoints (No Authentication Required) ============

@router.get("/buses/search", response_model=BusSearchResponse)
async def search_buses(
    source: Optional[str] = Query(None, description="Source stop name (case-insensitive)"),
    destination: Optional[str] = Query(None, description="Destination stop name (case-insensitive)"),
    date: Optional[str] = Query(None, description="Journey date"),
    bus_type: Optional[str] = Query(None, description="Comma-separated bus types"),
    max_price: Optional[str] = Query(None, description="Maximum per-seat fare"),
    sort_by: Optional[str] = Query(None, description="fare, duration or departure"),
    sort_order: Optional[str] = Query("asc", description="asc or desc"),
    page: Optional[str] = Query(None, description="Page number, 1-indexed"),
    limit: Optional[str] = Query(None, description="Results per page"),
    db: Session = Depends(get_db)
):
    """
    Search buses between two stops.

    **Response:**
    - One page of buses with journey details (per-seat fare, duration, stops)
    - Pagination metadata

    **Error Responses:**
    - `400`: Missing source, destination or date
    - `500`: Search failed

    **Example:**
    ```
    GET /api/client/buses/search?source=Central&destination=Airport&date=2026-11-01&sort_by=fare
    ```
    """
    return await controllers_client.search_buses(
        db=db,
        source=source,
        destination=destination,
        date=date,
        bus_type=bus_type,
        max_price=max_price,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit
    )


@router.get("/buses/schedules", response_model=List[BusSchedule])
async def get_bus_schedules(
    route_id: Optional[int] = None,
    date: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """
    Timetable of active buses, optionally for one route.
    Public endpoint - no authentication required.
    """
    return await controllers_client.get_bus_schedules(db, route_id, date)


@router.get("/buses/{bus_id}", response_model=BusSummary)
async def get_bus(bus_id: int, db: Session = Depends(get_db)):
    """Get a bus with its route. Public endpoint."""
    return await controllers_client.get_bus_details(db, bus_id)


@router.get("/stops", response_model=List[StopResponse])
async def get_stops(db: Session = Depends(get_db)):
    """List active stops. Public endpoint."""
    return await controllers_client.list_stops(db)


@router.get("/routes", response_model=List[RouteResponse])
async def get_routes(db: Session = Depends(get_db)):
    """List active routes with ordered stops. Public endpoint."""
    return await controllers_client.list_routes(db)


@router.get("/routes/{route_id}/stops", response_model=RouteStopsResponse)
async def get_route_stops(route_id: int, db: Session = Depends(get_db)):
    """
    Get all stop information for a specific route.
    Returns ordered list of stops with names and coordinates.
    Public endpoint - no authentication required.
    """
    return await controllers_client.get_route_stops_info(db, route_id)


# ============ Bookings ============
# The caller's identity (user_id) comes from the session layer in front of this API.

@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(booking: BookingCreate, db: Session = Depends(get_db)):
    """
    Book seats between two stops of a bus's route.
    The total amount is computed server-side: fare per segment x segments x seats.
    """
    return await controllers_client.create_booking(db, booking)


@router.get("/bookings", response_model=List[BookingResponse])
async def get_my_bookings(user_id: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    """List a user's bookings, newest first."""
    return await controllers_client.get_user_bookings(db, user_id)


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
async def get_booking(booking_id: int, user_id: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    """Get one of the user's bookings."""
    return await controllers_client.get_booking(db, booking_id, user_id)


@router.put("/bookings/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(booking_id: int, user_id: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    """Cancel one of the user's upcoming bookings."""
    return await controllers_client.cancel_booking(db, booking_id, user_id)


# ============ Pass Applications ============

@router.post("/pass-applications", response_model=PassApplicationResponse, status_code=status.HTTP_201_CREATED)
async def apply_for_pass(
    application: PassApplicationCreate,
    db: Session = Depends(get_db),
    otp_store: OtpStore = Depends(get_otp_store)
):
    """
    Apply for a bus pass.
    Documents are uploaded beforehand; the form carries their references.
    An OTP is sent to the applicant's mobile for verification.
    """
    return await controllers_client.apply_for_pass(db, application, otp_store)


@router.get("/pass-applications", response_model=List[PassApplicationResponse])
async def get_my_applications(user_id: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    """List a user's pass applications, newest first."""
    return await controllers_client.get_user_applications(db, user_id)


@router.get("/pass-applications/{application_id}", response_model=PassApplicationResponse)
async def get_application(application_id: int, user_id: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    """Get one of the user's pass applications."""
    return await controllers_client.get_application(db, application_id, user_id)


@router.post("/pass-applications/{application_id}/verify-otp", response_model=PassApplicationResponse)
async def verify_application_otp(
    application_id: int,
    payload: OtpVerification,
    db: Session = Depends(get_db),
    otp_store: OtpStore = Depends(get_otp_store)
):
    """Confirm the applicant's mobile number with the OTP sent on application."""
    return await controllers_client.verify_application_otp(db, application_id, payload, otp_store)


@router.put("/pass-applications/{application_id}/cancel", response_model=PassApplicationResponse)
async def cancel_application(
    application_id: int,
    user_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    document_store: DocumentStore = Depends(get_document_store)
):
    """Withdraw a pending application or one awaiting review."""
    return await controllers_client.cancel_application(db, application_id, user_id, document_store)


# ============ Passes ============

@router.get("/passes", response_model=List[PassResponse])
async def get_my_passes(user_id: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    """List a user's passes, newest first."""
    return await controllers_client.get_user_passes(db, user_id)


@router.get("/passes/{pass_id}", response_model=PassResponse)
async def get_pass(pass_id: int, user_id: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    """Get one of the user's passes."""
    return await controllers_client.get_pass(db, pass_id, user_id)


@router.put("/passes/{pass_id}/renew", response_model=PassResponse)
async def renew_pass(
    pass_id: int,
    payload: PassRenew,
    user_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db)
):
    """Extend one of the user's passes to a later end date."""
    return await controllers_client.renew_pass(db, pass_id, user_id, payload)


@router.put("/passes/{pass_id}/cancel", response_model=PassResponse)
async def cancel_pass(
    pass_id: int,
    payload: Optional[PassCancel] = None,
    user_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db)
):
    """Cancel one of the user's passes."""
    return await controllers_client.cancel_pass(db, pass_id, user_id, payload or PassCancel())
