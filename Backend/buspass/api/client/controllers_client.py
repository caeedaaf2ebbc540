from sqlalchemy.orm import Session
from typing import List, Optional, Any
from fastapi import HTTPException, status

from buspass.core.config import settings
from buspass.core.logger import logger, log_booking, log_pass
from buspass.db import crud
from buspass.db.models import Bus, Booking, Pass, PassApplication, Route, Stop, get_ist_now
from buspass.schemas.booking import BookingCreate
from buspass.schemas.bus_pass import OtpVerification, PassApplicationCreate, PassCancel, PassRenew
from buspass.schemas.bus import BusSchedule
from buspass.schemas.route import RouteStopsResponse
from buspass.schemas.stop import StopResponse
from buspass.schemas.search import BusSearchResponse, SearchOptions
from buspass.services.journey_search import journey_search_service, leading_int, segment_fare, SearchError
from buspass.services import pass_service
from buspass.services.pass_service import DocumentStore, OtpStore, PassRuleError


def to_positive_int(value: Any, default: int) -> int:
    """Lenient integer query parsing on the numeric prefix ("2.5" -> 2); missing, invalid or < 1 becomes default"""
    parsed = leading_int(value)
    return parsed if parsed is not None and parsed >= 1 else default


# ============ Journey Search ============

async def search_buses(
    db: Session,
    source: Optional[str],
    destination: Optional[str],
    date: Optional[str],
    bus_type: Optional[str] = None,
    max_price: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None
) -> BusSearchResponse:
    """
    Search buses running from source to destination.
    Input is validated before any database access.
    """
    if not source or not destination:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Source and destination are required")
    if not date:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Date is required")

    options = SearchOptions(
        bus_type=bus_type,
        max_price=max_price,
        sort_by=sort_by,
        sort_order=sort_order or "asc",
        page=to_positive_int(page, 1),
        limit=to_positive_int(limit, settings.SEARCH_PAGE_SIZE),
    )

    try:
        result = journey_search_service.search_buses(db, source, destination, date, options)
    except SearchError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return BusSearchResponse(message=result.message, items=result.items, pagination=result.pagination)


# ============ Network (stops, routes, buses) ============

async def list_stops(db: Session) -> List[Stop]:
    """Active stops, for search autocomplete"""
    return crud.get_stops(db, limit=1000, active_only=True)


async def list_routes(db: Session) -> List[Route]:
    """Active routes with their ordered stops"""
    return crud.get_routes(db, limit=1000, active_only=True)


async def get_route_stops_info(db: Session, route_id: int) -> RouteStopsResponse:
    """
    Get all stop information for a given route.
    Returns stop names and coordinates in order.
    """
    route = crud.get_route(db, route_id)
    if not route:
        raise HTTPException(status_code=404, detail=f"Route '{route_id}' not found")

    stops = route.stops
    return RouteStopsResponse(
        route_id=route.id,
        route_name=route.name,
        from_location=stops[0].name if stops else "",
        to_location=stops[-1].name if stops else "",
        stops=[StopResponse.model_validate(stop) for stop in stops]
    )


async def get_bus_details(db: Session, bus_id: int) -> Bus:
    """Get a bus with its route"""
    bus = crud.get_bus(db, bus_id)
    if not bus:
        raise HTTPException(status_code=404, detail="Bus not found")
    return bus


async def get_bus_schedules(db: Session, route_id: Optional[int] = None, date: Optional[str] = None) -> List[BusSchedule]:
    """
    Timetable view of buses, optionally for one route.
    Times are the route's operational window; there is no per-stop timetable.
    """
    journey_date = date or get_ist_now().date().isoformat()
    buses = crud.get_buses(db, limit=1000, route_id=route_id)
    return [
        BusSchedule(
            bus_id=bus.id,
            bus_number=bus.bus_number,
            bus_type=bus.bus_type,
            route_name=bus.route.name,
            departure_time=bus.route.operational_start_time,
            arrival_time=bus.route.operational_end_time,
            date=journey_date,
            available_seats=bus.capacity,
            fare=bus.fare
        )
        for bus in buses
        if bus.is_active
    ]


# ============ Bookings ============

def _stop_position(route: Route, stop_id: int) -> int:
    """Index of the first occurrence of stop_id in the route, -1 if absent"""
    for index, route_stop in enumerate(route.route_stops):
        if route_stop.stop_id == stop_id:
            return index
    return -1


async def create_booking(db: Session, booking: BookingCreate) -> Booking:
    """
    Create a confirmed booking.
    The amount is recomputed from the bus fare and stop positions, never taken from the client.
    """
    if booking.number_of_seats <= 0:
        raise HTTPException(status_code=400, detail="Number of seats must be a positive integer.")
    if booking.journey_date < get_ist_now().date():
        raise HTTPException(status_code=400, detail="Journey date cannot be in the past")

    bus = crud.get_bus(db, booking.bus_id)
    if not bus:
        raise HTTPException(status_code=404, detail="Bus not found")
    if not bus.route:
        raise HTTPException(status_code=404, detail="Route details not found for this bus")
    if not bus.is_active:
        raise HTTPException(status_code=400, detail="This bus is currently not active.")
    if booking.number_of_seats > bus.capacity:
        raise HTTPException(status_code=400, detail=f"This bus has only {bus.capacity} seats")

    source_index = _stop_position(bus.route, booking.source_stop_id)
    destination_index = _stop_position(bus.route, booking.destination_stop_id)

    if source_index == -1:
        raise HTTPException(status_code=404, detail="Source stop not found on this bus route")
    if destination_index == -1:
        raise HTTPException(status_code=404, detail="Destination stop not found on this bus route")
    if source_index >= destination_index:
        raise HTTPException(status_code=400, detail="Source stop must be before destination stop on the route")

    total_amount = segment_fare(bus.fare, destination_index - source_index, booking.number_of_seats)

    db_booking = crud.create_booking(
        db,
        user_id=booking.user_id,
        bus_id=bus.id,
        route_id=bus.route_id,
        source_stop_id=booking.source_stop_id,
        destination_stop_id=booking.destination_stop_id,
        number_of_seats=booking.number_of_seats,
        total_amount=total_amount,
        journey_date=booking.journey_date,
        status="confirmed",
    )
    log_booking(db_booking.booking_code, "confirmed", booking.user_id, total_amount)
    return db_booking


def _owned_booking(db: Session, booking_id: int, user_id: str) -> Booking:
    booking = crud.get_booking(db, booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    if booking.user_id != user_id:
        logger.warning(f"User '{user_id}' attempted to access booking {booking_id}")
        raise HTTPException(status_code=403, detail="Not authorized to access this booking")
    return booking


async def get_user_bookings(db: Session, user_id: str) -> List[Booking]:
    """All bookings of one user, newest first"""
    return crud.get_bookings_by_user(db, user_id)


async def get_booking(db: Session, booking_id: int, user_id: str) -> Booking:
    """Get one booking owned by user_id"""
    return _owned_booking(db, booking_id, user_id)


async def cancel_booking(db: Session, booking_id: int, user_id: str) -> Booking:
    """Cancel a booking; past journeys cannot be cancelled"""
    booking = _owned_booking(db, booking_id, user_id)

    if booking.status == "cancelled":
        raise HTTPException(status_code=400, detail="Booking is already cancelled")
    if booking.journey_date < get_ist_now().date():
        raise HTTPException(status_code=400, detail="Cannot cancel past bookings")

    booking = crud.update_booking_status(db, booking_id, "cancelled")
    log_booking(booking.booking_code, "cancelled", user_id)
    return booking


# ============ Pass Applications ============

def _otp_key(application_id: int) -> str:
    return f"application:{application_id}"


def _owned_application(db: Session, application_id: int, user_id: str) -> PassApplication:
    application = crud.get_pass_application(db, application_id)
    if not application:
        raise HTTPException(status_code=404, detail="Application not found")
    if application.user_id != user_id:
        logger.warning(f"User '{user_id}' attempted to access pass application {application_id}")
        raise HTTPException(status_code=403, detail="Not authorized to access this application")
    return application


async def apply_for_pass(db: Session, application: PassApplicationCreate, otp_store: OtpStore) -> PassApplication:
    """
    Submit a pass application and send a mobile OTP.
    A user can have only one application waiting on verification or review.
    """
    if crud.get_open_application_for_user(db, application.user_id):
        raise HTTPException(status_code=400, detail="You already have a pending application")

    db_application = crud.create_pass_application(db, application)
    otp_store.issue(_otp_key(db_application.id), db_application.mobile)
    log_pass(f"application {db_application.id}", "applied", application.user_id)
    return db_application


async def verify_application_otp(
    db: Session,
    application_id: int,
    payload: OtpVerification,
    otp_store: OtpStore
) -> PassApplication:
    """Confirm the applicant's mobile; the application moves on to verification"""
    application = _owned_application(db, application_id, payload.user_id)

    if application.status != "pending" or application.mobile_verified:
        raise HTTPException(status_code=400, detail="Application is not awaiting mobile verification")
    if not otp_store.verify(_otp_key(application.id), payload.otp):
        raise HTTPException(status_code=400, detail="Invalid or expired OTP")

    application = crud.update_application_status(
        db,
        application.id,
        "verification",
        mobile_verified=True,
        mobile_verified_at=get_ist_now(),
    )
    log_pass(f"application {application.id}", "mobile verified", payload.user_id)
    return application


async def get_user_applications(db: Session, user_id: str) -> List[PassApplication]:
    """All pass applications of one user, newest first"""
    return crud.get_pass_applications_by_user(db, user_id)


async def get_application(db: Session, application_id: int, user_id: str) -> PassApplication:
    return _owned_application(db, application_id, user_id)


async def cancel_application(
    db: Session,
    application_id: int,
    user_id: str,
    document_store: DocumentStore
) -> PassApplication:
    """Withdraw an application that has not been decided yet and release its documents"""
    application = _owned_application(db, application_id, user_id)

    if application.status not in crud.OPEN_APPLICATION_STATUSES:
        raise HTTPException(status_code=400, detail=f"Cannot cancel application in {application.status} status")

    application = crud.update_application_status(db, application.id, "cancelled", cancelled_at=get_ist_now())
    log_pass(f"application {application.id}", "cancelled", user_id)

    for reference in (application.aadhaar_document, application.photo):
        if not reference:
            continue
        try:
            document_store.delete(reference)
        except Exception as e:
            # The cancellation stands; the document is left for cleanup
            logger.warning(f"Could not release document {reference}: {e}")
    return application


# ============ Passes ============

def _owned_pass(db: Session, pass_id: int, user_id: str) -> Pass:
    bus_pass = crud.get_pass(db, pass_id)
    if not bus_pass:
        raise HTTPException(status_code=404, detail="Pass not found")
    if bus_pass.user_id != user_id:
        logger.warning(f"User '{user_id}' attempted to access pass {pass_id}")
        raise HTTPException(status_code=403, detail="Not authorized to access this pass")
    return bus_pass


async def get_user_passes(db: Session, user_id: str) -> List[Pass]:
    """All passes of one user, newest first"""
    return crud.get_passes_by_user(db, user_id)


async def get_pass(db: Session, pass_id: int, user_id: str) -> Pass:
    return _owned_pass(db, pass_id, user_id)


async def renew_pass(db: Session, pass_id: int, user_id: str, payload: PassRenew) -> Pass:
    """Extend one of the user's passes"""
    bus_pass = _owned_pass(db, pass_id, user_id)
    try:
        return pass_service.renew_pass(db, bus_pass, payload.valid_until, user_id)
    except PassRuleError as e:
        raise HTTPException(status_code=400, detail=str(e))


async def cancel_pass(db: Session, pass_id: int, user_id: str, payload: PassCancel) -> Pass:
    """Cancel one of the user's passes"""
    bus_pass = _owned_pass(db, pass_id, user_id)
    try:
        return pass_service.cancel_pass(db, bus_pass, payload.reason or "User requested cancellation", user_id)
    except PassRuleError as e:
        raise HTTPException(status_code=400, detail=str(e))
