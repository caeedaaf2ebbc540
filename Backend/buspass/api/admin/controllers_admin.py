from sqlalchemy.orm import Session
from typing import List, Optional
from fastapi import HTTPException

from buspass.core.config import settings
from buspass.core.logger import log_pass
from buspass.db import crud
from buspass.db.models import Bus, Pass, PassApplication, PassVerification, Route, Stop, get_ist_now
from buspass.schemas.admin import DashboardStats
from buspass.schemas.booking import BookingListResponse, BookingResponse
from buspass.schemas.bus import BusCreate, BusUpdate
from buspass.schemas.bus_pass import ApplicationStatusUpdate, PassCancel, PassCheckResult, PassIssue, PassRenew, PassVerify
from buspass.schemas.route import RouteCreate, RouteUpdate, RouteStopAdd
from buspass.schemas.stop import StopCreate, StopUpdate
from buspass.services.journey_search import journey_search_service
from buspass.services import pass_service
from buspass.services.pass_service import PassRuleError, add_months


# ============ Stops ============

async def add_stop(db: Session, stop_data: StopCreate) -> Stop:
    """Create a stop; names are unique regardless of case"""
    if crud.get_stop_by_name(db, stop_data.name):
        raise HTTPException(status_code=400, detail="Stop with this name already exists.")
    return crud.create_stop(db, stop_data)


async def get_stop_details(db: Session, stop_id: int) -> Stop:
    stop = crud.get_stop(db, stop_id)
    if not stop:
        raise HTTPException(status_code=404, detail="Stop not found")
    return stop


async def modify_stop(db: Session, stop_id: int, stop_data: StopUpdate) -> Stop:
    """Update a stop; renaming onto another stop's name is rejected"""
    if stop_data.name is not None:
        existing = crud.get_stop_by_name(db, stop_data.name)
        if existing and existing.id != stop_id:
            raise HTTPException(status_code=400, detail="Stop with this name already exists.")

    stop = crud.update_stop(db, stop_id, stop_data)
    if not stop:
        raise HTTPException(status_code=404, detail="Stop not found")
    return stop


async def remove_stop(db: Session, stop_id: int) -> dict:
    """Delete a stop that no route references"""
    if not crud.get_stop(db, stop_id):
        raise HTTPException(status_code=404, detail="Stop not found")

    used_by = crud.count_routes_using_stop(db, stop_id)
    if used_by:
        raise HTTPException(
            status_code=400,
            detail=f"Stop is used by {used_by} route(s). Remove it from those routes or deactivate it instead."
        )

    crud.delete_stop(db, stop_id)
    return {"message": "Stop deleted successfully"}


# ============ Routes ============

def _resolve_stops(db: Session, stop_ids: List[int]) -> List[Stop]:
    """Stops in the given order; every ID must exist"""
    found = crud.get_stops_by_ids(db, stop_ids)
    missing = [stop_id for stop_id in stop_ids if stop_id not in found]
    if missing:
        raise HTTPException(status_code=404, detail=f"Stop with ID {missing[0]} not found")
    return [found[stop_id] for stop_id in stop_ids]


async def add_route(db: Session, route_data: RouteCreate) -> Route:
    """Create a route from an ordered list of at least two stops"""
    if crud.get_route_by_name(db, route_data.name):
        raise HTTPException(status_code=400, detail=f"Route '{route_data.name}' already exists")
    stops = _resolve_stops(db, route_data.stop_ids)
    return crud.create_route(db, route_data, stops)


async def get_route_details(db: Session, route_id: int) -> Route:
    route = crud.get_route(db, route_id)
    if not route:
        raise HTTPException(status_code=404, detail="Route not found")
    return route


async def modify_route(db: Session, route_id: int, route_data: RouteUpdate) -> Route:
    """Update route fields and, when stop_ids is given, its whole stop sequence"""
    if not crud.get_route(db, route_id):
        raise HTTPException(status_code=404, detail="Route not found")

    if route_data.name is not None:
        existing = crud.get_route_by_name(db, route_data.name)
        if existing and existing.id != route_id:
            raise HTTPException(status_code=400, detail=f"Route '{route_data.name}' already exists")

    stops = _resolve_stops(db, route_data.stop_ids) if route_data.stop_ids is not None else None
    return crud.update_route(db, route_id, route_data, stops)


async def add_stop_to_route(db: Session, route_id: int, payload: RouteStopAdd) -> Route:
    """Insert a stop at a position (or at the end); a stop may only appear once via this operation"""
    route = await get_route_details(db, route_id)
    stop = crud.get_stop(db, payload.stop_id)
    if not stop:
        raise HTTPException(status_code=404, detail="Stop not found")
    if any(route_stop.stop_id == stop.id for route_stop in route.route_stops):
        raise HTTPException(status_code=400, detail="Stop already exists in route")
    return crud.insert_route_stop(db, route, stop, payload.position)


async def remove_stop_from_route(db: Session, route_id: int, stop_id: int) -> Route:
    """Remove a stop while keeping at least two stops on the route"""
    route = await get_route_details(db, route_id)
    remaining = [route_stop for route_stop in route.route_stops if route_stop.stop_id != stop_id]

    if len(remaining) == len(route.route_stops):
        raise HTTPException(status_code=404, detail="Stop not found in route")
    if len(remaining) < 2:
        raise HTTPException(status_code=400, detail="Route must have at least two stops")

    return crud.remove_route_stop(db, route, stop_id)


async def remove_route(db: Session, route_id: int) -> dict:
    """Delete a route that has no buses assigned"""
    if not crud.get_route(db, route_id):
        raise HTTPException(status_code=404, detail="Route not found")

    bus_count = crud.count_buses_on_route(db, route_id)
    if bus_count:
        raise HTTPException(
            status_code=400,
            detail=f"{bus_count} bus(es) are assigned to this route. Reassign them or deactivate the route instead."
        )

    crud.delete_route(db, route_id)
    return {"message": "Route deleted successfully"}


# ============ Buses ============

async def add_bus(db: Session, bus_data: BusCreate) -> Bus:
    """Create a bus on an existing route"""
    if crud.get_bus_by_number(db, bus_data.bus_number):
        raise HTTPException(status_code=400, detail=f"Bus number '{bus_data.bus_number}' already exists")
    if not crud.get_route(db, bus_data.route_id):
        raise HTTPException(status_code=404, detail="Route not found")
    bus = crud.create_bus(db, bus_data)
    return crud.get_bus(db, bus.id)


async def list_all_buses(db: Session, route_id: Optional[int] = None) -> List[Bus]:
    """All buses (admin view), active or not"""
    return crud.get_buses(db, limit=1000, route_id=route_id)


async def get_bus_details(db: Session, bus_id: int) -> Bus:
    bus = crud.get_bus(db, bus_id)
    if not bus:
        raise HTTPException(status_code=404, detail="Bus not found")
    return bus


async def modify_bus(db: Session, bus_id: int, bus_data: BusUpdate) -> Bus:
    """Update a bus; a new route must exist and a new bus number must be free"""
    if not crud.get_bus(db, bus_id):
        raise HTTPException(status_code=404, detail="Bus not found")

    if bus_data.bus_number is not None:
        existing = crud.get_bus_by_number(db, bus_data.bus_number)
        if existing and existing.id != bus_id:
            raise HTTPException(status_code=400, detail=f"Bus number '{bus_data.bus_number}' already exists")

    if bus_data.route_id is not None and not crud.get_route(db, bus_data.route_id):
        raise HTTPException(status_code=404, detail="Route not found")

    return crud.update_bus(db, bus_id, bus_data)


async def remove_bus(db: Session, bus_id: int) -> dict:
    """Delete a bus without bookings; booked buses can only be deactivated"""
    if not crud.get_bus(db, bus_id):
        raise HTTPException(status_code=404, detail="Bus not found")

    if crud.count_bookings_for_bus(db, bus_id):
        raise HTTPException(
            status_code=400,
            detail="Bus has bookings. Use PATCH /admin/buses/{id}/active to deactivate it instead."
        )

    crud.delete_bus(db, bus_id)
    return {"message": "Bus deleted successfully"}


# ============ Bookings & Dashboard ============

async def list_bookings(db: Session, page: int = 1, limit: Optional[int] = None) -> BookingListResponse:
    """Paginated bookings, newest first"""
    page = page if page >= 1 else 1
    limit = limit if limit and limit >= 1 else settings.ADMIN_PAGE_SIZE

    total_items = crud.count_bookings(db)
    bookings = crud.get_bookings(db, skip=(page - 1) * limit, limit=limit)

    # Reuse the search paginator for metadata; the slice itself comes from the query
    _, pagination = journey_search_service.paginate_results(range(total_items), page, limit)

    return BookingListResponse(
        message="All bookings fetched successfully." if total_items else "No bookings found.",
        items=[BookingResponse.model_validate(booking) for booking in bookings],
        pagination=pagination
    )


async def get_dashboard(db: Session) -> DashboardStats:
    """Counts, revenue and top routes"""
    return DashboardStats(**crud.get_dashboard_stats(db))


# ============ Pass Applications ============

async def list_applications(db: Session, status: Optional[str] = None) -> List[PassApplication]:
    """All pass applications, newest first"""
    return crud.get_pass_applications(db, status)


async def get_application_details(db: Session, application_id: int) -> PassApplication:
    application = crud.get_pass_application(db, application_id)
    if not application:
        raise HTTPException(status_code=404, detail="Application not found")
    return application


async def review_application(
    db: Session,
    application_id: int,
    decision: ApplicationStatusUpdate,
    admin_username: str
) -> PassApplication:
    """
    Move an application between pending, verification, approved and rejected.
    Issued and cancelled applications are final; approval needs a verified mobile.
    """
    application = await get_application_details(db, application_id)

    if application.status in ("issued", "cancelled"):
        raise HTTPException(status_code=400, detail=f"Cannot update application in {application.status} status")
    if decision.status == "approved" and not application.mobile_verified:
        raise HTTPException(status_code=400, detail="Mobile number has not been verified")

    fields = {}
    if decision.admin_remarks:
        fields["admin_remarks"] = decision.admin_remarks
    if decision.status == "rejected":
        fields["rejection_reason"] = decision.rejection_reason or decision.admin_remarks

    application = crud.update_application_status(db, application.id, decision.status, **fields)
    log_pass(f"application {application.id}", decision.status, admin_username)
    return application


# ============ Passes ============

async def issue_pass(db: Session, payload: PassIssue, admin_username: str) -> Pass:
    """Issue a pass for an approved application; the application becomes issued"""
    application = crud.get_pass_application(db, payload.application_id)
    if not application:
        raise HTTPException(status_code=404, detail="Pass application not found")
    if application.status != "approved":
        raise HTTPException(status_code=400, detail="Cannot issue pass for non-approved application")

    valid_from = payload.valid_from or get_ist_now().date()
    valid_until = payload.valid_until or add_months(valid_from, application.validity_months)
    if valid_until <= valid_from:
        raise HTTPException(status_code=400, detail="Pass must end after it starts")

    bus_pass = crud.issue_pass(db, application, payload.amount, valid_from, valid_until)
    log_pass(bus_pass.pass_number, f"issued for application {application.id}", admin_username)
    return bus_pass


async def list_passes(db: Session, status: Optional[str] = None) -> List[Pass]:
    """All passes, newest first"""
    return crud.get_passes(db, status)


async def get_pass_details(db: Session, pass_id: int) -> Pass:
    bus_pass = crud.get_pass(db, pass_id)
    if not bus_pass:
        raise HTTPException(status_code=404, detail="Pass not found")
    return bus_pass


async def renew_pass(db: Session, pass_id: int, payload: PassRenew, admin_username: str) -> Pass:
    bus_pass = await get_pass_details(db, pass_id)
    try:
        return pass_service.renew_pass(db, bus_pass, payload.valid_until, admin_username)
    except PassRuleError as e:
        raise HTTPException(status_code=400, detail=str(e))


async def cancel_pass(db: Session, pass_id: int, payload: PassCancel, admin_username: str) -> Pass:
    bus_pass = await get_pass_details(db, pass_id)
    try:
        return pass_service.cancel_pass(db, bus_pass, payload.reason or "Cancelled by admin", admin_username)
    except PassRuleError as e:
        raise HTTPException(status_code=400, detail=str(e))


async def verify_pass(db: Session, payload: PassVerify, admin_username: str) -> PassCheckResult:
    """
    Check a pass presented in the field and record the check.
    An active pass found past its end date is marked expired.
    """
    bus_pass = crud.get_pass_by_number(db, payload.pass_number)
    if not bus_pass:
        raise HTTPException(status_code=404, detail="Invalid pass")
    if bus_pass.status != "active":
        raise HTTPException(status_code=400, detail=f"Pass is {bus_pass.status}")

    today = get_ist_now().date()
    if today > bus_pass.valid_until:
        crud.update_pass_status(db, bus_pass.id, "expired")
        log_pass(bus_pass.pass_number, "expired", admin_username)
        raise HTTPException(status_code=400, detail="Pass has expired or is not yet valid")
    if today < bus_pass.valid_from:
        raise HTTPException(status_code=400, detail="Pass has expired or is not yet valid")

    crud.add_pass_verification(db, bus_pass.id, admin_username, payload.location or "Unknown location")
    return PassCheckResult(
        message="Pass verified successfully",
        is_valid=True,
        pass_number=bus_pass.pass_number,
        name=bus_pass.name,
        category=bus_pass.category,
        valid_from=bus_pass.valid_from,
        valid_until=bus_pass.valid_until,
        status=bus_pass.status,
    )


async def get_pass_verifications(db: Session, pass_id: int) -> List[PassVerification]:
    """Verification history of a pass, oldest first"""
    await get_pass_details(db, pass_id)
    return crud.get_pass_verifications(db, pass_id)
