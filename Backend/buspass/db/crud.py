import secrets
from datetime import date
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload
from typing import Callable, List, Optional, Dict, Any
from .models import (
    Admin, Stop, Route, RouteStop, Bus, Booking, PassApplication, Pass, PassVerification, get_ist_now,
    BOOKING_STATUSES, APPLICATION_STATUSES, PASS_STATUSES,
)
from buspass.core.config import settings
from buspass.core.logger import logger
from buspass.schemas.stop import StopCreate, StopUpdate
from buspass.schemas.route import RouteCreate, RouteUpdate
from buspass.schemas.bus import BusCreate, BusUpdate
from buspass.schemas.bus_pass import PassApplicationCreate


def _route_with_stops():
    return selectinload(Route.route_stops).joinedload(RouteStop.stop)


def _insert_with_unique_code(db: Session, make: Callable[[str], Any], generate_code: Callable[[], str]):
    """
    Add and flush make(code), drawing a fresh code whenever the unique
    constraint rejects the previous one. The caller commits.
    """
    attempts = max(settings.UNIQUE_CODE_ATTEMPTS, 1)
    for attempt in range(1, attempts + 1):
        code = generate_code()
        record = make(code)
        db.add(record)
        try:
            db.flush()
            return record
        except IntegrityError:
            db.rollback()
            if attempt == attempts:
                raise
            logger.warning(f"Code {code} already taken (attempt {attempt}/{attempts}), retrying")


# ============ Admin CRUD Operations ============

def get_admin_by_username(db: Session, username: str) -> Optional[Admin]:
    """Get admin by username"""
    return db.query(Admin).filter(Admin.username == username).first()


def get_admin(db: Session, admin_id: int) -> Optional[Admin]:
    """Get admin by ID"""
    return db.query(Admin).filter(Admin.id == admin_id).first()


def get_admins(db: Session, skip: int = 0, limit: int = 100) -> List[Admin]:
    """Get all admins"""
    return db.query(Admin).offset(skip).limit(limit).all()


def create_admin(db: Session, username: str, hashed_password: str) -> Admin:
    """Create a new admin"""
    db_admin = Admin(username=username, hashed_password=hashed_password, is_active=True)
    db.add(db_admin)
    db.commit()
    db.refresh(db_admin)
    return db_admin


def update_admin_status(db: Session, admin_id: int, is_active: bool) -> Optional[Admin]:
    """Activate or deactivate an admin"""
    db_admin = get_admin(db, admin_id)
    if not db_admin:
        return None

    db_admin.is_active = is_active
    db.commit()
    db.refresh(db_admin)
    return db_admin


def delete_admin(db: Session, admin_id: int) -> bool:
    """Delete an admin"""
    db_admin = get_admin(db, admin_id)
    if not db_admin:
        return False

    db.delete(db_admin)
    db.commit()
    return True


# ============ Stop CRUD Operations ============

def get_stop(db: Session, stop_id: int) -> Optional[Stop]:
    """Get a single stop by ID"""
    return db.query(Stop).filter(Stop.id == stop_id).first()


def get_stop_by_name(db: Session, name: str) -> Optional[Stop]:
    """Get a stop by name, ignoring case"""
    return db.query(Stop).filter(func.lower(Stop.name) == name.lower()).first()


def get_stops(db: Session, skip: int = 0, limit: int = 100, active_only: bool = False) -> List[Stop]:
    """Get all stops ordered by name"""
    query = db.query(Stop)
    if active_only:
        query = query.filter(Stop.is_active == True)
    return query.order_by(Stop.name).offset(skip).limit(limit).all()


def get_stops_by_ids(db: Session, stop_ids: List[int]) -> Dict[int, Stop]:
    """Map of stop ID -> Stop for the IDs that exist"""
    if not stop_ids:
        return {}
    stops = db.query(Stop).filter(Stop.id.in_(set(stop_ids))).all()
    return {stop.id: stop for stop in stops}


def count_routes_using_stop(db: Session, stop_id: int) -> int:
    """Number of routes whose stop sequence references this stop"""
    return db.query(func.count(func.distinct(RouteStop.route_id))).filter(RouteStop.stop_id == stop_id).scalar() or 0


def create_stop(db: Session, stop: StopCreate) -> Stop:
    """Create a new stop"""
    db_stop = Stop(**stop.model_dump())
    db.add(db_stop)
    db.commit()
    db.refresh(db_stop)
    return db_stop


def update_stop(db: Session, stop_id: int, stop_update: StopUpdate) -> Optional[Stop]:
    """Update a stop"""
    db_stop = get_stop(db, stop_id)
    if not db_stop:
        return None

    update_data = stop_update.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(db_stop, field, value)

    db.commit()
    db.refresh(db_stop)
    return db_stop


def delete_stop(db: Session, stop_id: int) -> bool:
    """Delete a stop"""
    db_stop = get_stop(db, stop_id)
    if not db_stop:
        return False

    db.delete(db_stop)
    db.commit()
    return True


# ============ Route CRUD Operations ============

def get_route(db: Session, route_id: int) -> Optional[Route]:
    """Get a single route with its stops"""
    return db.query(Route).options(_route_with_stops()).filter(Route.id == route_id).first()


def get_route_by_name(db: Session, name: str) -> Optional[Route]:
    """Get a route by its unique name"""
    return db.query(Route).filter(Route.name == name).first()


def get_routes(db: Session, skip: int = 0, limit: int = 100, active_only: bool = False) -> List[Route]:
    """Get routes with their stops"""
    query = db.query(Route).options(_route_with_stops())
    if active_only:
        query = query.filter(Route.is_active == True)
    return query.order_by(Route.id).offset(skip).limit(limit).all()


def list_routes_with_stops(db: Session) -> List[Route]:
    """
    All routes with their ordered stops resolved, in storage order.
    Read side of the journey search route matcher.
    """
    return db.query(Route).options(_route_with_stops()).order_by(Route.id).all()


def create_route(db: Session, route: RouteCreate, stops: List[Stop]) -> Route:
    """Create a route; stops must already be resolved in sequence order"""
    db_route = Route(**route.model_dump(exclude={"stop_ids"}))
    db_route.set_stops(stops)
    db.add(db_route)
    db.commit()
    db.refresh(db_route)
    return db_route


def update_route(
    db: Session,
    route_id: int,
    route_update: RouteUpdate,
    stops: Optional[List[Stop]] = None
) -> Optional[Route]:
    """Update a route, replacing its stop sequence when stops are given"""
    db_route = get_route(db, route_id)
    if not db_route:
        return None

    update_data = route_update.model_dump(exclude_unset=True, exclude={"stop_ids"})
    for field, value in update_data.items():
        setattr(db_route, field, value)

    if stops is not None:
        db_route.set_stops(stops)

    db.commit()
    db.refresh(db_route)
    return db_route


def insert_route_stop(db: Session, db_route: Route, stop: Stop, position: Optional[int] = None) -> Route:
    """Insert a stop into a route at position (append when omitted or out of range)"""
    if position is not None and 0 <= position <= len(db_route.route_stops):
        db_route.route_stops.insert(position, RouteStop(stop=stop))
    else:
        db_route.route_stops.append(RouteStop(stop=stop))
    db_route.route_stops.reorder()

    db.commit()
    db.refresh(db_route)
    return db_route


def remove_route_stop(db: Session, db_route: Route, stop_id: int) -> Route:
    """Remove every occurrence of a stop from a route"""
    for route_stop in [rs for rs in db_route.route_stops if rs.stop_id == stop_id]:
        db_route.route_stops.remove(route_stop)
    db_route.route_stops.reorder()

    db.commit()
    db.refresh(db_route)
    return db_route


def count_buses_on_route(db: Session, route_id: int) -> int:
    """Number of buses assigned to a route"""
    return db.query(func.count(Bus.id)).filter(Bus.route_id == route_id).scalar() or 0


def delete_route(db: Session, route_id: int) -> bool:
    """Delete a route and its stop sequence"""
    db_route = get_route(db, route_id)
    if not db_route:
        return False

    db.delete(db_route)
    db.commit()
    return True


# ============ Bus CRUD Operations ============

def get_bus(db: Session, bus_id: int) -> Optional[Bus]:
    """Get a single bus with route and stops"""
    return (
        db.query(Bus)
        .options(joinedload(Bus.route).selectinload(Route.route_stops).joinedload(RouteStop.stop))
        .filter(Bus.id == bus_id)
        .first()
    )


def get_bus_by_number(db: Session, bus_number: str) -> Optional[Bus]:
    """Get a bus by its unique bus number"""
    return db.query(Bus).filter(Bus.bus_number == bus_number).first()


def get_buses(db: Session, skip: int = 0, limit: int = 100, route_id: Optional[int] = None) -> List[Bus]:
    """Get buses, optionally for one route"""
    query = db.query(Bus).options(joinedload(Bus.route).selectinload(Route.route_stops).joinedload(RouteStop.stop))
    if route_id is not None:
        query = query.filter(Bus.route_id == route_id)
    return query.order_by(Bus.id).offset(skip).limit(limit).all()


def find_active_buses_by_routes(
    db: Session,
    route_ids: List[int],
    bus_types: Optional[List[str]] = None
) -> List[Bus]:
    """
    Active buses assigned to any of route_ids, each with route and stops loaded.
    Read side of the journey search bus fetcher.

    Args:
        db: Database session
        route_ids: Routes to include
        bus_types: Restrict to these bus types when non-empty
    """
    if not route_ids:
        return []

    query = (
        db.query(Bus)
        .options(joinedload(Bus.route).selectinload(Route.route_stops).joinedload(RouteStop.stop))
        .filter(Bus.route_id.in_(route_ids), Bus.is_active == True)
    )
    if bus_types:
        query = query.filter(Bus.bus_type.in_(bus_types))
    return query.order_by(Bus.id).all()


def create_bus(db: Session, bus: BusCreate) -> Bus:
    """Create a new bus"""
    db_bus = Bus(**bus.model_dump())
    db.add(db_bus)
    db.commit()
    db.refresh(db_bus)
    return db_bus


def update_bus(db: Session, bus_id: int, bus_update: BusUpdate) -> Optional[Bus]:
    """Update a bus"""
    db_bus = get_bus(db, bus_id)
    if not db_bus:
        return None

    update_data = bus_update.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(db_bus, field, value)

    db.commit()
    db.refresh(db_bus)
    return db_bus


def count_bookings_for_bus(db: Session, bus_id: int) -> int:
    """Number of bookings referencing a bus"""
    return db.query(func.count(Booking.id)).filter(Booking.bus_id == bus_id).scalar() or 0


def delete_bus(db: Session, bus_id: int) -> bool:
    """Delete a bus"""
    db_bus = get_bus(db, bus_id)
    if not db_bus:
        return False

    db.delete(db_bus)
    db.commit()
    return True


# ============ Booking CRUD Operations ============

def _booking_query(db: Session):
    return db.query(Booking).options(
        joinedload(Booking.bus),
        joinedload(Booking.route),
        joinedload(Booking.source_stop),
        joinedload(Booking.destination_stop),
    )


def get_booking(db: Session, booking_id: int) -> Optional[Booking]:
    """Get a single booking with bus, route and stops"""
    return _booking_query(db).filter(Booking.id == booking_id).first()


def get_bookings_by_user(db: Session, user_id: str) -> List[Booking]:
    """Bookings of one user, newest first"""
    return _booking_query(db).filter(Booking.user_id == user_id).order_by(Booking.id.desc()).all()


def get_bookings(db: Session, skip: int = 0, limit: int = 10) -> List[Booking]:
    """All bookings, newest first (admin view)"""
    return _booking_query(db).order_by(Booking.id.desc()).offset(skip).limit(limit).all()


def count_bookings(db: Session) -> int:
    """Total number of bookings"""
    return db.query(func.count(Booking.id)).scalar() or 0


def _generate_booking_code() -> str:
    """Booking code in the form BK-YYYYMMDD-NNNN; uniqueness is enforced by the table"""
    date_part = get_ist_now().strftime("%Y%m%d")
    return f"BK-{date_part}-{1000 + secrets.randbelow(9000)}"


def create_booking(db: Session, **fields: Any) -> Booking:
    """
    Insert a booking in a single transaction.
    The QR payload is the booking's own ID, so it is set after the insert is flushed.
    """
    try:
        db_booking = _insert_with_unique_code(
            db,
            lambda code: Booking(booking_code=code, **fields),
            _generate_booking_code,
        )
        db_booking.qr_code_data = str(db_booking.id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return get_booking(db, db_booking.id)


def update_booking_status(db: Session, booking_id: int, status: str) -> Optional[Booking]:
    """Set booking status; raises ValueError for a status bookings do not have"""
    if status not in BOOKING_STATUSES:
        raise ValueError(f"Unknown booking status '{status}'")

    db_booking = get_booking(db, booking_id)
    if not db_booking:
        return None

    db_booking.status = status
    db.commit()
    db.refresh(db_booking)
    return db_booking


# ============ Pass Application CRUD Operations ============

OPEN_APPLICATION_STATUSES = ("pending", "verification")


def get_pass_application(db: Session, application_id: int) -> Optional[PassApplication]:
    """Get a pass application by ID"""
    return db.query(PassApplication).filter(PassApplication.id == application_id).first()


def get_pass_applications(db: Session, status: Optional[str] = None) -> List[PassApplication]:
    """All applications, newest first, optionally with one status"""
    query = db.query(PassApplication)
    if status:
        query = query.filter(PassApplication.status == status)
    return query.order_by(PassApplication.id.desc()).all()


def get_pass_applications_by_user(db: Session, user_id: str) -> List[PassApplication]:
    """Applications of one user, newest first"""
    return (
        db.query(PassApplication)
        .filter(PassApplication.user_id == user_id)
        .order_by(PassApplication.id.desc())
        .all()
    )


def get_open_application_for_user(db: Session, user_id: str) -> Optional[PassApplication]:
    """The user's application still waiting on verification or review, if any"""
    return (
        db.query(PassApplication)
        .filter(PassApplication.user_id == user_id, PassApplication.status.in_(OPEN_APPLICATION_STATUSES))
        .first()
    )


def create_pass_application(db: Session, application: PassApplicationCreate) -> PassApplication:
    """Create a pending application"""
    db_application = PassApplication(**application.model_dump(), status="pending", mobile_verified=False)
    db.add(db_application)
    db.commit()
    db.refresh(db_application)
    return db_application


def update_application_status(db: Session, application_id: int, status: str, **fields: Any) -> Optional[PassApplication]:
    """
    Set application status together with any other columns in fields.
    Raises ValueError for a status applications do not have.
    """
    if status not in APPLICATION_STATUSES:
        raise ValueError(f"Unknown application status '{status}'")

    db_application = get_pass_application(db, application_id)
    if not db_application:
        return None

    db_application.status = status
    for field, value in fields.items():
        setattr(db_application, field, value)
    db.commit()
    db.refresh(db_application)
    return db_application


# ============ Pass CRUD Operations ============

def get_pass(db: Session, pass_id: int) -> Optional[Pass]:
    """Get a pass by ID"""
    return db.query(Pass).filter(Pass.id == pass_id).first()


def get_pass_by_number(db: Session, pass_number: str) -> Optional[Pass]:
    """Get a pass by its PASS-YYYYMM-NNNN number"""
    return db.query(Pass).filter(Pass.pass_number == pass_number).first()


def get_passes(db: Session, status: Optional[str] = None) -> List[Pass]:
    """All passes, newest first, optionally with one status"""
    query = db.query(Pass)
    if status:
        query = query.filter(Pass.status == status)
    return query.order_by(Pass.id.desc()).all()


def get_passes_by_user(db: Session, user_id: str) -> List[Pass]:
    """Passes of one user, newest first"""
    return db.query(Pass).filter(Pass.user_id == user_id).order_by(Pass.id.desc()).all()


def _generate_pass_number() -> str:
    """Pass number in the form PASS-YYYYMM-NNNN; uniqueness is enforced by the table"""
    month_part = get_ist_now().strftime("%Y%m")
    return f"PASS-{month_part}-{1000 + secrets.randbelow(9000)}"


def issue_pass(
    db: Session,
    application: PassApplication,
    amount: float,
    valid_from: date,
    valid_until: date
) -> Pass:
    """
    Create a pass from an application and mark the application issued,
    both in one transaction. The pass number is also the QR payload.
    """
    application_id = application.id

    def make(number: str) -> Pass:
        return Pass(
            pass_number=number,
            qr_code_data=number,
            user_id=application.user_id,
            application_id=application_id,
            name=application.name,
            category=application.category,
            source=application.source,
            destination=application.destination,
            valid_from=valid_from,
            valid_until=valid_until,
            amount=amount,
            status="active",
            payment_status="pending",
            renewal_count=0,
        )

    try:
        db_pass = _insert_with_unique_code(db, make, _generate_pass_number)
        application.status = "issued"
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(db_pass)
    return db_pass


def update_pass_status(db: Session, pass_id: int, status: str, **fields: Any) -> Optional[Pass]:
    """
    Set pass status together with any other columns in fields.
    Raises ValueError for a status passes do not have.
    """
    if status not in PASS_STATUSES:
        raise ValueError(f"Unknown pass status '{status}'")

    db_pass = get_pass(db, pass_id)
    if not db_pass:
        return None

    db_pass.status = status
    for field, value in fields.items():
        setattr(db_pass, field, value)
    db.commit()
    db.refresh(db_pass)
    return db_pass


def add_pass_verification(db: Session, pass_id: int, verified_by: str, location: str) -> PassVerification:
    """Record that a pass was checked"""
    verification = PassVerification(pass_id=pass_id, verified_by=verified_by, location=location)
    db.add(verification)
    db.commit()
    db.refresh(verification)
    return verification


def get_pass_verifications(db: Session, pass_id: int) -> List[PassVerification]:
    """Verification history of a pass, oldest first"""
    return (
        db.query(PassVerification)
        .filter(PassVerification.pass_id == pass_id)
        .order_by(PassVerification.id)
        .all()
    )


# ============ Dashboard Aggregates ============

def get_dashboard_stats(db: Session, top_routes_limit: int = 5) -> Dict[str, Any]:
    """Counts, revenue and most booked routes for the admin dashboard"""
    now = get_ist_now()
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    start_of_month = start_of_day.replace(day=1)

    billable = Booking.status != "cancelled"

    counts = {
        "stops": db.query(func.count(Stop.id)).scalar() or 0,
        "routes": db.query(func.count(Route.id)).scalar() or 0,
        "buses": db.query(func.count(Bus.id)).scalar() or 0,
        "active_buses": db.query(func.count(Bus.id)).filter(Bus.is_active == True).scalar() or 0,
        "bookings": count_bookings(db),
        "today_bookings": db.query(func.count(Booking.id)).filter(Booking.created_at >= start_of_day).scalar() or 0,
    }

    revenue = {
        "total": float(db.query(func.coalesce(func.sum(Booking.total_amount), 0)).filter(billable).scalar()),
        "this_month": float(
            db.query(func.coalesce(func.sum(Booking.total_amount), 0))
            .filter(billable, Booking.created_at >= start_of_month)
            .scalar()
        ),
    }

    by_status = dict(db.query(Booking.status, func.count(Booking.id)).group_by(Booking.status).all())

    top_rows = (
        db.query(
            Route.id,
            Route.name,
            func.count(Booking.id).label("bookings"),
            func.coalesce(func.sum(Booking.total_amount), 0).label("revenue"),
        )
        .join(Booking, Booking.route_id == Route.id)
        .filter(billable)
        .group_by(Route.id, Route.name)
        .order_by(func.count(Booking.id).desc(), Route.id)
        .limit(top_routes_limit)
        .all()
    )
    top_routes = [
        {"route_id": row[0], "route_name": row[1], "bookings": row[2], "revenue": float(row[3])}
        for row in top_rows
    ]

    return {
        "counts": counts,
        "revenue": revenue,
        "bookings_by_status": by_status,
        "top_routes": top_routes,
    }
