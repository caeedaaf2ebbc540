from fastapi import APIRouter, Depends, HTTPException, Query, status, Response
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import timedelta

from buspass.db.session import get_db
from buspass.core.config import settings
from buspass.core.logger import logger, log_request, log_success, log_error
from buspass.core.security import (
    authenticate_admin,
    create_access_token,
    get_current_admin,
    get_super_admin,
    get_password_hash
)
from buspass.schemas.admin import AdminLogin, LoginResponse, AdminCreate, AdminResponse, DashboardStats
from buspass.schemas.booking import BookingListResponse
from buspass.schemas.bus import BusCreate, BusUpdate, BusAdmin
from buspass.schemas.bus_pass import (
    ApplicationStatusUpdate,
    PassApplicationResponse,
    PassCancel,
    PassCheckResult,
    PassIssue,
    PassRenew,
    PassResponse,
    PassVerificationResponse,
    PassVerify,
)
from buspass.schemas.route import RouteCreate, RouteUpdate, RouteStopAdd, RouteResponse
from buspass.schemas.stop import StopCreate, StopUpdate, StopResponse
from buspass.api.admin import controllers_admin
from buspass.db import crud

router = APIRouter(prefix="/admin", tags=["Admin"])


# ============ Authentication ============

@router.post("/login", response_model=LoginResponse)
async def admin_login(credentials: AdminLogin, response: Response, db: Session = Depends(get_db)):
    """
    Admin login endpoint.
    Supports both Super Admin (from .env) and normal admins (from database).
    Sets an HTTP-only cookie with the JWT and also returns it for Bearer clients.
    """
    try:
        log_request("/admin/login", "POST", credentials.username)

        if not credentials.username or not credentials.password:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Username and password are required"
            )

        user = authenticate_admin(db, credentials.username, credentials.password)
        if not user:
            # Same message whether or not the username exists
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid username or password.",
                headers={"WWW-Authenticate": "Bearer"},
            )

        access_token = create_access_token(
            data={"sub": user["username"], "role": user["role"]},
            expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        )

        response.set_cookie(
            key="access_token",
            value=access_token,
            httponly=True,
            secure=not settings.DEBUG,
            samesite="lax",
            max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            path="/"
        )

        log_success("/admin/login", f"Logged in as {user['role']}", user["username"])

        return LoginResponse(
            message="Login successful",
            access_token=access_token,
            username=user["username"],
            role=user["role"]
        )

    except HTTPException:
        raise
    except Exception as e:
        log_error("/admin/login", e, credentials.username)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred during login. Please try again later."
        )


@router.post("/logout")
async def admin_logout(response: Response, current_admin: dict = Depends(get_current_admin)):
    """Clear the auth cookie"""
    response.delete_cookie(key="access_token", path="/", httponly=True, samesite="lax")
    log_success("/admin/logout", "Logged out", current_admin["username"])
    return {"message": "Logged out successfully"}


# ============ Admin Management (Super Admin Only) ============

@router.post("/admins", response_model=AdminResponse, status_code=status.HTTP_201_CREATED)
async def create_new_admin(
    admin_data: AdminCreate,
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_super_admin)
):
    """Create a new admin account. Super Admin only."""
    if admin_data.username == settings.ADMIN_USERNAME or crud.get_admin_by_username(db, admin_data.username):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Username '{admin_data.username}' already exists"
        )

    return crud.create_admin(
        db,
        username=admin_data.username,
        hashed_password=get_password_hash(admin_data.password)
    )


@router.get("/admins", response_model=List[AdminResponse])
async def list_admins(db: Session = Depends(get_db), current_admin: dict = Depends(get_super_admin)):
    """List all admin accounts. Super Admin only."""
    return crud.get_admins(db)


@router.delete("/admins/{admin_id}")
async def delete_admin(admin_id: int, db: Session = Depends(get_db), current_admin: dict = Depends(get_super_admin)):
    """Delete an admin account. Super Admin only."""
    if not crud.delete_admin(db, admin_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Admin not found")
    return {"message": "Admin deleted successfully"}


@router.patch("/admins/{admin_id}/status")
async def update_admin_status(
    admin_id: int,
    is_active: bool,
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_super_admin)
):
    """Activate or deactivate an admin account. Super Admin only."""
    if not crud.update_admin_status(db, admin_id, is_active):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Admin not found")
    return {"message": f"Admin {'activated' if is_active else 'deactivated'} successfully"}


# ============ Dashboard ============

@router.get("/dashboard", response_model=DashboardStats)
async def get_dashboard(db: Session = Depends(get_db), current_admin: dict = Depends(get_current_admin)):
    """Counts, revenue and most booked routes. Admin only."""
    return await controllers_admin.get_dashboard(db)


# ============ Stop Management ============

@router.get("/stops", response_model=List[StopResponse])
async def get_all_stops(db: Session = Depends(get_db), current_admin: dict = Depends(get_current_admin)):
    """Get all stops, active or not. Admin only."""
    return crud.get_stops(db, limit=1000)


@router.post("/stops", response_model=StopResponse, status_code=status.HTTP_201_CREATED)
async def create_stop(stop: StopCreate, db: Session = Depends(get_db), current_admin: dict = Depends(get_current_admin)):
    """Create a stop. Admin only."""
    return await controllers_admin.add_stop(db, stop)


@router.get("/stops/{stop_id}", response_model=StopResponse)
async def get_stop(stop_id: int, db: Session = Depends(get_db), current_admin: dict = Depends(get_current_admin)):
    """Get a stop by ID. Admin only."""
    return await controllers_admin.get_stop_details(db, stop_id)


@router.put("/stops/{stop_id}", response_model=StopResponse)
async def update_stop(
    stop_id: int,
    stop: StopUpdate,
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_current_admin)
):
    """Update a stop. Admin only."""
    return await controllers_admin.modify_stop(db, stop_id, stop)


@router.delete("/stops/{stop_id}")
async def delete_stop(stop_id: int, db: Session = Depends(get_db), current_admin: dict = Depends(get_current_admin)):
    """Delete a stop that no route uses. Admin only."""
    return await controllers_admin.remove_stop(db, stop_id)


# ============ Route Management ============

@router.get("/routes", response_model=List[RouteResponse])
async def get_all_routes(db: Session = Depends(get_db), current_admin: dict = Depends(get_current_admin)):
    """Get all routes with their ordered stops. Admin only."""
    return crud.get_routes(db, limit=1000)


@router.post("/routes", response_model=RouteResponse, status_code=status.HTTP_201_CREATED)
async def create_route(route: RouteCreate, db: Session = Depends(get_db), current_admin: dict = Depends(get_current_admin)):
    """Create a route from at least two stops. Admin only."""
    return await controllers_admin.add_route(db, route)


@router.get("/routes/{route_id}", response_model=RouteResponse)
async def get_route(route_id: int, db: Session = Depends(get_db), current_admin: dict = Depends(get_current_admin)):
    """Get a route by ID. Admin only."""
    return await controllers_admin.get_route_details(db, route_id)


@router.put("/routes/{route_id}", response_model=RouteResponse)
async def update_route(
    route_id: int,
    route: RouteUpdate,
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_current_admin)
):
    """Update a route; stop_ids replaces the whole sequence. Admin only."""
    return await controllers_admin.modify_route(db, route_id, route)


@router.post("/routes/{route_id}/stops", response_model=RouteResponse)
async def add_stop_to_route(
    route_id: int,
    payload: RouteStopAdd,
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_current_admin)
):
    """Insert a stop into a route. Admin only."""
    return await controllers_admin.add_stop_to_route(db, route_id, payload)


@router.delete("/routes/{route_id}/stops/{stop_id}", response_model=RouteResponse)
async def remove_stop_from_route(
    route_id: int,
    stop_id: int,
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_current_admin)
):
    """Remove a stop from a route (at least two must remain). Admin only."""
    return await controllers_admin.remove_stop_from_route(db, route_id, stop_id)


@router.delete("/routes/{route_id}")
async def delete_route(route_id: int, db: Session = Depends(get_db), current_admin: dict = Depends(get_current_admin)):
    """Delete a route with no buses. Admin only."""
    return await controllers_admin.remove_route(db, route_id)


# ============ Bus Management ============

@router.get("/buses", response_model=List[BusAdmin])
async def get_all_buses(
    route_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_current_admin)
):
    """Get all buses, optionally for one route. Admin only."""
    return await controllers_admin.list_all_buses(db, route_id)


@router.post("/buses", response_model=BusAdmin, status_code=status.HTTP_201_CREATED)
async def create_bus(bus: BusCreate, db: Session = Depends(get_db), current_admin: dict = Depends(get_current_admin)):
    """Create a bus on an existing route. Admin only."""
    return await controllers_admin.add_bus(db, bus)


@router.get("/buses/{bus_id}", response_model=BusAdmin)
async def get_bus(bus_id: int, db: Session = Depends(get_db), current_admin: dict = Depends(get_current_admin)):
    """Get a bus by ID. Admin only."""
    return await controllers_admin.get_bus_details(db, bus_id)


@router.put("/buses/{bus_id}", response_model=BusAdmin)
async def update_bus(
    bus_id: int,
    bus: BusUpdate,
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_current_admin)
):
    """Update a bus. Admin only."""
    return await controllers_admin.modify_bus(db, bus_id, bus)


@router.patch("/buses/{bus_id}/active", response_model=BusAdmin)
async def set_bus_active(
    bus_id: int,
    active: bool,
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_current_admin)
):
    """
    Toggle bus active status.
    Only active buses appear in search results.
    Admin only.
    """
    return await controllers_admin.modify_bus(db, bus_id, BusUpdate(is_active=active))


@router.delete("/buses/{bus_id}")
async def delete_bus(bus_id: int, db: Session = Depends(get_db), current_admin: dict = Depends(get_current_admin)):
    """Delete a bus without bookings. Admin only."""
    return await controllers_admin.remove_bus(db, bus_id)


# ============ Bookings ============

@router.get("/bookings", response_model=BookingListResponse)
async def get_all_bookings(
    page: int = 1,
    limit: Optional[int] = None,
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_current_admin)
):
    """Paginated bookings, newest first. Admin only."""
    logger.debug(f"Admin '{current_admin['username']}' listing bookings page {page}")
    return await controllers_admin.list_bookings(db, page, limit)


# ============ Pass Applications ============

@router.get("/pass-applications", response_model=List[PassApplicationResponse])
async def get_all_applications(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_current_admin)
):
    """All pass applications, newest first, optionally by status. Admin only."""
    return await controllers_admin.list_applications(db, status_filter)


@router.get("/pass-applications/{application_id}", response_model=PassApplicationResponse)
async def get_application(
    application_id: int,
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_current_admin)
):
    """Get a pass application by ID. Admin only."""
    return await controllers_admin.get_application_details(db, application_id)


@router.put("/pass-applications/{application_id}/status", response_model=PassApplicationResponse)
async def update_application_status(
    application_id: int,
    decision: ApplicationStatusUpdate,
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_current_admin)
):
    """
    Review an application: pending, verification, approved or rejected.
    Approval requires a verified mobile number. Admin only.
    """
    return await controllers_admin.review_application(db, application_id, decision, current_admin["username"])


# ============ Passes ============

@router.post("/passes", response_model=PassResponse, status_code=status.HTTP_201_CREATED)
async def issue_pass(payload: PassIssue, db: Session = Depends(get_db), current_admin: dict = Depends(get_current_admin)):
    """Issue a pass for an approved application. Admin only."""
    return await controllers_admin.issue_pass(db, payload, current_admin["username"])


@router.get("/passes", response_model=List[PassResponse])
async def get_all_passes(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_current_admin)
):
    """All passes, newest first, optionally by status. Admin only."""
    return await controllers_admin.list_passes(db, status_filter)


@router.post("/passes/verify", response_model=PassCheckResult)
async def verify_pass(payload: PassVerify, db: Session = Depends(get_db), current_admin: dict = Depends(get_current_admin)):
    """
    Check a pass by number and record the check against the signed-in admin.

    **Error Responses:**
    - `404`: No pass with this number
    - `400`: Pass is not active, or today is outside its validity
    """
    return await controllers_admin.verify_pass(db, payload, current_admin["username"])


@router.get("/passes/{pass_id}", response_model=PassResponse)
async def get_pass(pass_id: int, db: Session = Depends(get_db), current_admin: dict = Depends(get_current_admin)):
    """Get a pass by ID. Admin only."""
    return await controllers_admin.get_pass_details(db, pass_id)


@router.put("/passes/{pass_id}/renew", response_model=PassResponse)
async def renew_pass(
    pass_id: int,
    payload: PassRenew,
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_current_admin)
):
    """Extend a pass to a later end date. Admin only."""
    return await controllers_admin.renew_pass(db, pass_id, payload, current_admin["username"])


@router.put("/passes/{pass_id}/cancel", response_model=PassResponse)
async def cancel_pass(
    pass_id: int,
    payload: Optional[PassCancel] = None,
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_current_admin)
):
    """Cancel a pass. Admin only."""
    return await controllers_admin.cancel_pass(db, pass_id, payload or PassCancel(), current_admin["username"])


@router.get("/passes/{pass_id}/verifications", response_model=List[PassVerificationResponse])
async def get_pass_verifications(
    pass_id: int,
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_current_admin)
):
    """Verification history of a pass, oldest first. Admin only."""
    return await controllers_admin.get_pass_verifications(db, pass_id)
