from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime


# ============ Admin Schemas ============

class AdminCreate(BaseModel):
    """Schema for creating a new admin (Super Admin only)"""
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=8)


class AdminResponse(BaseModel):
    """Admin response schema (without password)"""
    id: int
    username: str
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============ Admin Login ============

class AdminLogin(BaseModel):
    """Admin login request"""
    username: str
    password: str


class LoginResponse(BaseModel):
    """Login response - token is also set as an HTTP-only cookie"""
    message: str
    access_token: str
    token_type: str = "bearer"
    username: str
    role: str


# ============ Dashboard ============

class DashboardCounts(BaseModel):
    stops: int
    routes: int
    buses: int
    active_buses: int
    bookings: int
    today_bookings: int


class DashboardRevenue(BaseModel):
    total: float
    this_month: float


class TopRoute(BaseModel):
    route_id: int
    route_name: str
    bookings: int
    revenue: float


class DashboardStats(BaseModel):
    """Aggregated figures for the admin dashboard"""
    counts: DashboardCounts
    revenue: DashboardRevenue
    bookings_by_status: Dict[str, int] = Field(default_factory=dict)
    top_routes: List[TopRoute] = Field(default_factory=list)
