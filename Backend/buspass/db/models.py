from sqlalchemy import Column, Integer, String, Boolean, Float, Date, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.ext.orderinglist import ordering_list
from datetime import datetime, timezone, timedelta
from .session import Base

# IST timezone (UTC+5:30)
IST = timezone(timedelta(hours=5, minutes=30))

BOOKING_STATUSES = ("pending", "confirmed", "cancelled")
APPLICATION_STATUSES = ("pending", "verification", "approved", "rejected", "issued", "cancelled")
PASS_STATUSES = ("active", "cancelled", "expired")


def get_ist_now():
    """Get current time in IST"""
    return datetime.now(IST)


class Admin(Base):
    """
    Admin user model - stores admin accounts created by Super Admin.
    Super Admin credentials are in .env file.
    """
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=get_ist_now)
    updated_at = Column(DateTime(timezone=True), default=get_ist_now, onupdate=get_ist_now)

    def __repr__(self):
        return f"<Admin {self.username}>"


class Stop(Base):
    """
    Stop model - a named boarding point.
    Names are unique; journey search compares them case-insensitively.
    """
    __tablename__ = "stops"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    address = Column(String(255), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=get_ist_now)
    updated_at = Column(DateTime(timezone=True), default=get_ist_now, onupdate=get_ist_now)

    def __repr__(self):
        return f"<Stop {self.name}>"


class RouteStop(Base):
    """Position of a stop inside a route's ordered stop sequence"""
    __tablename__ = "route_stops"

    id = Column(Integer, primary_key=True, autoincrement=True)
    route_id = Column(Integer, ForeignKey("routes.id", ondelete="CASCADE"), nullable=False, index=True)
    stop_id = Column(Integer, ForeignKey("stops.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)

    route = relationship("Route", back_populates="route_stops")
    stop = relationship("Stop", lazy="joined")

    def __repr__(self):
        return f"<RouteStop route={self.route_id} stop={self.stop_id} #{self.position}>"


class Route(Base):
    """
    Route model - an ordered sequence of at least two stops.
    A stop's index in the sequence is its position; the same stop may
    appear more than once on loop routes.
    """
    __tablename__ = "routes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False, index=True)

    # Operational window, "HH:MM AM/PM"
    operational_start_time = Column(String(10), nullable=False)
    operational_end_time = Column(String(10), nullable=False)

    distance = Column(Float, nullable=True)  # km
    estimated_duration = Column(Integer, nullable=True)  # minutes
    average_stop_time = Column(Integer, nullable=True)  # minutes per stop-segment

    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=get_ist_now)
    updated_at = Column(DateTime(timezone=True), default=get_ist_now, onupdate=get_ist_now)

    route_stops = relationship(
        "RouteStop",
        back_populates="route",
        order_by="RouteStop.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )
    buses = relationship("Bus", back_populates="route")

    @property
    def stops(self):
        """Stops in route order"""
        return [route_stop.stop for route_stop in self.route_stops]

    def set_stops(self, stops):
        """Replace the stop sequence, renumbering positions from 0"""
        self.route_stops = [RouteStop(stop=stop, position=index) for index, stop in enumerate(stops)]

    def __repr__(self):
        return f"<Route {self.name} ({len(self.route_stops)} stops)>"


class Bus(Base):
    """
    Bus model - a vehicle assigned to one route.
    fare is the price of a single stop-segment on that route, not a flat fare.
    """
    __tablename__ = "buses"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    bus_number = Column(String(50), unique=True, nullable=False, index=True)
    bus_name = Column(String(100), nullable=True)
    bus_type = Column(String(20), default="ordinary", nullable=False, index=True)
    capacity = Column(Integer, default=40, nullable=False)
    fare = Column(Float, default=0, nullable=False)
    features = Column(JSON, default=list, nullable=False)

    route_id = Column(Integer, ForeignKey("routes.id"), nullable=False, index=True)

    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=get_ist_now)
    updated_at = Column(DateTime(timezone=True), default=get_ist_now, onupdate=get_ist_now)

    route = relationship("Route", back_populates="buses")
    bookings = relationship("Booking", back_populates="bus")

    def __repr__(self):
        return f"<Bus {self.bus_number} ({self.bus_type})>"


class Booking(Base):
    """
    Booking model - seats on one bus between two stops of its route.
    total_amount = bus.fare x stop-segments x number_of_seats, computed server-side.
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    booking_code = Column(String(30), unique=True, nullable=False, index=True)
    user_id = Column(String(100), nullable=False, index=True)

    bus_id = Column(Integer, ForeignKey("buses.id"), nullable=False, index=True)
    route_id = Column(Integer, ForeignKey("routes.id"), nullable=False, index=True)
    source_stop_id = Column(Integer, ForeignKey("stops.id"), nullable=False)
    destination_stop_id = Column(Integer, ForeignKey("stops.id"), nullable=False)

    number_of_seats = Column(Integer, nullable=False)
    total_amount = Column(Float, nullable=False)
    journey_date = Column(Date, nullable=False, index=True)
    status = Column(String(20), default="confirmed", nullable=False, index=True)
    qr_code_data = Column(String(100), nullable=True)

    created_at = Column(DateTime(timezone=True), default=get_ist_now, index=True)
    updated_at = Column(DateTime(timezone=True), default=get_ist_now, onupdate=get_ist_now)

    bus = relationship("Bus", back_populates="bookings")
    route = relationship("Route")
    source_stop = relationship("Stop", foreign_keys=[source_stop_id])
    destination_stop = relationship("Stop", foreign_keys=[destination_stop_id])

    def __repr__(self):
        return f"<Booking {self.booking_code} ({self.status})>"


class PassApplication(Base):
    """
    Application for a period bus pass.
    pending -> verification (mobile OTP confirmed) -> approved/rejected by an admin,
    approved -> issued once a Pass is created. Users may cancel while pending or in verification.
    """
    __tablename__ = "pass_applications"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String(100), nullable=False, index=True)

    name = Column(String(100), nullable=False)
    age = Column(Integer, nullable=False)
    gender = Column(String(10), nullable=False)
    category = Column(String(20), nullable=False)  # student, senior, regular, disabled
    mobile = Column(String(10), nullable=False)
    email = Column(String(255), nullable=False)
    address = Column(String(255), nullable=False)
    source = Column(String(100), nullable=False)
    destination = Column(String(100), nullable=False)
    validity_months = Column(Integer, nullable=False)

    # References handed out by the document storage service
    aadhaar_document = Column(String(255), nullable=False)
    photo = Column(String(255), nullable=True)

    status = Column(String(20), default="pending", nullable=False, index=True)
    mobile_verified = Column(Boolean, default=False, nullable=False)
    mobile_verified_at = Column(DateTime(timezone=True), nullable=True)
    admin_remarks = Column(String(500), nullable=True)
    rejection_reason = Column(String(500), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=get_ist_now, index=True)
    updated_at = Column(DateTime(timezone=True), default=get_ist_now, onupdate=get_ist_now)

    passes = relationship("Pass", back_populates="application")

    def __repr__(self):
        return f"<PassApplication {self.id} {self.user_id} ({self.status})>"


class Pass(Base):
    """
    Bus pass issued from an approved application.
    pass_number has the form PASS-YYYYMM-NNNN and doubles as the QR payload.
    """
    __tablename__ = "passes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    pass_number = Column(String(30), unique=True, nullable=False, index=True)
    user_id = Column(String(100), nullable=False, index=True)
    application_id = Column(Integer, ForeignKey("pass_applications.id"), nullable=False, index=True)

    name = Column(String(100), nullable=False)
    category = Column(String(20), nullable=False)
    source = Column(String(100), nullable=False)
    destination = Column(String(100), nullable=False)

    valid_from = Column(Date, nullable=False)
    valid_until = Column(Date, nullable=False)
    amount = Column(Float, nullable=False)

    status = Column(String(20), default="active", nullable=False, index=True)
    payment_status = Column(String(20), default="pending", nullable=False)
    renewal_count = Column(Integer, default=0, nullable=False)
    cancellation_reason = Column(String(500), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    qr_code_data = Column(String(100), nullable=True)

    created_at = Column(DateTime(timezone=True), default=get_ist_now, index=True)
    updated_at = Column(DateTime(timezone=True), default=get_ist_now, onupdate=get_ist_now)

    application = relationship("PassApplication", back_populates="passes")
    verifications = relationship(
        "PassVerification",
        back_populates="bus_pass",
        order_by="PassVerification.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Pass {self.pass_number} ({self.status})>"


class PassVerification(Base):
    """One check of a pass by staff in the field"""
    __tablename__ = "pass_verifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    pass_id = Column(Integer, ForeignKey("passes.id", ondelete="CASCADE"), nullable=False, index=True)
    verified_by = Column(String(50), nullable=False)
    location = Column(String(255), nullable=False)
    verified_at = Column(DateTime(timezone=True), default=get_ist_now, nullable=False)

    bus_pass = relationship("Pass", back_populates="verifications")
