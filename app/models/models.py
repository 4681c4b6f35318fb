# models.py
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

# ==========================
# Constants
# ==========================
MIN_BOOKING_DURATION_MINUTES = 1
MAX_BOOKING_DURATION_MINUTES = 1440

DEFAULT_HOURLY_RATE_NPR = 200
KHALTI_AMOUNT_UNIT = 100  # paisa per NPR

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 50

WALK_IN_MIN_MINUTES = 30
WALK_IN_MAX_MINUTES = 480
WALK_IN_DEFAULT_MINUTES = 60

BOOKING_STATUSES = ("pending", "confirmed", "active", "completed", "cancelled", "no-show")
BLOCKING_STATUSES = ("pending", "confirmed", "active")
PAID_STATUSES = ("confirmed", "active", "completed")
TERMINAL_STATUSES = ("completed", "cancelled", "no-show")
PORT_STATUSES = ("available", "occupied", "maintenance", "reserved")
WALK_IN_SOURCES = ("walk-in-manual", "walk-in-qr")
USER_ROLES = ("user", "admin", "superadmin")

BookingStatus = Literal["pending", "confirmed", "active", "completed", "cancelled", "no-show"]
PortStatus = Literal["available", "occupied", "maintenance", "reserved"]
Role = Literal["user", "admin", "superadmin"]
PaymentMethod = Literal["khalti", "cash", "other"]


class LatLng(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


# ==========================
# Auth / users
# ==========================
class RegisterBody(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    name: str = Field(..., min_length=1)
    phone: Optional[str] = None


class VehicleInfo(BaseModel):
    make: Optional[str] = None
    model: Optional[str] = None
    battery_capacity: Optional[float] = Field(None, ge=0)
    connector_type: Optional[str] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = None
    vehicle_info: Optional[VehicleInfo] = None


class RoleUpdate(BaseModel):
    role: Role


# ==========================
# Stations
# ==========================
class PortIn(BaseModel):
    port_number: str = Field(..., min_length=1)
    connector_type: str = Field(..., min_length=1)
    power_output: str = ""
    charger_type: str = ""
    status: PortStatus = "available"


class Coordinates(BaseModel):
    lat: float
    lng: float


class LocationIn(BaseModel):
    address: str
    coordinates: Coordinates
    city: str
    province: str = ""


class OperatingHours(BaseModel):
    open: str = "00:00"
    close: str = "23:59"


class Pricing(BaseModel):
    per_hour: float = 0


class StationIn(BaseModel):
    name: str = Field(..., min_length=1)
    location: LocationIn
    telephone: str = ""
    vehicle_types: List[str] = []
    operating_hours: OperatingHours = OperatingHours()
    charging_ports: List[PortIn] = []
    pricing: Pricing = Pricing()
    amenities: List[str] = []
    photos: List[str] = []
    description: str = ""


class StationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    location: Optional[LocationIn] = None
    telephone: Optional[str] = None
    vehicle_types: Optional[List[str]] = None
    operating_hours: Optional[OperatingHours] = None
    charging_ports: Optional[List[PortIn]] = None
    pricing: Optional[Pricing] = None
    amenities: Optional[List[str]] = None
    photos: Optional[List[str]] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class PortStatusUpdate(BaseModel):
    port_id: str = ""
    status: str = ""


class RouteQuery(BaseModel):
    coordinates: List[List[float]]  # [lng, lat]
    corridor_km: float = Field(5, gt=0, le=100)


class ReviewIn(BaseModel):
    booking_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""


# ==========================
# Bookings / payments
# ==========================
class AvailabilityQuery(BaseModel):
    station_id: str = ""
    port_id: str = ""
    start_time: Optional[datetime] = None
    estimated_duration: Optional[int] = None


class InitiatePaymentBody(AvailabilityQuery):
    user_location: Optional[LatLng] = None


class VerifyPaymentBody(BaseModel):
    pidx: str = ""
    booking_id: str = ""


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


class LocationBody(BaseModel):
    lat: Optional[float] = None
    lng: Optional[float] = None
    user_location: Optional[LatLng] = None

    def point(self) -> Optional[LatLng]:
        if self.user_location is not None:
            return self.user_location
        if self.lat is None or self.lng is None:
            return None
        if not (-90 <= self.lat <= 90 and -180 <= self.lng <= 180):
            return None
        return LatLng(lat=self.lat, lng=self.lng)


# ==========================
# Walk-in
# ==========================
class WalkInCheckin(BaseModel):
    station_id: str = ""
    port_id: str = ""
    customer_name: str = ""
    customer_phone: str = ""
    vehicle_number: str = ""
    vehicle_type: str = ""
    estimated_duration: Optional[int] = None


class AdminWalkInBody(BaseModel):
    action: Literal["start", "stop", "log"] = "log"
    station_id: str = ""
    port_id: str = ""
    booking_id: str = ""
    customer_name: str = ""
    customer_phone: str = ""
    vehicle_number: str = ""
    vehicle_type: str = ""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    amount_paid: float = Field(0, ge=0)
    payment_method: PaymentMethod = "cash"
    notes: str = ""
