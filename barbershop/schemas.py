# barbershop/schemas.py

from datetime import datetime, date, time
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from barbershop.models import AppointmentStatus, NotificationStatus, NotificationType, UserRole


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserPublic(BaseModel):
    id: int
    name: str
    email: str
    role: UserRole


class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: str
    password: str = Field(min_length=8, max_length=72)
    phone: Optional[str] = None
    role: UserRole = UserRole.barber


class BarberPublic(BaseModel):
    id: int
    name: str


# services

class ServiceCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    duration_minutes: int = Field(ge=15)
    buffer_minutes: int = Field(default=0, ge=0, le=60)
    price: Decimal = Field(ge=0)
    active: bool = True
    display_order: int = 0


class ServicePublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    duration_minutes: int
    buffer_minutes: int
    price: Decimal
    active: bool
    display_order: int


# calendar

class WorkingHoursIn(BaseModel):
    day_of_week: int = Field(ge=0, le=6)  # 0=Mon ... 6=Sun
    start_time: time
    end_time: time
    is_working: bool = True


class WorkingHoursPublic(WorkingHoursIn):
    model_config = ConfigDict(from_attributes=True)

    id: int
    barber_id: int


class BlockCreate(BaseModel):
    start_time: datetime
    end_time: datetime
    reason: str = Field(min_length=1, max_length=200)


class BlockPublic(BlockCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    barber_id: int


# availability

class TimeSlot(BaseModel):
    date_time: datetime
    time: time
    available: bool
    barber_id: int
    barber_name: str


class DayAvailability(BaseModel):
    date: date
    has_available_slots: bool


# appointments

class PublicBookingCreate(BaseModel):
    service_id: int
    barber_id: Optional[int] = None
    start_time: datetime
    client_name: str = Field(min_length=1, max_length=100)
    client_phone: str = Field(min_length=8, max_length=20)
    client_email: Optional[EmailStr] = None
    notes: Optional[str] = Field(default=None, max_length=500)


class AdminAppointmentCreate(BaseModel):
    service_id: int
    barber_id: int
    start_time: datetime
    client_name: str = Field(min_length=1, max_length=100)
    client_phone: str = Field(min_length=1, max_length=20)
    client_email: Optional[EmailStr] = None
    notes: Optional[str] = Field(default=None, max_length=500)
    status: Optional[AppointmentStatus] = None


class AppointmentUpdate(BaseModel):
    start_time: Optional[datetime] = None
    barber_id: Optional[int] = None
    status: Optional[AppointmentStatus] = None
    notes: Optional[str] = Field(default=None, max_length=500)


class RescheduleRequest(BaseModel):
    new_start_time: datetime
    new_barber_id: Optional[int] = None


class AppointmentPublic(BaseModel):
    """Full view, for the admin side."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    barber_id: int
    service_id: int
    client_name: str
    client_phone: str
    client_email: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus
    price_at_booking: Decimal
    notes: Optional[str] = None
    cancellation_token: str
    created_by_admin: bool
    created_at: datetime


class BookingPublic(BaseModel):
    """What a client sees through their cancellation token."""

    id: int
    barber_name: str
    service_name: str
    service_duration: int
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus
    price: Decimal
    cancellation_token: str
    can_cancel: bool
    can_reschedule: bool


class CalendarEvent(BaseModel):
    id: int
    title: str
    start: datetime
    end: datetime
    status: AppointmentStatus
    client_name: str
    client_phone: str
    service_name: str
    barber_name: str
    barber_id: int


class NotificationPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    appointment_id: int
    type: NotificationType
    channel: str
    recipient: str
    status: NotificationStatus
    error_message: Optional[str] = None
    sent_at: Optional[datetime] = None
    created_at: datetime
    retry_count: int


class ErrorResponse(BaseModel):
    code: str
    message: str
    timestamp: datetime
    errors: Optional[List[dict]] = None


# documented on the booking and admin appointment routes
ERROR_RESPONSES = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}
