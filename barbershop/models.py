# barbershop/models.py

from datetime import datetime, timedelta, time
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import UniqueConstraint
from sqlalchemy.types import JSON
from sqlmodel import SQLModel, Field, Column


class UserRole(str, Enum):
    admin = "admin"
    barber = "barber"


class AppointmentStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    CANCELLED_BY_CLIENT = "CANCELLED_BY_CLIENT"
    CANCELLED_BY_ADMIN = "CANCELLED_BY_ADMIN"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"


ACTIVE_STATUSES = (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED)


class NotificationType(str, Enum):
    CONFIRMATION = "CONFIRMATION"
    REMINDER_24H = "REMINDER_24H"
    REMINDER_2H = "REMINDER_2H"
    CANCELLATION = "CANCELLATION"
    RESCHEDULE = "RESCHEDULE"


class NotificationStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


def overlaps(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> bool:
    # half-open intervals: touching endpoints do not overlap
    return start1 < end2 and end1 > start2


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(index=True, unique=True)
    password_hash: str
    phone: Optional[str] = None
    role: UserRole = UserRole.barber
    active: bool = True

    def is_barber(self) -> bool:
        return self.role in (UserRole.barber, UserRole.admin)


class Service(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    duration_minutes: int
    buffer_minutes: int = 0
    price: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    active: bool = True
    display_order: int = 0

    @property
    def total_duration(self) -> timedelta:
        return timedelta(minutes=self.duration_minutes + self.buffer_minutes)


class WorkingHours(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("barber_id", "day_of_week", name="uq_barber_day"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    barber_id: int = Field(foreign_key="user.id", index=True)
    day_of_week: int  # 0=Mon ... 6=Sun, same as date.weekday()
    start_time: time
    end_time: time
    is_working: bool = True


class TimeBlock(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    barber_id: int = Field(foreign_key="user.id", index=True)
    start_time: datetime = Field(index=True)
    end_time: datetime
    reason: str

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return overlaps(self.start_time, self.end_time, start, end)


class Appointment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    barber_id: int = Field(foreign_key="user.id", index=True)
    service_id: int = Field(foreign_key="service.id")

    client_name: str
    client_phone: str = Field(index=True)
    client_email: Optional[str] = None

    start_time: datetime = Field(index=True)
    end_time: datetime
    status: AppointmentStatus = Field(default=AppointmentStatus.CONFIRMED, index=True)
    price_at_booking: Decimal = Field(max_digits=10, decimal_places=2)
    notes: Optional[str] = None
    cancellation_token: str = Field(default_factory=lambda: str(uuid4()), unique=True, index=True)
    created_by_admin: bool = False
    created_at: datetime = Field(default_factory=datetime.now)

    def place(self, start: datetime, service: Service):
        # the only way start/end change: end always follows the service length
        self.start_time = start
        self.end_time = start + service.total_duration

    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def can_be_changed_by_client(self, now: datetime, lead_hours: int) -> bool:
        return self.start_time - now > timedelta(hours=lead_hours)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return overlaps(self.start_time, self.end_time, start, end)


class AppointmentAudit(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    appointment_id: int = Field(foreign_key="appointment.id", index=True)
    action: str
    performed_by: str
    performed_at: datetime
    before_state: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    after_state: Optional[dict] = Field(default=None, sa_column=Column(JSON))


class NotificationLog(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    appointment_id: int = Field(foreign_key="appointment.id", index=True)
    type: NotificationType
    channel: str
    recipient: str
    content: str
    status: NotificationStatus = Field(default=NotificationStatus.PENDING, index=True)
    error_message: Optional[str] = None
    sent_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.now)
    retry_count: int = 0

    def mark_as_sent(self, now: datetime):
        self.status = NotificationStatus.SENT
        self.sent_at = now

    def mark_as_failed(self, error: str):
        self.status = NotificationStatus.FAILED
        self.error_message = error
        self.retry_count += 1
