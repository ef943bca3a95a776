import smtplib
from datetime import date, datetime, time
from decimal import Decimal

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from barbershop.config import Settings
from barbershop.models import Appointment, AppointmentStatus, Service, User, UserRole, WorkingHours
from barbershop.notifications import EmailSender, NotificationService
from barbershop.schemas import PublicBookingCreate
from barbershop.scheduling.availability import AvailabilityAggregator
from barbershop.scheduling.lifecycle import AppointmentLifecycle
from barbershop.store import CalendarStore

# Monday 08:00
NOW = datetime(2030, 1, 7, 8, 0)
MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)
SUNDAY = date(2030, 1, 13)


def at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute))


class RecordingSender(EmailSender):
    def __init__(self):
        self.sent = []

    def send(self, recipient, subject, body):
        self.sent.append((recipient, subject, body))


class FailingSender(EmailSender):
    def send(self, recipient, subject, body):
        raise smtplib.SMTPException("connection refused")


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        min_advance_hours=1,
        max_days_ahead=30,
        client_cancel_hours=4,
        slot_minutes=15,
        business_name="Fade Factory",
        smtp_host=None,
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def store(session):
    return CalendarStore(session)


@pytest.fixture
def seed(session):
    bruno = User(name="Bruno", email="bruno@example.com", password_hash="x", role=UserRole.barber)
    carla = User(name="Carla", email="carla@example.com", password_hash="x", role=UserRole.barber)
    session.add(bruno)
    session.add(carla)
    session.commit()

    # Monday to Saturday, 09:00-18:00; nobody works on Sunday
    for barber in (bruno, carla):
        for day in range(6):
            session.add(WorkingHours(
                barber_id=barber.id, day_of_week=day, start_time=time(9, 0), end_time=time(18, 0),
            ))

    haircut = Service(name="Haircut", duration_minutes=30, buffer_minutes=0, price=Decimal("25.00"))
    beard = Service(name="Beard trim", duration_minutes=20, buffer_minutes=10, price=Decimal("15.00"))
    retired = Service(name="Hot towel", duration_minutes=15, price=Decimal("10.00"), active=False)
    for service in (haircut, beard, retired):
        session.add(service)
    session.commit()

    for obj in (bruno, carla, haircut, beard, retired):
        session.refresh(obj)
    return {"bruno": bruno, "carla": carla, "haircut": haircut, "beard": beard, "retired": retired}


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def notifier(store, settings, sender, clock):
    return NotificationService(store, settings, sender, clock)


@pytest.fixture
def lifecycle(store, settings, notifier, clock):
    return AppointmentLifecycle(store, settings, notifier, clock)


@pytest.fixture
def availability(store, settings, clock):
    return AvailabilityAggregator(store, settings, clock)


@pytest.fixture
def make_appointment(session):
    """Insert an appointment directly, skipping every booking rule."""

    def make(barber, service, start, status=AppointmentStatus.CONFIRMED, email="client@example.com"):
        appointment = Appointment(
            barber_id=barber.id,
            service_id=service.id,
            client_name="Dana",
            client_phone="5551234567",
            client_email=email,
            status=status,
            price_at_booking=service.price,
        )
        appointment.place(start, service)
        session.add(appointment)
        session.commit()
        session.refresh(appointment)
        return appointment

    return make


def booking_request(service, start, barber=None, **overrides):
    data = dict(
        service_id=service.id,
        barber_id=barber.id if barber is not None else None,
        start_time=start,
        client_name="Dana",
        client_phone="5551234567",
        client_email="dana@example.com",
    )
    data.update(overrides)
    return PublicBookingCreate(**data)


