# barbershop/deps.py

from datetime import datetime
from typing import Callable

from fastapi import Depends, HTTPException
from sqlmodel import Session

from barbershop.config import Settings, get_settings
from barbershop.db import get_session
from barbershop.notifications import NotificationService, build_email_sender
from barbershop.scheduling.availability import AvailabilityAggregator
from barbershop.scheduling.lifecycle import AppointmentLifecycle
from barbershop.store import CalendarStore

STAFF_ROLES = ("admin", "barber")


def require_role(user: dict, *roles: str):
    if user["role"] not in roles:
        raise HTTPException(status_code=403, detail="Forbidden")


def get_clock() -> Callable[[], datetime]:
    return datetime.now


def get_store(session: Session = Depends(get_session)) -> CalendarStore:
    return CalendarStore(session)


def get_notifier(
    store: CalendarStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> NotificationService:
    return NotificationService(store, settings, build_email_sender(settings), clock)


def get_lifecycle(
    store: CalendarStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    notifier: NotificationService = Depends(get_notifier),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> AppointmentLifecycle:
    return AppointmentLifecycle(store, settings, notifier, clock)


def get_availability(
    store: CalendarStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> AvailabilityAggregator:
    return AvailabilityAggregator(store, settings, clock)
