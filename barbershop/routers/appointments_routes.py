# barbershop/routers/appointments_routes.py

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends

from barbershop.auth import get_current_user
from barbershop.deps import STAFF_ROLES, get_lifecycle, get_notifier, get_store, require_role
from barbershop.notifications import NotificationService
from barbershop.schemas import (
    ERROR_RESPONSES,
    AdminAppointmentCreate,
    AppointmentPublic,
    AppointmentUpdate,
    CalendarEvent,
    NotificationPublic,
)
from barbershop.scheduling.lifecycle import AppointmentLifecycle
from barbershop.store import CalendarStore

router = APIRouter(
    prefix="/admin/appointments",
    tags=["appointments"],
    responses=ERROR_RESPONSES,
)


@router.get("", response_model=List[CalendarEvent])
def list_appointments(
    start_date: date,
    end_date: date,
    barber_id: Optional[int] = None,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, *STAFF_ROLES)
    return lifecycle.calendar_events(start_date, end_date, barber_id)


@router.get("/upcoming", response_model=List[AppointmentPublic])
def upcoming_appointments(
    barber_id: Optional[int] = None,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, *STAFF_ROLES)
    # defaults to the calling barber's own agenda
    return lifecycle.upcoming(barber_id if barber_id is not None else current_user["id"])


@router.post("", response_model=AppointmentPublic, status_code=201)
def create_appointment(
    request: AdminAppointmentCreate,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, *STAFF_ROLES)
    return lifecycle.create_admin(request, current_user["email"])


@router.get("/{appointment_id}", response_model=AppointmentPublic)
def get_appointment(
    appointment_id: int,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, *STAFF_ROLES)
    return lifecycle.find_by_id(appointment_id)


@router.put("/{appointment_id}", response_model=AppointmentPublic)
def update_appointment(
    appointment_id: int,
    request: AppointmentUpdate,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, *STAFF_ROLES)
    return lifecycle.update(appointment_id, request, current_user["email"])


@router.post("/{appointment_id}/cancel", response_model=AppointmentPublic)
def cancel_appointment(
    appointment_id: int,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, *STAFF_ROLES)
    return lifecycle.cancel_by_admin(appointment_id, current_user["email"])


@router.post("/{appointment_id}/complete", response_model=AppointmentPublic)
def complete_appointment(
    appointment_id: int,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, *STAFF_ROLES)
    return lifecycle.mark_completed(appointment_id, current_user["email"])


@router.post("/{appointment_id}/no-show", response_model=AppointmentPublic)
def no_show_appointment(
    appointment_id: int,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, *STAFF_ROLES)
    return lifecycle.mark_no_show(appointment_id, current_user["email"])


@router.get("/{appointment_id}/notifications", response_model=List[NotificationPublic])
def appointment_notifications(
    appointment_id: int,
    store: CalendarStore = Depends(get_store),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, *STAFF_ROLES)
    store.get_appointment(appointment_id)
    return store.notifications_for(appointment_id)


@router.post("/notifications/{notification_id}/resend", response_model=NotificationPublic)
def resend_notification(
    notification_id: int,
    notifier: NotificationService = Depends(get_notifier),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, *STAFF_ROLES)
    return notifier.resend(notification_id)
