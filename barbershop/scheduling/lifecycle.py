"""
Appointment lifecycle.

SCHEDULED and CONFIRMED are active; CANCELLED_BY_CLIENT, CANCELLED_BY_ADMIN,
COMPLETED and NO_SHOW are terminal. Every mutation runs in one transaction
together with its audit row: the appointment row is locked and re-read,
then the barber rows; guards, rules and conflicts are checked against that
fresh state, the appointment and its audit are written, then commit. The
client email goes out only after the commit and can never undo it.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional

from barbershop.config import Settings
from barbershop.errors import BusinessRuleError
from barbershop.models import ACTIVE_STATUSES, Appointment, AppointmentStatus, NotificationType
from barbershop.notifications import NotificationService
from barbershop.schemas import (
    AdminAppointmentCreate,
    AppointmentUpdate,
    BookingPublic,
    CalendarEvent,
    PublicBookingCreate,
)
from barbershop.scheduling import audit
from barbershop.scheduling.assignment import BarberAutoAssigner
from barbershop.scheduling.overlap import ConflictDetector
from barbershop.scheduling.policy import BookingPolicy
from barbershop.store import CalendarStore

logger = logging.getLogger(__name__)


class AppointmentLifecycle:

    def __init__(
        self,
        store: CalendarStore,
        settings: Settings,
        notifier: Optional[NotificationService] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.settings = settings
        self.notifier = notifier
        self.clock = clock
        self.policy = BookingPolicy(store, settings, clock)
        self.conflicts = ConflictDetector(store)
        self.assigner = BarberAutoAssigner(self.policy, self.conflicts)

    # creation

    def create_public(self, request: PublicBookingCreate) -> Appointment:
        logger.info("Creating public appointment for client: %s", request.client_name)
        now = self.clock()
        start = request.start_time

        with self.store.atomic():
            # 1) Validate service
            service = self.store.get_service(request.service_id)
            if not service.active:
                raise BusinessRuleError("SERVICE_INACTIVE", "Service is not active")

            # 2) Pick the barber, checking timing rules and conflicts
            if request.barber_id is not None:
                barber = self.store.get_barber(request.barber_id)
                self.store.lock_barbers(barber.id)
                self.policy.ensure_valid(start, barber.id, service)
                self.conflicts.ensure_free(barber.id, start, start + service.total_duration)
            else:
                barbers = self.store.active_barbers()
                if not barbers:
                    raise BusinessRuleError("NO_BARBER", "There are no barbers available")
                self.store.lock_barbers(*[b.id for b in barbers])
                barber = self.assigner.assign(barbers, start, service)

            # 3) Create and save appointment
            appointment = Appointment(
                barber_id=barber.id,
                service_id=service.id,
                client_name=request.client_name,
                client_phone=request.client_phone,
                client_email=request.client_email,
                status=AppointmentStatus.CONFIRMED,
                price_at_booking=service.price,
                notes=request.notes,
                created_by_admin=False,
                created_at=now,
            )
            appointment.place(start, service)
            self.store.save_appointment(appointment)
            audit.record(self.store, appointment, audit.CREATED, audit.CLIENT_ACTOR, None, now)

        self._notify(appointment, NotificationType.CONFIRMATION)
        self.store.refresh(appointment)
        logger.info("Public appointment created with id: %s", appointment.id)
        return appointment

    def create_admin(self, request: AdminAppointmentCreate, actor: str) -> Appointment:
        logger.info("Creating admin appointment by: %s", actor)
        now = self.clock()
        start = request.start_time

        with self.store.atomic():
            service = self.store.get_service(request.service_id)
            barber = self.store.get_barber(request.barber_id)
            self.store.lock_barbers(barber.id)

            # admins may book outside the public timing rules, never over a conflict
            self.conflicts.ensure_free(barber.id, start, start + service.total_duration)

            appointment = Appointment(
                barber_id=barber.id,
                service_id=service.id,
                client_name=request.client_name,
                client_phone=request.client_phone,
                client_email=request.client_email,
                status=request.status or AppointmentStatus.CONFIRMED,
                price_at_booking=service.price,
                notes=request.notes,
                created_by_admin=True,
                created_at=now,
            )
            appointment.place(start, service)
            self.store.save_appointment(appointment)
            audit.record(self.store, appointment, audit.CREATED, actor, None, now)

        self._notify(appointment, NotificationType.CONFIRMATION)
        self.store.refresh(appointment)
        logger.info("Admin appointment created with id: %s", appointment.id)
        return appointment

    # admin changes

    def update(self, appointment_id: int, request: AppointmentUpdate, actor: str) -> Appointment:
        logger.info("Updating appointment: %s by: %s", appointment_id, actor)
        now = self.clock()

        with self.store.atomic():
            # 1) Lock the appointment and read its committed state
            appointment = self.store.get_appointment(appointment_id, for_update=True)
            before = audit.capture_state(appointment)

            barber_id = request.barber_id if request.barber_id is not None else appointment.barber_id
            start = request.start_time if request.start_time is not None else appointment.start_time
            status = request.status if request.status is not None else appointment.status
            moved = start != appointment.start_time or barber_id != appointment.barber_id
            reactivated = not appointment.is_active() and status in ACTIVE_STATUSES

            # 2) Lock the barbers involved
            if barber_id != appointment.barber_id:
                self.store.get_barber(barber_id)
            self.store.lock_barbers(appointment.barber_id, barber_id)

            # 3) An appointment that ends up active must not overlap another one
            service = self.store.get_service(appointment.service_id)
            if status in ACTIVE_STATUSES and (moved or reactivated):
                self.conflicts.ensure_free(
                    barber_id, start, start + service.total_duration, exclude_id=appointment.id
                )

            # 4) Apply and audit
            if moved:
                appointment.barber_id = barber_id
                appointment.place(start, service)
            appointment.status = status
            if request.notes is not None:
                appointment.notes = request.notes

            self.store.save_appointment(appointment)
            audit.record(self.store, appointment, audit.UPDATED, actor, before, now)

        self.store.refresh(appointment)
        logger.info("Appointment updated: %s", appointment_id)
        return appointment

    def cancel_by_admin(self, appointment_id: int, actor: str) -> Appointment:
        logger.info("Admin %s cancelling appointment: %s", actor, appointment_id)
        now = self.clock()

        with self.store.atomic():
            appointment = self.store.get_appointment(appointment_id, for_update=True)
            self.store.lock_barbers(appointment.barber_id)
            self._ensure_not_cancelled(appointment)

            before = audit.capture_state(appointment)
            appointment.status = AppointmentStatus.CANCELLED_BY_ADMIN
            self.store.save_appointment(appointment)
            audit.record(self.store, appointment, audit.CANCELLED_BY_ADMIN, actor, before, now)

        self._notify(appointment, NotificationType.CANCELLATION)
        self.store.refresh(appointment)
        logger.info("Appointment cancelled by admin: %s", appointment_id)
        return appointment

    def update_status(self, appointment_id: int, status: AppointmentStatus, actor: str) -> Appointment:
        now = self.clock()

        with self.store.atomic():
            appointment = self.store.get_appointment(appointment_id, for_update=True)
            self.store.lock_barbers(appointment.barber_id)
            if not appointment.is_active():
                raise BusinessRuleError(
                    "INVALID_STATUS",
                    f"Appointment is already {appointment.status.value} and cannot change status",
                )

            before = audit.capture_state(appointment)
            appointment.status = status
            self.store.save_appointment(appointment)
            audit.record(self.store, appointment, audit.status_changed_to(status), actor, before, now)

        self.store.refresh(appointment)
        logger.info("Appointment %s status changed to %s by %s", appointment_id, status.value, actor)
        return appointment

    def mark_completed(self, appointment_id: int, actor: str) -> Appointment:
        return self.update_status(appointment_id, AppointmentStatus.COMPLETED, actor)

    def mark_no_show(self, appointment_id: int, actor: str) -> Appointment:
        return self.update_status(appointment_id, AppointmentStatus.NO_SHOW, actor)

    # client self-service, by cancellation token

    def cancel_by_client(self, token: str) -> Appointment:
        logger.info("Client cancelling appointment with token: %s", token)
        now = self.clock()
        lead_hours = self.settings.client_cancel_hours

        with self.store.atomic():
            appointment = self.store.find_by_token(token, for_update=True)
            self.store.lock_barbers(appointment.barber_id)
            self._ensure_not_cancelled(appointment)
            if not appointment.can_be_changed_by_client(now, lead_hours):
                raise BusinessRuleError(
                    "CANCELLATION_DEADLINE",
                    f"Cancellation is allowed up to {lead_hours} hours before the appointment",
                )

            before = audit.capture_state(appointment)
            appointment.status = AppointmentStatus.CANCELLED_BY_CLIENT
            self.store.save_appointment(appointment)
            audit.record(self.store, appointment, audit.CANCELLED_BY_CLIENT, audit.CLIENT_ACTOR, before, now)

        self._notify(appointment, NotificationType.CANCELLATION)
        self.store.refresh(appointment)
        logger.info("Appointment cancelled by client: %s", appointment.id)
        return appointment

    def reschedule(self, token: str, new_start: datetime, new_barber_id: Optional[int] = None) -> Appointment:
        logger.info("Client rescheduling appointment with token: %s", token)
        now = self.clock()
        lead_hours = self.settings.client_cancel_hours

        with self.store.atomic():
            appointment = self.store.find_by_token(token, for_update=True)
            if not appointment.is_active():
                raise BusinessRuleError("INVALID_STATUS", "Appointment can no longer be rescheduled")
            if not appointment.can_be_changed_by_client(now, lead_hours):
                raise BusinessRuleError(
                    "RESCHEDULE_DEADLINE",
                    f"Rescheduling is allowed up to {lead_hours} hours before the appointment",
                )

            barber_id = new_barber_id if new_barber_id is not None else appointment.barber_id
            if barber_id != appointment.barber_id:
                self.store.get_barber(barber_id)
            self.store.lock_barbers(appointment.barber_id, barber_id)

            service = self.store.get_service(appointment.service_id)
            self.policy.ensure_valid(new_start, barber_id, service)
            self.conflicts.ensure_free(
                barber_id, new_start, new_start + service.total_duration, exclude_id=appointment.id
            )

            before = audit.capture_state(appointment)
            appointment.barber_id = barber_id
            appointment.place(new_start, service)
            self.store.save_appointment(appointment)
            audit.record(self.store, appointment, audit.RESCHEDULED, audit.CLIENT_ACTOR, before, now)

        self._notify(appointment, NotificationType.RESCHEDULE)
        self.store.refresh(appointment)
        logger.info("Appointment rescheduled by client: %s", appointment.id)
        return appointment

    # read paths

    def find_by_id(self, appointment_id: int) -> Appointment:
        return self.store.get_appointment(appointment_id)

    def find_by_token(self, token: str) -> Appointment:
        return self.store.find_by_token(token)

    def public_view(self, appointment: Appointment) -> BookingPublic:
        service = self.store.get_service(appointment.service_id)
        barber = self.store.get_user(appointment.barber_id)
        changeable = appointment.is_active() and appointment.can_be_changed_by_client(
            self.clock(), self.settings.client_cancel_hours
        )
        return BookingPublic(
            id=appointment.id,
            barber_name=barber.name if barber else "",
            service_name=service.name,
            service_duration=service.duration_minutes,
            start_time=appointment.start_time,
            end_time=appointment.end_time,
            status=appointment.status,
            price=appointment.price_at_booking,
            cancellation_token=appointment.cancellation_token,
            can_cancel=changeable,
            can_reschedule=changeable,
        )

    def calendar_events(self, start_date: date, end_date: date, barber_id: Optional[int] = None) -> List[CalendarEvent]:
        start = datetime.combine(start_date, datetime.min.time())
        end = datetime.combine(end_date + timedelta(days=1), datetime.min.time())

        events = []
        for appointment in self.store.appointments_in_range(start, end, barber_id):
            service = self.store.get_service(appointment.service_id)
            barber = self.store.get_user(appointment.barber_id)
            events.append(CalendarEvent(
                id=appointment.id,
                title=f"{appointment.client_name} - {service.name}",
                start=appointment.start_time,
                end=appointment.end_time,
                status=appointment.status,
                client_name=appointment.client_name,
                client_phone=appointment.client_phone,
                service_name=service.name,
                barber_name=barber.name if barber else "",
                barber_id=appointment.barber_id,
            ))
        return events

    def upcoming(self, barber_id: int) -> List[Appointment]:
        return self.store.upcoming_for_barber(barber_id, self.clock())

    def _ensure_not_cancelled(self, appointment: Appointment):
        if not appointment.is_active():
            raise BusinessRuleError("ALREADY_CANCELLED", "Appointment was already cancelled or finished")

    def _notify(self, appointment: Appointment, type: NotificationType):
        if self.notifier is None:
            return
        try:
            self.notifier.send(appointment, type)
        except Exception:
            # the appointment change is already committed; a failed email must not undo it
            logger.exception("Could not send %s notification for appointment %s", type.value, appointment.id)
