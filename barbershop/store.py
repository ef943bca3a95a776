# barbershop/store.py

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, List, Optional

from sqlmodel import Session, select, col

from barbershop.errors import NotFoundError, BusinessRuleError
from barbershop.models import (
    ACTIVE_STATUSES,
    Appointment,
    AppointmentAudit,
    NotificationLog,
    NotificationStatus,
    NotificationType,
    Service,
    TimeBlock,
    User,
    UserRole,
    WorkingHours,
)

logger = logging.getLogger(__name__)


class CalendarStore:
    """Database access for the scheduling engine.

    Everything the engine reads or writes goes through here, so the engine
    never touches a Session directly. Writes are only flushed; `atomic()`
    owns the commit.
    """

    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def atomic(self):
        try:
            yield
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def lock_barbers(self, *barber_ids: int):
        # row locks in id order; no-op on SQLite, which serialises writers anyway
        ids = sorted({b for b in barber_ids if b is not None})
        self.session.exec(
            select(User).where(col(User.id).in_(ids)).order_by(User.id).with_for_update()
        ).all()

    # services / barbers

    def get_service(self, service_id: int) -> Service:
        service = self.session.get(Service, service_id)
        if service is None:
            raise NotFoundError("Service", "id", service_id)
        return service

    def list_services(self, only_active: bool = False) -> List[Service]:
        stmt = select(Service)
        if only_active:
            stmt = stmt.where(Service.active == True)  # noqa: E712
        return list(self.session.exec(stmt.order_by(Service.display_order, Service.id)).all())

    def get_barber(self, barber_id: int) -> User:
        user = self.session.get(User, barber_id)
        if user is None:
            raise NotFoundError("Barber", "id", barber_id)
        if not user.active or not user.is_barber():
            raise BusinessRuleError("NOT_A_BARBER", f"User {barber_id} is not an active barber")
        return user

    def save_service(self, service: Service) -> Service:
        self.session.add(service)
        self.session.flush()
        return service

    def get_user(self, user_id: int) -> Optional[User]:
        return self.session.get(User, user_id)

    def active_barbers(self) -> List[User]:
        return list(self.session.exec(
            select(User)
            .where(User.active == True)  # noqa: E712
            .where(col(User.role).in_([UserRole.barber, UserRole.admin]))
            .order_by(User.id)
        ).all())

    # calendar

    def working_hours(self, barber_id: int, day_of_week: int) -> Optional[WorkingHours]:
        return self.session.exec(
            select(WorkingHours)
            .where(WorkingHours.barber_id == barber_id)
            .where(WorkingHours.day_of_week == day_of_week)
        ).first()

    def week_for_barber(self, barber_id: int) -> List[WorkingHours]:
        return list(self.session.exec(
            select(WorkingHours)
            .where(WorkingHours.barber_id == barber_id)
            .order_by(WorkingHours.day_of_week)
        ).all())

    def replace_week(self, barber_id: int, rows: Iterable[WorkingHours]) -> List[WorkingHours]:
        for existing in self.week_for_barber(barber_id):
            self.session.delete(existing)
        self.session.flush()
        for row in rows:
            row.barber_id = barber_id
            self.session.add(row)
        self.session.flush()
        return self.week_for_barber(barber_id)

    def overlapping_appointments(
        self,
        barber_id: int,
        start: datetime,
        end: datetime,
        exclude_id: Optional[int] = None,
    ) -> List[Appointment]:
        stmt = (
            select(Appointment)
            .where(Appointment.barber_id == barber_id)
            .where(col(Appointment.status).in_(ACTIVE_STATUSES))
            .where(Appointment.start_time < end)
            .where(Appointment.end_time > start)
        )
        if exclude_id is not None:
            stmt = stmt.where(Appointment.id != exclude_id)
        return list(self.session.exec(stmt).all())

    def overlapping_blocks(self, barber_id: int, start: datetime, end: datetime) -> List[TimeBlock]:
        return list(self.session.exec(
            select(TimeBlock)
            .where(TimeBlock.barber_id == barber_id)
            .where(TimeBlock.start_time < end)
            .where(TimeBlock.end_time > start)
        ).all())

    def blocks_for_barber(self, barber_id: int) -> List[TimeBlock]:
        return list(self.session.exec(
            select(TimeBlock).where(TimeBlock.barber_id == barber_id).order_by(TimeBlock.start_time)
        ).all())

    def add_block(self, block: TimeBlock) -> TimeBlock:
        self.session.add(block)
        self.session.flush()
        return block

    def delete_block(self, barber_id: int, block_id: int):
        block = self.session.get(TimeBlock, block_id)
        if block is None or block.barber_id != barber_id:
            raise NotFoundError("TimeBlock", "id", block_id)
        self.session.delete(block)
        self.session.flush()

    # appointments

    # for_update: lock the row and reload it even if the session already holds a copy

    def get_appointment(self, appointment_id: int, for_update: bool = False) -> Appointment:
        if for_update:
            appointment = self.session.get(
                Appointment, appointment_id, with_for_update=True, populate_existing=True
            )
        else:
            appointment = self.session.get(Appointment, appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment", "id", appointment_id)
        return appointment

    def find_by_token(self, token: str, for_update: bool = False) -> Appointment:
        stmt = select(Appointment).where(Appointment.cancellation_token == token)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        appointment = self.session.exec(stmt).first()
        if appointment is None:
            raise NotFoundError("Appointment", "token", token)
        return appointment

    def save_appointment(self, appointment: Appointment) -> Appointment:
        self.session.add(appointment)
        self.session.flush()  # assigns id
        return appointment

    def refresh(self, obj):
        self.session.refresh(obj)
        return obj

    def save_audit(self, audit: AppointmentAudit):
        self.session.add(audit)
        self.session.flush()

    def audits_for(self, appointment_id: int) -> List[AppointmentAudit]:
        return list(self.session.exec(
            select(AppointmentAudit)
            .where(AppointmentAudit.appointment_id == appointment_id)
            .order_by(AppointmentAudit.id)
        ).all())

    def appointments_in_range(
        self, start: datetime, end: datetime, barber_id: Optional[int] = None
    ) -> List[Appointment]:
        stmt = (
            select(Appointment)
            .where(Appointment.start_time >= start)
            .where(Appointment.start_time < end)
        )
        if barber_id is not None:
            stmt = stmt.where(Appointment.barber_id == barber_id)
        return list(self.session.exec(stmt.order_by(Appointment.start_time)).all())

    def upcoming_for_barber(self, barber_id: int, now: datetime) -> List[Appointment]:
        return list(self.session.exec(
            select(Appointment)
            .where(Appointment.barber_id == barber_id)
            .where(col(Appointment.status).in_(ACTIVE_STATUSES))
            .where(Appointment.start_time >= now)
            .order_by(Appointment.start_time)
        ).all())

    def appointments_for_reminder(self, start: datetime, end: datetime) -> List[Appointment]:
        return list(self.session.exec(
            select(Appointment)
            .where(col(Appointment.status).in_(ACTIVE_STATUSES))
            .where(Appointment.start_time >= start)
            .where(Appointment.start_time <= end)
            .order_by(Appointment.start_time)
        ).all())

    # notifications

    def save_notification(self, notification: NotificationLog) -> NotificationLog:
        # own transaction: runs after the appointment change has committed
        with self.atomic():
            self.session.add(notification)
        self.session.refresh(notification)
        return notification

    def get_notification(self, notification_id: int) -> NotificationLog:
        notification = self.session.get(NotificationLog, notification_id)
        if notification is None:
            raise NotFoundError("Notification", "id", notification_id)
        return notification

    def notifications_for(self, appointment_id: int) -> List[NotificationLog]:
        return list(self.session.exec(
            select(NotificationLog)
            .where(NotificationLog.appointment_id == appointment_id)
            .order_by(NotificationLog.id)
        ).all())

    def has_notification(self, appointment_id: int, type: NotificationType) -> bool:
        return self.session.exec(
            select(NotificationLog)
            .where(NotificationLog.appointment_id == appointment_id)
            .where(NotificationLog.type == type)
            .where(col(NotificationLog.status).in_([NotificationStatus.SENT, NotificationStatus.PENDING]))
        ).first() is not None
