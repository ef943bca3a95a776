# barbershop/scheduling/audit.py

from datetime import datetime
from typing import Optional

from barbershop.models import Appointment, AppointmentAudit, AppointmentStatus
from barbershop.store import CalendarStore

CREATED = "CREATED"
UPDATED = "UPDATED"
CANCELLED_BY_CLIENT = "CANCELLED_BY_CLIENT"
CANCELLED_BY_ADMIN = "CANCELLED_BY_ADMIN"
RESCHEDULED = "RESCHEDULED"

CLIENT_ACTOR = "client"


def status_changed_to(status: AppointmentStatus) -> str:
    return f"STATUS_CHANGED_TO_{status.value}"


def capture_state(appointment: Appointment) -> dict:
    return {
        "status": appointment.status.value,
        "start_time": appointment.start_time.isoformat(),
        "end_time": appointment.end_time.isoformat(),
        "barber_id": appointment.barber_id,
        "notes": appointment.notes,
    }


def record(
    store: CalendarStore,
    appointment: Appointment,
    action: str,
    actor: str,
    before: Optional[dict],
    now: datetime,
) -> AppointmentAudit:
    # written in the same transaction as the change it documents
    audit = AppointmentAudit(
        appointment_id=appointment.id,
        action=action,
        performed_by=actor,
        performed_at=now,
        before_state=before,
        after_state=capture_state(appointment),
    )
    store.save_audit(audit)
    return audit
