# barbershop/reminders.py

import logging
from datetime import datetime, timedelta
from typing import Callable

from barbershop.config import Settings
from barbershop.models import NotificationStatus, NotificationType
from barbershop.notifications import NotificationService
from barbershop.store import CalendarStore

logger = logging.getLogger(__name__)

# (type, window start, window end) relative to now; the sweep runs every 15 minutes
REMINDER_WINDOWS = (
    (NotificationType.REMINDER_24H, timedelta(hours=23, minutes=45), timedelta(hours=24, minutes=15)),
    (NotificationType.REMINDER_2H, timedelta(hours=1, minutes=45), timedelta(hours=2, minutes=15)),
)


class ReminderSweep:
    """Sends reminder emails for upcoming appointments, once per type.

    Only reads appointments. Running it on a timer is up to the caller
    (cron, a worker); see `python -m barbershop.reminders`.
    """

    def __init__(
        self,
        store: CalendarStore,
        settings: Settings,
        notifier: NotificationService,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.settings = settings
        self.notifier = notifier
        self.clock = clock

    def run(self) -> int:
        logger.debug("Running reminder sweep")
        enabled = {
            NotificationType.REMINDER_24H: self.settings.reminder_24h_enabled,
            NotificationType.REMINDER_2H: self.settings.reminder_2h_enabled,
        }
        now = self.clock()
        sent = 0
        for type, window_start, window_end in REMINDER_WINDOWS:
            if enabled[type]:
                sent += self._send(type, now + window_start, now + window_end)
        return sent

    def _send(self, type: NotificationType, start: datetime, end: datetime) -> int:
        appointments = self.store.appointments_for_reminder(start, end)
        logger.debug("Found %d appointments for %s", len(appointments), type.value)

        sent = 0
        for appointment in appointments:
            if self.notifier.has_sent(appointment.id, type):
                continue
            try:
                notification = self.notifier.send(appointment, type)
                if notification is not None and notification.status == NotificationStatus.SENT:
                    sent += 1
                    logger.info("Sent %s for appointment %s", type.value, appointment.id)
            except Exception:
                logger.exception("Failed to send %s for appointment %s", type.value, appointment.id)
        return sent


def main():
    from sqlmodel import Session

    from barbershop.config import get_settings
    from barbershop.db import engine
    from barbershop.notifications import build_email_sender

    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    with Session(engine) as session:
        store = CalendarStore(session)
        notifier = NotificationService(store, settings, build_email_sender(settings))
        count = ReminderSweep(store, settings, notifier).run()
    logger.info("Reminder sweep sent %d reminders", count)


if __name__ == "__main__":
    main()
