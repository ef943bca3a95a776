"""
Booking timing rules.

Checked in order, first failure wins:

1. MIN_ADVANCE_TIME       start >= now + min_advance_hours
2. MAX_DAYS_AHEAD         start.date() <= today + max_days_ahead
3. NOT_WORKING_DAY        barber has a working row for that weekday with is_working
4. OUTSIDE_WORKING_HOURS  start and start + total duration inside the working window,
                          on the same calendar day
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from barbershop.config import Settings
from barbershop.errors import BusinessRuleError
from barbershop.models import Service
from barbershop.store import CalendarStore


@dataclass(frozen=True)
class PolicyRejection:
    code: str
    message: str


class BookingPolicy:

    def __init__(self, store: CalendarStore, settings: Settings, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.settings = settings
        self.clock = clock

    def validate(self, start: datetime, barber_id: int, service: Service) -> Optional[PolicyRejection]:
        now = self.clock()
        min_advance = self.settings.min_advance_hours
        max_days = self.settings.max_days_ahead

        if start < now + timedelta(hours=min_advance):
            return PolicyRejection(
                "MIN_ADVANCE_TIME",
                f"Bookings must be made at least {min_advance} hour(s) in advance",
            )

        if start.date() > now.date() + timedelta(days=max_days):
            return PolicyRejection(
                "MAX_DAYS_AHEAD",
                f"Bookings are allowed up to {max_days} days ahead",
            )

        hours = self.store.working_hours(barber_id, start.weekday())
        if hours is None or not hours.is_working:
            return PolicyRejection("NOT_WORKING_DAY", "Barber does not work on this day")

        end = start + service.total_duration
        # a booking may not run past midnight, even if the clock time would fit
        if start.time() < hours.start_time or end.date() != start.date() or end.time() > hours.end_time:
            return PolicyRejection("OUTSIDE_WORKING_HOURS", "Time is outside the barber's working hours")

        return None

    def ensure_valid(self, start: datetime, barber_id: int, service: Service):
        rejection = self.validate(start, barber_id, service)
        if rejection is not None:
            raise BusinessRuleError(rejection.code, rejection.message)
