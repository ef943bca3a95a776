"""
Availability queries across barbers and days. Read-only.
"""

import calendar
import logging
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional

from barbershop.config import Settings
from barbershop.models import Service, User
from barbershop.schemas import DayAvailability, TimeSlot
from barbershop.scheduling.slots import SlotGenerator
from barbershop.store import CalendarStore

logger = logging.getLogger(__name__)


class AvailabilityAggregator:

    def __init__(self, store: CalendarStore, settings: Settings, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.settings = settings
        self.clock = clock
        self.slots = SlotGenerator(store, settings)

    def get_available_slots(self, service_id: int, barber_id: Optional[int], day: date) -> List[TimeSlot]:
        logger.debug("Getting available slots for service: %s, barber: %s, date: %s", service_id, barber_id, day)

        service = self.store.get_service(service_id)
        now = self.clock()
        if not self._bookable(day, now):
            return []

        barbers = self._barbers(barber_id)
        result: List[TimeSlot] = []
        for barber in barbers:
            result.extend(self._sequence(barber, service, day, now))

        # clients render slots in this order
        result.sort(key=lambda s: (s.date_time, s.barber_name))
        return result

    def get_month_availability(
        self, service_id: int, barber_id: Optional[int], year: int, month: int
    ) -> List[DayAvailability]:
        logger.debug("Getting month availability for service: %s, year: %s, month: %s", service_id, year, month)

        service = self.store.get_service(service_id)
        barbers = self._barbers(barber_id)
        now = self.clock()
        today = now.date()

        first = date(year, month, 1)
        last = date(year, month, calendar.monthrange(year, month)[1])
        first = max(first, today)
        last = min(last, today + timedelta(days=self.settings.max_days_ahead))

        days: List[DayAvailability] = []
        day = first
        while day <= last:
            has_available = any(
                self._sequence(barber, service, day, now).has_available() for barber in barbers
            )
            days.append(DayAvailability(date=day, has_available_slots=has_available))
            day += timedelta(days=1)
        return days

    def _bookable(self, day: date, now: datetime) -> bool:
        today = now.date()
        return today <= day <= today + timedelta(days=self.settings.max_days_ahead)

    def _barbers(self, barber_id: Optional[int]) -> List[User]:
        if barber_id is not None:
            return [self.store.get_barber(barber_id)]
        return self.store.active_barbers()

    def _sequence(self, barber: User, service: Service, day: date, now: datetime):
        min_datetime = now + timedelta(hours=self.settings.min_advance_hours)
        hours = self.store.working_hours(barber.id, day.weekday())
        return self.slots.generate(barber.id, day, service, hours, min_datetime, barber_name=barber.name)

