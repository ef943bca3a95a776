"""
Slot Generation

Turns a barber's working window for one day into discrete candidate start
times, `slot_minutes` apart, each flagged available or not.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Iterator, List, Optional

from barbershop.config import Settings
from barbershop.models import Appointment, Service, TimeBlock, WorkingHours
from barbershop.schemas import TimeSlot
from barbershop.store import CalendarStore

logger = logging.getLogger(__name__)


class SlotSequence:
    """Slots for one barber and one day.

    Holds the day's appointments and blocks, fetched once, so iterating is
    pure and can be repeated with the same result.
    """

    def __init__(
        self,
        barber_id: int,
        barber_name: str,
        day: date,
        service: Service,
        working_hours: Optional[WorkingHours],
        min_datetime: datetime,
        step: timedelta,
        appointments: List[Appointment],
        blocks: List[TimeBlock],
    ):
        self.barber_id = barber_id
        self.barber_name = barber_name
        self.day = day
        self.service = service
        self.working_hours = working_hours
        self.min_datetime = min_datetime
        self.step = step
        self.appointments = appointments
        self.blocks = blocks

    def __iter__(self) -> Iterator[TimeSlot]:
        hours = self.working_hours
        if hours is None or not hours.is_working:
            return

        total = self.service.total_duration
        day_end = datetime.combine(self.day, hours.end_time)
        slot_start = datetime.combine(self.day, hours.start_time)

        # a slot ending exactly at closing time is still valid
        while slot_start + total <= day_end:
            slot_end = slot_start + total
            available = (
                slot_start >= self.min_datetime
                and not any(a.overlaps(slot_start, slot_end) for a in self.appointments)
                and not any(b.overlaps(slot_start, slot_end) for b in self.blocks)
            )
            yield TimeSlot(
                date_time=slot_start,
                time=slot_start.time(),
                available=available,
                barber_id=self.barber_id,
                barber_name=self.barber_name,
            )
            slot_start += self.step

    def has_available(self) -> bool:
        return any(slot.available for slot in self)


class SlotGenerator:

    def __init__(self, store: CalendarStore, settings: Settings):
        self.store = store
        self.step = timedelta(minutes=settings.slot_minutes)

    def generate(
        self,
        barber_id: int,
        day: date,
        service: Service,
        working_hours: Optional[WorkingHours],
        min_datetime: datetime,
        barber_name: str = "",
    ) -> SlotSequence:
        appointments: List[Appointment] = []
        blocks: List[TimeBlock] = []

        if working_hours is not None and working_hours.is_working:
            day_start = datetime.combine(day, working_hours.start_time)
            day_end = datetime.combine(day, working_hours.end_time)
            appointments = self.store.overlapping_appointments(barber_id, day_start, day_end)
            blocks = self.store.overlapping_blocks(barber_id, day_start, day_end)
            logger.debug(
                "Barber %s on %s: %d appointments, %d blocks",
                barber_id, day, len(appointments), len(blocks),
            )

        return SlotSequence(
            barber_id=barber_id,
            barber_name=barber_name,
            day=day,
            service=service,
            working_hours=working_hours,
            min_datetime=min_datetime,
            step=self.step,
            appointments=appointments,
            blocks=blocks,
        )
