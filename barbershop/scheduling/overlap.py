"""
Conflict detection.

A barber is busy over [start, end) when an active appointment or any time
block overlaps that interval. Intervals are half-open, so an appointment
ending at 10:30 does not clash with one starting at 10:30.
"""

from datetime import datetime
from typing import Optional, Union

from barbershop.errors import ConflictError
from barbershop.models import Appointment, TimeBlock, overlaps
from barbershop.store import CalendarStore

__all__ = ["ConflictDetector", "overlaps"]


class ConflictDetector:

    def __init__(self, store: CalendarStore):
        self.store = store

    def find_conflict(
        self,
        barber_id: int,
        start: datetime,
        end: datetime,
        exclude_id: Optional[int] = None,
    ) -> Optional[Union[Appointment, TimeBlock]]:
        appointments = self.store.overlapping_appointments(barber_id, start, end, exclude_id)
        if appointments:
            return appointments[0]
        blocks = self.store.overlapping_blocks(barber_id, start, end)
        if blocks:
            return blocks[0]
        return None

    def has_conflict(
        self,
        barber_id: int,
        start: datetime,
        end: datetime,
        exclude_id: Optional[int] = None,
    ) -> bool:
        return self.find_conflict(barber_id, start, end, exclude_id) is not None

    def ensure_free(
        self,
        barber_id: int,
        start: datetime,
        end: datetime,
        exclude_id: Optional[int] = None,
    ):
        conflict = self.find_conflict(barber_id, start, end, exclude_id)
        if isinstance(conflict, TimeBlock):
            raise ConflictError("Time is blocked by the barber")
        if conflict is not None:
            raise ConflictError("An appointment already exists at this time")
