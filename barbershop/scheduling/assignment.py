# barbershop/scheduling/assignment.py

import logging
from datetime import datetime
from typing import Iterable

from barbershop.errors import BusinessRuleError
from barbershop.models import Service, User
from barbershop.scheduling.overlap import ConflictDetector
from barbershop.scheduling.policy import BookingPolicy

logger = logging.getLogger(__name__)


class BarberAutoAssigner:
    """First-fit: the first barber, in the order given, who can take the booking.

    No load balancing on purpose.
    """

    def __init__(self, policy: BookingPolicy, conflicts: ConflictDetector):
        self.policy = policy
        self.conflicts = conflicts

    def is_eligible(self, barber_id: int, start: datetime, service: Service) -> bool:
        if self.policy.validate(start, barber_id, service) is not None:
            return False
        return not self.conflicts.has_conflict(barber_id, start, start + service.total_duration)

    def assign(self, barbers: Iterable[User], start: datetime, service: Service) -> User:
        for barber in barbers:
            if self.is_eligible(barber.id, start, service):
                logger.info("Auto-assigned barber %s for %s", barber.id, start)
                return barber
        raise BusinessRuleError("NO_AVAILABILITY", "No barber is available at this time")
