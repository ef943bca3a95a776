# barbershop/routers/availability_routes.py

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from barbershop.deps import get_availability
from barbershop.schemas import DayAvailability, TimeSlot
from barbershop.scheduling.availability import AvailabilityAggregator

router = APIRouter(
    prefix="/availability",
    tags=["availability"],
)


@router.get("/slots", response_model=List[TimeSlot])
def available_slots(
    service_id: int,
    date: date,
    barber_id: Optional[int] = None,
    availability: AvailabilityAggregator = Depends(get_availability),
):
    return availability.get_available_slots(service_id, barber_id, date)


@router.get("/month", response_model=List[DayAvailability])
def month_availability(
    service_id: int,
    year: int = Query(ge=2000, le=2100),
    month: int = Query(ge=1, le=12),
    barber_id: Optional[int] = None,
    availability: AvailabilityAggregator = Depends(get_availability),
):
    return availability.get_month_availability(service_id, barber_id, year, month)
