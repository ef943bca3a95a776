# barbershop/routers/booking_routes.py

from fastapi import APIRouter, Depends

from barbershop.deps import get_lifecycle
from barbershop.schemas import ERROR_RESPONSES, BookingPublic, PublicBookingCreate, RescheduleRequest
from barbershop.scheduling.lifecycle import AppointmentLifecycle

router = APIRouter(
    prefix="/booking",
    tags=["booking"],
    responses=ERROR_RESPONSES,
)


@router.post("", response_model=BookingPublic, status_code=201)
def create_booking(
    request: PublicBookingCreate,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
):
    appointment = lifecycle.create_public(request)
    return lifecycle.public_view(appointment)


@router.get("/{token}", response_model=BookingPublic)
def get_booking(
    token: str,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
):
    return lifecycle.public_view(lifecycle.find_by_token(token))


@router.post("/{token}/cancel", response_model=BookingPublic)
def cancel_booking(
    token: str,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
):
    return lifecycle.public_view(lifecycle.cancel_by_client(token))


@router.post("/{token}/reschedule", response_model=BookingPublic)
def reschedule_booking(
    token: str,
    request: RescheduleRequest,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
):
    appointment = lifecycle.reschedule(token, request.new_start_time, request.new_barber_id)
    return lifecycle.public_view(appointment)
