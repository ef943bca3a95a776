# barbershop/routers/barbers_routes.py

from typing import List

from fastapi import APIRouter, Depends, HTTPException

from barbershop.auth import get_current_user
from barbershop.deps import STAFF_ROLES, get_store, require_role
from barbershop.errors import BusinessRuleError
from barbershop.models import TimeBlock, WorkingHours
from barbershop.schemas import BarberPublic, BlockCreate, BlockPublic, WorkingHoursIn, WorkingHoursPublic
from barbershop.store import CalendarStore

router = APIRouter(
    tags=["barbers"],
)


def require_manager(current_user: dict, barber_id: int):
    # admins manage every calendar, barbers only their own
    require_role(current_user, *STAFF_ROLES)
    if current_user["role"] != "admin" and current_user["id"] != barber_id:
        raise HTTPException(status_code=403, detail="Forbidden")


@router.get("/barbers", response_model=List[BarberPublic])
def list_barbers(store: CalendarStore = Depends(get_store)):
    return [{"id": b.id, "name": b.name} for b in store.active_barbers()]


@router.put("/admin/barbers/{barber_id}/working-hours", response_model=List[WorkingHoursPublic])
def set_working_hours(
    barber_id: int,
    week: List[WorkingHoursIn],
    store: CalendarStore = Depends(get_store),
    current_user: dict = Depends(get_current_user),
):
    require_manager(current_user, barber_id)

    days = [row.day_of_week for row in week]
    if len(days) != len(set(days)):
        raise HTTPException(status_code=422, detail="day_of_week cannot contain duplicates")
    for row in week:
        if row.is_working and row.start_time >= row.end_time:
            raise BusinessRuleError("INVALID_TIME_RANGE", "start_time must be before end_time")

    with store.atomic():
        store.get_barber(barber_id)
        rows = store.replace_week(barber_id, [WorkingHours(barber_id=barber_id, **row.model_dump()) for row in week])
    return [store.refresh(row) for row in rows]


@router.get("/admin/barbers/{barber_id}/working-hours", response_model=List[WorkingHoursPublic])
def get_working_hours(
    barber_id: int,
    store: CalendarStore = Depends(get_store),
    current_user: dict = Depends(get_current_user),
):
    require_manager(current_user, barber_id)
    store.get_barber(barber_id)
    return store.week_for_barber(barber_id)


@router.post("/admin/barbers/{barber_id}/blocks", response_model=BlockPublic, status_code=201)
def create_block(
    barber_id: int,
    block: BlockCreate,
    store: CalendarStore = Depends(get_store),
    current_user: dict = Depends(get_current_user),
):
    require_manager(current_user, barber_id)
    if block.start_time >= block.end_time:
        raise BusinessRuleError("INVALID_TIME_RANGE", "start_time must be before end_time")

    # blocks may overlap appointments: they only stop new bookings
    with store.atomic():
        store.get_barber(barber_id)
        db_block = store.add_block(TimeBlock(barber_id=barber_id, **block.model_dump()))
    return store.refresh(db_block)


@router.get("/admin/barbers/{barber_id}/blocks", response_model=List[BlockPublic])
def list_blocks(
    barber_id: int,
    store: CalendarStore = Depends(get_store),
    current_user: dict = Depends(get_current_user),
):
    require_manager(current_user, barber_id)
    return store.blocks_for_barber(barber_id)


@router.delete("/admin/barbers/{barber_id}/blocks/{block_id}", status_code=204)
def delete_block(
    barber_id: int,
    block_id: int,
    store: CalendarStore = Depends(get_store),
    current_user: dict = Depends(get_current_user),
):
    require_manager(current_user, barber_id)
    with store.atomic():
        store.delete_block(barber_id, block_id)
