# barbershop/routers/services_routes.py

from typing import List

from fastapi import APIRouter, Depends

from barbershop.auth import get_current_user
from barbershop.deps import get_store, require_role
from barbershop.models import Service
from barbershop.schemas import ServiceCreate, ServicePublic
from barbershop.store import CalendarStore

router = APIRouter(
    tags=["services"],
)


@router.get("/services", response_model=List[ServicePublic])
def list_active_services(store: CalendarStore = Depends(get_store)):
    return store.list_services(only_active=True)


@router.get("/admin/services", response_model=List[ServicePublic])
def list_services(
    store: CalendarStore = Depends(get_store),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "admin")
    return store.list_services()


@router.post("/admin/services", response_model=ServicePublic, status_code=201)
def create_service(
    service: ServiceCreate,
    store: CalendarStore = Depends(get_store),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "admin")
    db_service = Service(**service.model_dump())
    with store.atomic():
        store.save_service(db_service)
    return store.refresh(db_service)


@router.put("/admin/services/{service_id}", response_model=ServicePublic)
def update_service(
    service_id: int,
    service: ServiceCreate,
    store: CalendarStore = Depends(get_store),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "admin")
    # price changes never touch existing bookings: they keep price_at_booking
    with store.atomic():
        db_service = store.get_service(service_id)
        for field, value in service.model_dump().items():
            setattr(db_service, field, value)
        store.save_service(db_service)
    return store.refresh(db_service)
