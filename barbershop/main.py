# barbershop/main.py

import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from barbershop.config import get_settings
from barbershop.db import create_db_and_tables
from barbershop.errors import BookingError, BusinessRuleError, ConflictError, NotFoundError
from barbershop.routers import (
    appointments_routes,
    auth_routes,
    availability_routes,
    barbers_routes,
    booking_routes,
    services_routes,
    users_routes,
)
from barbershop.schemas import ErrorResponse

settings = get_settings()

handler = logging.StreamHandler()
handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s:%(name)s:%(message)s"))

root = logging.getLogger()
root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
root.handlers.clear()
root.addHandler(handler)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()
    yield


app = FastAPI(title="Barbershop Booking", version="1.0.0", lifespan=lifespan)

app.include_router(auth_routes.router)
app.include_router(users_routes.router)
app.include_router(services_routes.router)
app.include_router(barbers_routes.router)
app.include_router(availability_routes.router)
app.include_router(booking_routes.router)
app.include_router(appointments_routes.router)


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    body = ErrorResponse(code=code, message=message, timestamp=datetime.now())
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))


@app.exception_handler(NotFoundError)
def handle_not_found(request: Request, exc: NotFoundError):
    logger.warning("Resource not found: %s", exc.message)
    return error_response(404, exc.code, exc.message)


@app.exception_handler(ConflictError)
def handle_conflict(request: Request, exc: ConflictError):
    logger.warning("Conflict: %s", exc.message)
    return error_response(409, exc.code, exc.message)


@app.exception_handler(BusinessRuleError)
def handle_business_rule(request: Request, exc: BusinessRuleError):
    logger.warning("Business error: %s - %s", exc.code, exc.message)
    return error_response(422, exc.code, exc.message)


@app.exception_handler(BookingError)
def handle_booking_error(request: Request, exc: BookingError):
    logger.warning("Booking error: %s - %s", exc.code, exc.message)
    return error_response(400, exc.code, exc.message)


@app.get("/health")
def health_check():
    return {"status": "ok"}
