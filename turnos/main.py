# turnos/main.py

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session

from turnos.config import ADMIN_EMAIL, ADMIN_PASSWORD, LOG_LEVEL, SWEEP_INTERVAL_MINUTES
from turnos.db import create_db_and_tables, engine
from turnos.errors import SchedulingError
from turnos.jobs import run_maintenance_loop
from turnos.routers import admin_routes, appointments_routes, auth_routes, barbers_routes, users_routes

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    create_db_and_tables()

    with Session(engine) as session:
        admin_routes.ensure_admin(session, ADMIN_EMAIL, ADMIN_PASSWORD)

    task = None
    if SWEEP_INTERVAL_MINUTES > 0:
        task = asyncio.create_task(run_maintenance_loop(engine, SWEEP_INTERVAL_MINUTES))

    yield

    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    logger.info("Application shutting down...")


app = FastAPI(title="Turnos Barber API", version="0.1.0", lifespan=lifespan)


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    logger.info(f"{request.method} {request.url.path} rejected: {exc.reason.value} ({exc.message})")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"code": "INTERNAL_ERROR", "detail": "Internal server error", "retryable": False},
    )


@app.get("/health")
def health_check():
    return {"status": "ok"}


app.include_router(auth_routes.router)
app.include_router(users_routes.router)
app.include_router(appointments_routes.router)
app.include_router(barbers_routes.router)
app.include_router(admin_routes.router)
