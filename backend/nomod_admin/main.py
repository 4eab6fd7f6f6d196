"""FastAPI application entrypoint."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nomod_admin.api import api_router
from nomod_admin.core.config import ConfigurationError, get_settings
from nomod_admin.core.dependencies import get_store
from nomod_admin.services.scheduler import schedule_sweep_job, shutdown_scheduler, start_scheduler
from nomod_admin.services.users import UserService
from nomod_admin.store import StoreError
from nomod_admin.store.sql import SqlAlchemyStore

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    try:
        store = get_store()
        if isinstance(store, SqlAlchemyStore):
            await store.create_schema()
        await UserService(store, settings).ensure_default_admin()
    except (ConfigurationError, StoreError) as exc:
        # requests will surface the same error; the app still starts
        logger.error("Could not prepare the admin store at startup: %s", exc)

    start_scheduler()
    schedule_sweep_job()

    try:
        yield
    finally:
        shutdown_scheduler()


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("Configuration error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Server configuration error."},
    )


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error("Storage error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Storage backend unavailable."},
    )


app.include_router(api_router)
