from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.api import router
from app.schemas import ErrorEnvelope
from datastore.reading_store import build_default_store
from logging_config import configure_logging
from pubsub.intake import MqttIntake, default_client_factory
from services.errors import StoreError, TransportError
from services.ingestion import build_default_ingestion_service
from services.retrieval import build_default_retrieval_service
from services.validator import build_default_validator
from settings import get_settings

logger = logging.getLogger(__name__)

_FACTORIES = (
    build_default_ingestion_service,
    build_default_retrieval_service,
    build_default_validator,
    build_default_store,
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # The store must be live before any intake path accepts writes.
    try:
        store = build_default_store()
        store.ping()
    except StoreError as exc:
        logger.critical("Reading store unavailable, refusing to start: %s", exc)
        raise
    logger.info("Reading store ready", extra={"store": store.name})

    settings = get_settings()
    intake = None
    if settings.mqtt_enabled:
        intake = MqttIntake.from_settings(
            build_default_ingestion_service(),
            settings,
            client_factory=default_client_factory,
        )
        try:
            intake.start()
        except TransportError as exc:
            logger.error("MQTT intake disabled: %s", exc, extra={"topic": intake.topic_pattern})
            intake = None
    app.state.mqtt_intake = intake

    try:
        yield
    finally:
        if intake is not None:
            intake.stop()
        store.close()
        for factory in _FACTORIES:
            factory.cache_clear()


async def handle_store_error(request: Request, exc: StoreError) -> JSONResponse:
    logger.error(
        "Reading store failure: %s",
        exc,
        extra={"path": request.url.path, "device_id": exc.device_id},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorEnvelope(error="Internal server error").model_dump(),
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Sensor Telemetry Ingest",
        description="Ingests sensor readings over HTTP and MQTT and serves the latest reading per device.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(StoreError, handle_store_error)
    app.include_router(router)
    return app


def run(host: Optional[str] = None, port: Optional[int] = None) -> None:
    settings = get_settings()
    uvicorn.run(
        app,
        host=host or settings.http_host,
        port=port or settings.http_port,
        log_config=None,
    )


app = create_app()
