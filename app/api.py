"""HTTP route definitions for the service."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from app.schemas import ErrorEnvelope, HealthStatus, ReadingEnvelope, StoredReadingOut
from models.records import utc_now
from services.errors import ReadingNotFoundError, ReadingValidationError
from services.ingestion import IngestionService, build_default_ingestion_service
from services.retrieval import RetrievalService, build_default_retrieval_service

router = APIRouter()


def get_ingestion_service() -> IngestionService:
    return build_default_ingestion_service()


def get_retrieval_service() -> RetrievalService:
    return build_default_retrieval_service()


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorEnvelope(error=message).model_dump(),
    )


@router.post(
    "/api/sensor/ingest",
    status_code=status.HTTP_201_CREATED,
    response_model=ReadingEnvelope,
    responses={status.HTTP_400_BAD_REQUEST: {"model": ErrorEnvelope}},
    summary="Validate and store a single sensor reading.",
)
async def ingest_reading(
    request: Request,
    ingestion: IngestionService = Depends(get_ingestion_service),
):
    try:
        payload = await request.json()
    except ValueError:
        return _error_response(status.HTTP_400_BAD_REQUEST, "Request body must be valid JSON")

    try:
        stored = ingestion.ingest(payload, source="api")
    except ReadingValidationError as exc:
        return _error_response(status.HTTP_400_BAD_REQUEST, str(exc))
    return ReadingEnvelope(data=StoredReadingOut.from_record(stored))


@router.get(
    "/api/sensor/{device_id}/latest",
    response_model=ReadingEnvelope,
    responses={status.HTTP_404_NOT_FOUND: {"model": ErrorEnvelope}},
    summary="Fetch the most recent reading for a device.",
)
async def get_latest_reading(
    device_id: str,
    retrieval: RetrievalService = Depends(get_retrieval_service),
):
    try:
        stored = retrieval.get_latest(device_id.strip())
    except ReadingNotFoundError as exc:
        return _error_response(status.HTTP_404_NOT_FOUND, str(exc))
    return ReadingEnvelope(data=StoredReadingOut.from_record(stored))


@router.get(
    "/health",
    response_model=HealthStatus,
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> HealthStatus:
    return HealthStatus(status="OK", timestamp=utc_now())
