"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from models.records import StoredReading


class StoredReadingOut(BaseModel):
    """Persisted reading as returned to API clients."""

    id: str
    device_id: str
    value: float
    timestamp: int = Field(..., description="Event time in epoch milliseconds.")
    created_at: datetime = Field(..., description="When the reading was persisted.")

    @classmethod
    def from_record(cls, record: StoredReading) -> "StoredReadingOut":
        return cls(
            id=record.id,
            device_id=record.device_id,
            value=record.value,
            timestamp=record.timestamp,
            created_at=record.created_at,
        )


class ReadingEnvelope(BaseModel):
    success: bool = True
    data: StoredReadingOut


class ErrorEnvelope(BaseModel):
    success: bool = False
    error: str


class HealthStatus(BaseModel):
    status: str
    timestamp: datetime
