"""Single entry point that validates and persists readings for every intake path."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

from datastore.reading_store import ReadingStore, build_default_store
from models.records import StoredReading
from services.errors import ReadingValidationError
from services.validator import ReadingValidator, build_default_validator

logger = logging.getLogger(__name__)


class IngestionService:
    """Coordinates validation and persistence of a single reading.

    Both the HTTP and MQTT adapters call through here, so readings are stored
    identically whatever their origin.
    """

    def __init__(self, validator: ReadingValidator, store: ReadingStore) -> None:
        self.validator = validator
        self.store = store

    def ingest(self, raw: Any, source: str = "api") -> StoredReading:
        """Validate ``raw`` and persist it.

        Raises :class:`ReadingValidationError` when the payload is rejected, in
        which case nothing is written. :class:`StoreError` from the store is
        propagated unchanged.
        """
        outcome = self.validator.validate(raw)
        reading = outcome.reading
        if reading is None:
            error = ReadingValidationError(outcome.errors)
            logger.info(
                "Rejected sensor reading: %s",
                error,
                extra={"source": source, "reason": "validation"},
            )
            raise error

        stored = self.store.insert(reading)
        logger.info(
            "Sensor reading ingested",
            extra={
                "device_id": stored.device_id,
                "reading_id": stored.id,
                "source": source,
            },
        )
        return stored


@lru_cache
def build_default_ingestion_service() -> IngestionService:
    """Factory that wires the service with the default validator and store."""
    return IngestionService(validator=build_default_validator(), store=build_default_store())
