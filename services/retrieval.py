"""Latest-reading lookups."""

from __future__ import annotations

from functools import lru_cache

from datastore.reading_store import ReadingStore, build_default_store
from models.records import StoredReading


class RetrievalService:

    def __init__(self, store: ReadingStore) -> None:
        self.store = store

    def get_latest(self, device_id: str) -> StoredReading:
        """Return the most recent reading for ``device_id``.

        Raises :class:`ReadingNotFoundError` when the device has none.
        """
        return self.store.latest(device_id)


@lru_cache
def build_default_retrieval_service() -> RetrievalService:
    return RetrievalService(store=build_default_store())
