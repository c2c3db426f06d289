"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_epoch_millis(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


@dataclass(frozen=True, slots=True)
class Reading:
    """A validated sensor reading that has not been persisted yet."""

    device_id: str
    value: float
    timestamp: int


@dataclass(frozen=True, slots=True)
class StoredReading:
    """A reading as persisted by the store.

    ``timestamp`` is the producer's instant in epoch milliseconds, while
    ``created_at`` is when the store recorded it.
    """

    id: str
    device_id: str
    value: float
    timestamp: int
    created_at: datetime

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "device_id": self.device_id,
            "value": self.value,
            "timestamp": self.timestamp,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "StoredReading":
        return cls(
            id=str(document["id"]),
            device_id=str(document["device_id"]),
            value=float(document["value"]),
            timestamp=int(document["timestamp"]),
            created_at=datetime.fromisoformat(document["created_at"]),
        )
