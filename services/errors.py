"""Error taxonomy for the ingestion and retrieval pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence


@dataclass(frozen=True)
class FieldError:
    """A single validation failure keyed by the offending field."""

    field: str
    code: str
    message: str


class ReadingValidationError(ValueError):
    """Raised when a raw payload does not describe a valid reading."""

    def __init__(self, errors: Sequence[FieldError]) -> None:
        self.errors: List[FieldError] = list(errors)
        super().__init__(", ".join(error.message for error in self.errors))


class ReadingNotFoundError(KeyError):
    """Raised when a device has no stored readings."""

    def __init__(self, device_id: str) -> None:
        self.device_id = device_id
        super().__init__(device_id)

    def __str__(self) -> str:
        return f"No readings found for device {self.device_id!r}"


class StoreError(RuntimeError):
    """Raised when the reading store cannot serve or persist a request."""

    def __init__(self, message: str, device_id: Optional[str] = None) -> None:
        self.device_id = device_id
        super().__init__(message)


class TransportError(ConnectionError):
    """Raised when the message bus cannot be reached or subscribed to."""
