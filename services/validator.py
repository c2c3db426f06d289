"""Validation of raw reading payloads from any intake path."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Any, List, Optional

from models.records import Clock, Reading, to_epoch_millis, utc_now
from services.errors import FieldError
from settings import get_settings

MISSING_FIELD = "missing_field"
INVALID_TYPE = "invalid_type"
OUT_OF_RANGE = "out_of_range"


@dataclass
class ValidationOutcome:
    """Either a typed reading or the list of field errors that prevented one."""

    reading: Optional[Reading] = None
    errors: List[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.reading is not None


class ReadingValidator:
    """Turns an untyped field bag into a :class:`Reading`.

    Values are never coerced from strings and never clamped: a reading outside
    the configured bounds is rejected. The clock is only consulted when the
    producer omits ``timestamp``.
    """

    def __init__(
        self,
        clock: Clock = utc_now,
        value_min: Optional[float] = None,
        value_max: Optional[float] = None,
    ) -> None:
        self.clock = clock
        self.value_min = value_min
        self.value_max = value_max

    def validate(self, raw: Any) -> ValidationOutcome:
        if not isinstance(raw, Mapping):
            return ValidationOutcome(
                errors=[FieldError("body", INVALID_TYPE, "body must be a JSON object")]
            )

        errors: list[FieldError] = []
        device_id = self._check_device_id(raw.get("device_id"), errors)
        value = self._check_value(raw.get("value"), errors)
        timestamp = self._check_timestamp(raw.get("timestamp"), errors)

        if errors or device_id is None or value is None or timestamp is None:
            return ValidationOutcome(errors=errors)
        return ValidationOutcome(
            reading=Reading(device_id=device_id, value=value, timestamp=timestamp)
        )

    @staticmethod
    def _check_device_id(candidate: Any, errors: list[FieldError]) -> Optional[str]:
        if candidate is None:
            errors.append(FieldError("device_id", MISSING_FIELD, "device_id is required"))
            return None
        if not isinstance(candidate, str):
            errors.append(FieldError("device_id", INVALID_TYPE, "device_id must be a string"))
            return None
        device_id = candidate.strip()
        if not device_id:
            errors.append(FieldError("device_id", MISSING_FIELD, "device_id cannot be empty"))
            return None
        return device_id

    def _check_value(self, candidate: Any, errors: list[FieldError]) -> Optional[float]:
        value = _finite_float(candidate) if _is_number(candidate) else None
        if value is None:
            message = "value is required" if candidate is None else "value must be a finite number"
            errors.append(FieldError("value", INVALID_TYPE, message))
            return None

        if self.value_min is not None and value < self.value_min:
            errors.append(
                FieldError("value", OUT_OF_RANGE, f"value must be >= {self.value_min}")
            )
            return None
        if self.value_max is not None and value > self.value_max:
            errors.append(
                FieldError("value", OUT_OF_RANGE, f"value must be <= {self.value_max}")
            )
            return None
        return value

    def _check_timestamp(self, candidate: Any, errors: list[FieldError]) -> Optional[int]:
        if candidate is None:
            return to_epoch_millis(self.clock())

        millis: Optional[float] = None
        if _is_number(candidate):
            millis = _finite_float(candidate)
        elif isinstance(candidate, str):
            millis = _parse_timestamp_text(candidate)

        if millis is None:
            errors.append(
                FieldError(
                    "timestamp",
                    INVALID_TYPE,
                    "timestamp must be epoch milliseconds or an ISO-8601 string",
                )
            )
            return None
        if millis < 0:
            errors.append(
                FieldError("timestamp", OUT_OF_RANGE, "timestamp cannot be negative")
            )
            return None
        return int(millis)


def _is_number(candidate: Any) -> bool:
    return isinstance(candidate, (int, float)) and not isinstance(candidate, bool)


def _finite_float(candidate: Any) -> Optional[float]:
    try:
        converted = float(candidate)
    except (OverflowError, ValueError):
        return None
    return converted if math.isfinite(converted) else None


def _parse_timestamp_text(text: str) -> Optional[float]:
    candidate = text.strip()
    if not candidate:
        return None

    numeric = _finite_float(candidate)
    if numeric is not None:
        return numeric

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    return float(to_epoch_millis(parsed))


@lru_cache
def build_default_validator() -> ReadingValidator:
    settings = get_settings()
    return ReadingValidator(value_min=settings.value_min, value_max=settings.value_max)
