from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _format_millis(value: Any) -> str:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return str(value)
    try:
        moment = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return str(value)
    return f"{value} ({moment.isoformat()})"


def render_reading(payload: Dict[str, Any], heading: str = "Reading") -> None:
    echo_heading(heading)
    echo_key_values(
        [
            ("id", payload.get("id")),
            ("device_id", payload.get("device_id")),
            ("value", payload.get("value")),
            ("timestamp", _format_millis(payload.get("timestamp"))),
            ("created_at", payload.get("created_at")),
        ]
    )


def render_health(payload: Dict[str, Any]) -> None:
    echo_heading("Service Health")
    echo_key_values(
        [
            ("status", payload.get("status")),
            ("timestamp", payload.get("timestamp")),
        ]
    )
