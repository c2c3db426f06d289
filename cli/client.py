from __future__ import annotations

from typing import Any, Dict, Optional, Union

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the telemetry ingest service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.request_timeout)

    def close(self) -> None:
        self._client.close()

    def ingest(
        self,
        device_id: str,
        value: float,
        timestamp: Optional[Union[int, str]] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"device_id": device_id, "value": value}
        if timestamp is not None:
            body["timestamp"] = timestamp
        response = self._send("POST", "/api/sensor/ingest", json=body)
        return response.json()["data"]

    def latest(self, device_id: str) -> Dict[str, Any]:
        response = self._send("GET", f"/api/sensor/{device_id}/latest")
        return response.json()["data"]

    def health(self) -> Dict[str, Any]:
        return self._send("GET", "/health").json()

    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(code=1) from exc
        return response

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("error") or data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
