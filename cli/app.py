from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_health, render_reading
from pubsub.publisher import publish_reading
from services.errors import TransportError
from settings import get_settings


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the sensor telemetry ingest service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:3000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each HTTP request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, request_timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("ingest")
def ingest_command(
    ctx: typer.Context,
    device_id: str = typer.Argument(..., help="Device identifier."),
    value: float = typer.Argument(..., help="Numeric reading."),
    timestamp: Optional[str] = typer.Option(
        None,
        "--timestamp",
        "-t",
        help="Epoch milliseconds or ISO-8601 instant; the server time is used when omitted.",
    ),
) -> None:
    """Submit a reading over HTTP."""
    state = _get_state(ctx)
    stored = state.client.ingest(device_id, value, timestamp=timestamp)
    typer.secho(f"Reading stored. id={stored.get('id')}", fg=typer.colors.GREEN)
    render_reading(stored)


@app.command("latest")
def latest_command(
    ctx: typer.Context,
    device_id: str = typer.Argument(..., help="Device identifier."),
) -> None:
    """Show the most recent reading for a device."""
    state = _get_state(ctx)
    render_reading(state.client.latest(device_id), heading="Latest Reading")


@app.command("health")
def health_command(ctx: typer.Context) -> None:
    """Check that the service is up."""
    state = _get_state(ctx)
    render_health(state.client.health())


@app.command("publish")
def publish_command(
    device_id: str = typer.Argument(..., help="Device identifier used as the topic level."),
    value: float = typer.Argument(..., help="Numeric reading."),
    timestamp: Optional[str] = typer.Option(
        None,
        "--timestamp",
        "-t",
        help="Epoch milliseconds or ISO-8601 instant.",
    ),
    broker_host: Optional[str] = typer.Option(
        None, "--broker-host", help="MQTT broker host (defaults to MQTT_BROKER_HOST)."
    ),
    broker_port: Optional[int] = typer.Option(
        None, "--broker-port", help="MQTT broker port (defaults to MQTT_BROKER_PORT)."
    ),
) -> None:
    """Publish a reading onto the MQTT bus."""
    settings = get_settings()
    try:
        topic = publish_reading(
            device_id,
            value,
            timestamp=timestamp,
            host=broker_host or settings.mqtt_host,
            port=broker_port or settings.mqtt_port,
            topic_pattern=settings.mqtt_topic_pattern,
            qos=settings.mqtt_qos,
            username=settings.mqtt_username,
            password=settings.mqtt_password,
        )
    except (TransportError, ValueError) as exc:
        typer.secho(f"Publish failed: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    typer.secho(f"Published to {topic}", fg=typer.colors.GREEN)


@app.command("serve")
def serve_command(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (defaults to HOST)."),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port (defaults to PORT)."),
) -> None:
    """Run the HTTP API (and the MQTT intake when ENABLE_MQTT is set)."""
    from app.main import run

    run(host=host, port=port)
