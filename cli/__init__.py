"""CLI package for interacting with the sensor telemetry ingest service."""

from importlib import import_module
from types import ModuleType


def __getattr__(name: str) -> ModuleType:
    if name == "app":
        return import_module("cli.app")
    raise AttributeError(name)

# ``cli.app`` must stay the module rather than the Typer instance; tests patch
# ``cli.app.ApiClient`` and ``cli.app.publish_reading`` through that path.

__all__ = []
