"""FastAPI dependencies resolving per-app state."""

from fastapi import Request

from voxwatch.config import Settings
from voxwatch.telemetry import Telemetry


def get_telemetry(request: Request) -> Telemetry:
    """Telemetry container built in ``create_app``."""
    return request.app.state.telemetry


def get_app_settings(request: Request) -> Settings:
    """Settings the app was created with."""
    return request.app.state.settings
