"""Shared pytest fixtures for voxwatch tests."""

from __future__ import annotations

from collections.abc import Callable, Generator
from typing import Any

import jwt
import pytest
from loguru import logger

from voxwatch.config import Settings
from voxwatch.telemetry import Telemetry, build_telemetry

TEST_JWT_SECRET = "test-jwt-secret-with-enough-length-for-hs256"


def build_settings(**overrides: Any) -> Settings:
    """Create a Settings object with safe test defaults."""
    base: dict[str, Any] = {
        "environment": "development",
        "log_level": "DEBUG",
        "jwt_secret": TEST_JWT_SECRET,
        "jwt_verify": True,
        "admin_actor_ids": ["admin-1"],
    }
    base.update(overrides)
    return Settings(_env_file=None, **base)


def make_token(sub: str, *, role: str | None = None, secret: str = TEST_JWT_SECRET) -> str:
    """Signed HS256 bearer token for ``sub``."""
    claims: dict[str, Any] = {"sub": sub}
    if role is not None:
        claims["role"] = role
    return jwt.encode(claims, secret, algorithm="HS256")


def auth_header(sub: str, *, role: str | None = None) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(sub, role=role)}"}


class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    """Return a factory to build Settings with overrides."""
    return build_settings


@pytest.fixture
def settings(settings_factory: Callable[..., Settings]) -> Settings:
    """Default Settings fixture."""
    return settings_factory()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def telemetry(settings: Settings) -> Generator[Telemetry, None, None]:
    """Isolated telemetry container."""
    container = build_telemetry(settings)
    yield container
    container.faults.uninstall_global_handlers()
    container.faults.shutdown()


@pytest.fixture
def log_records() -> Generator[list[dict[str, Any]], None, None]:
    """Collect loguru records emitted during a test."""
    records: list[dict[str, Any]] = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)


# =============================================================================
# FastAPI Test Client Fixtures
# =============================================================================


@pytest.fixture
def app_factory(settings_factory: Callable[..., Settings]) -> Callable[..., Any]:
    """Build an app with settings overrides."""
    from voxwatch.main import create_app

    def factory(**overrides: Any):
        return create_app(settings_factory(**overrides))

    return factory


@pytest.fixture
def test_app(app_factory: Callable[..., Any]):
    """App with default test settings."""
    return app_factory()


@pytest.fixture
def test_client(test_app) -> Generator:
    """FastAPI TestClient for the default test app."""
    from fastapi.testclient import TestClient

    with TestClient(test_app) as client:
        yield client
