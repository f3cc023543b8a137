from contextlib import asynccontextmanager

import pendulum
import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from src.fieldtrack.main import app
from src.fieldtrack.rabbitmq_handlers.telemetry.schemas import TelemetryPoint
from tests.mocks.config_mocks import mock_get_settings  # noqa: F401

# -----------------------------------------------------------------------------
# TELEMETRY FIXTURES
# -----------------------------------------------------------------------------
WINDOW_START = pendulum.datetime(2024, 5, 20, 8, 0, tz="UTC")


@pytest.fixture
def make_point():
    def _make_point(
        seconds=0,
        speed=0.0,
        status=True,
        latitude=35.7000,
        longitude=51.4000,
        device_id="device_123",
    ):
        return TelemetryPoint(
            device_id=device_id,
            latitude=latitude,
            longitude=longitude,
            speed=speed,
            timestamp=WINDOW_START.add(seconds=seconds),
            status=status,
        )

    return _make_point


# -----------------------------------------------------------------------------
# FASTAPI CLIENT FOR API TESTING
# -----------------------------------------------------------------------------


@pytest.fixture(scope="function")
async def async_client():
    """
    Provide an async client for FastAPI test with lifespan events.
    """

    @asynccontextmanager
    async def test_lifespan(_):
        yield

    app.router.lifespan_context = test_lifespan
    async with LifespanManager(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
