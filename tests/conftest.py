"""
Shared pytest fixtures and configuration.
"""

from datetime import datetime

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from limiter.api.app import create_app
from limiter.config import Config
from limiter.core.daily_reset import DailyReset
from limiter.core.detector import DistractionDetector
from limiter.core.orchestrator import BlockingOrchestrator
from limiter.core.tracker import SessionTracker
from limiter.host.base import TabInfo
from limiter.host.bridge import ExtensionBridge
from limiter.storage.catalog import Catalog
from limiter.storage.extensions import ExtensionRepository
from limiter.storage.store import DocumentStore
from limiter.storage.usage import UsageRepository

INTERSTITIAL = "moz-extension://test/pages/timeout/index.html"


class FakeClock:
    """Deterministic time source; starts at noon local time on 2024-01-02."""

    def __init__(self, start: datetime = datetime(2024, 1, 2, 12, 0, 0)):
        self.now = start.timestamp()

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def store(tmp_path):
    return DocumentStore(tmp_path / "limiter.db", retry_backoff_s=0.001)


@pytest.fixture()
def catalog(store):
    return Catalog(store)


@pytest.fixture()
def usage(store):
    return UsageRepository(store)


@pytest.fixture()
def extensions(store):
    return ExtensionRepository(store)


@pytest.fixture()
def bridge(clock):
    return ExtensionBridge(clock=clock)


@pytest.fixture()
def detector(store):
    return DistractionDetector(store)


@pytest.fixture()
def tracker(store, usage, clock):
    return SessionTracker(store, usage, clock=clock, stale_after_s=60.0)


@pytest_asyncio.fixture()
async def orchestrator(detector, tracker, catalog, usage, extensions, bridge, store, clock):
    """Orchestrator with a usage timer slow enough that tests drive ticks by hand."""
    orch = BlockingOrchestrator(
        detector,
        tracker,
        catalog,
        usage,
        extensions,
        bridge,
        daily_reset=DailyReset(store, clock=clock),
        clock=clock,
        interstitial_url=INTERSTITIAL,
        tick_interval_s=3600.0,
        max_restore_notifications=2,
    )
    await detector.start()
    yield orch
    await orch.shutdown()


@pytest.fixture()
def open_tabs(bridge):
    """Mirror a browser window holding the given urls; tab ids start at 1."""

    def _open(*urls, active=0, window_id=1):
        tabs = [
            TabInfo(id=i + 1, url=url, window_id=window_id, active=(i == active))
            for i, url in enumerate(urls)
        ]
        bridge.sync(tabs, focused_window_id=window_id)
        return tabs

    return _open


@pytest.fixture()
def app(tmp_path, clock):
    """Create a fresh app instance on a temporary data directory."""
    cfg = Config(data_dir=tmp_path / "data", interstitial_url=INTERSTITIAL, tick_interval_s=3600.0)
    return create_app(cfg, clock=clock)


@pytest_asyncio.fixture()
async def client(app):
    """Async HTTP client wired directly to the ASGI app (no server needed)."""
    async with app.router.lifespan_context(app):
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as ac:
            yield ac
