"""
Test configuration and fixtures for the SiteSpeed Scan API.

Settings are read once at import, so the environment is pointed at temporary
locations before anything from the sitespeed package is imported.
"""

import asyncio
import os
import tempfile
from typing import Callable, Dict, List, Optional, Tuple, Union

from dotenv import load_dotenv

load_dotenv()

_test_dir = tempfile.mkdtemp(prefix="sitespeed-tests-")
os.environ["LOG_DIR"] = os.path.join(_test_dir, "logs")
os.environ["PREFERENCES_FILE"] = os.path.join(_test_dir, "preferences.json")
os.environ["SCAN_PACE_SECONDS"] = "0"
os.environ["PSI_API_KEY"] = ""

import pytest
from httpx import ASGITransport, AsyncClient

from sitespeed.features.preferences.dependencies import get_preferences
from sitespeed.features.preferences.services.preferences import PreferencesStore
from sitespeed.features.scan.dependencies import (
    get_orchestrator,
    get_scoring_backend,
    get_sitemap_resolver,
)
from sitespeed.features.scan.schemas.scan import (
    AuditIssue,
    CategoryScores,
    Device,
    DeviceResult,
    FieldMetrics,
)
from sitespeed.features.scan.services.orchestrator import ScanOrchestrator
from sitespeed.features.scan.services.pacer import Pacer
from sitespeed.features.scan.services.pagespeed_client import ScoringBackend
from sitespeed.features.scan.services.sitemap import SitemapResolver

API_KEY = "test-api-key-12345678"


def make_result(performance: int = 90) -> DeviceResult:
    return DeviceResult(
        scores=CategoryScores(performance=performance, accessibility=88, best_practices=92, seo=100),
        field_data=FieldMetrics(fcp=1200.0, lcp=2400.0, cls=0.05),
        issues=[
            AuditIssue(
                id="render-blocking-resources",
                title="Eliminate render-blocking resources",
                description="Resources are blocking the first paint of your page.",
                score=0.45,
                display_value="Potential savings of 320 ms",
            )
        ],
    )


class FakeBackend(ScoringBackend):
    """
    Records every (url, device) call in order.

    failures maps a url or a (url, device) pair to the exception to raise;
    results pins the result returned for a url.
    on_call runs before the result is produced, so tests can stop a run from
    inside a backend call. When gate is set, every call waits on it, which
    keeps a call in flight until the test releases it.
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Device]] = []
        self.failures: Dict[Union[str, Tuple[str, Device]], Exception] = {}
        self.results: Dict[str, DeviceResult] = {}
        self.on_call: Optional[Callable[[str, Device], None]] = None
        self.gate: Optional[asyncio.Event] = None
        self.in_flight = 0
        self.max_in_flight = 0

    async def analyze(self, url: str, api_key: str, device: Device) -> DeviceResult:
        device = Device(device)
        self.calls.append((url, device))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            return await self._respond(url, device)
        finally:
            self.in_flight -= 1

    async def _respond(self, url: str, device: Device) -> DeviceResult:
        if self.gate is not None:
            await self.gate.wait()
        if self.on_call is not None:
            self.on_call(url, device)
        error = self.failures.get((url, device)) or self.failures.get(url)
        if error is not None:
            raise error
        if url in self.results:
            return self.results[url]
        return make_result(70 if device == Device.mobile else 95)


class RecordingPacer(Pacer):
    """Zero-length pacer that counts how often it was asked to wait."""

    def __init__(self) -> None:
        super().__init__(seconds=0)
        self.waits = 0

    async def wait(self, cancel_event=None) -> bool:
        self.waits += 1
        return await super().wait(cancel_event)


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def pacer() -> RecordingPacer:
    return RecordingPacer()


@pytest.fixture
def orchestrator(fake_backend, pacer) -> ScanOrchestrator:
    return ScanOrchestrator(backend=fake_backend, pacer=pacer)


@pytest.fixture
def preferences(tmp_path) -> PreferencesStore:
    return PreferencesStore(path=str(tmp_path / "preferences.json"))


@pytest.fixture
def sitemap_resolver() -> SitemapResolver:
    """Replaced per test when a sitemap needs to be served."""
    return SitemapResolver()


@pytest.fixture
def test_app(orchestrator, fake_backend, preferences, sitemap_resolver):
    """FastAPI app with the process-wide singletons swapped for test doubles."""
    from sitespeed.main import app

    # Async overrides resolve on the event loop instead of the threadpool, so
    # tests that poll with asyncio.sleep(0) see the request progress.
    def provide(value):
        async def override():
            return value

        return override

    app.dependency_overrides[get_orchestrator] = provide(orchestrator)
    app.dependency_overrides[get_scoring_backend] = provide(fake_backend)
    app.dependency_overrides[get_preferences] = provide(preferences)
    app.dependency_overrides[get_sitemap_resolver] = provide(sitemap_resolver)
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app):
    async with AsyncClient(transport=ASGITransport(app=test_app), base_url="http://test") as ac:
        yield ac
