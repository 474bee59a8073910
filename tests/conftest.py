"""Shared fixtures for depsentinel tests.

Database tests run against a throwaway SQLite file per test; nothing external
is needed.
"""

from __future__ import annotations

import pytest
import structlog
from factories import FakeProbe, MemoryStore, RecordingObserver, SimpleScorer

from depsentinel.core.config import ProgressSettings, ScanSettings
from depsentinel.core.database import create_all, create_engine, create_session_factory
from depsentinel.engines.scan_coordinator.coordinator import ScanCoordinator

FAST_PROGRESS = ProgressSettings(active_interval=0.01, idle_interval=0.02, heartbeat=0.05)


@pytest.fixture(autouse=True)
def captured_logs():
    """Route structlog through capture so tests never depend on logging config."""
    with structlog.testing.capture_logs() as logs:
        yield logs


@pytest.fixture
def settings() -> ScanSettings:
    return ScanSettings(project_key="demo", progress=FAST_PROGRESS)


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def make_coordinator(settings, observer, probe):
    """Factory for a coordinator wired to in-memory collaborators."""

    def _make(
        *,
        scanner,
        engine,
        store=None,
        cache=None,
        probe_override=None,
        settings_override=None,
    ) -> ScanCoordinator:
        return ScanCoordinator(
            scanner=scanner,
            engine=engine,
            probe=probe_override or probe,
            snapshots=store if store is not None else MemoryStore(),
            scorer=SimpleScorer(),
            observer=observer,
            cache=cache,
            settings=settings_override or settings,
        )

    return _make


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'state.db'}"


@pytest.fixture
async def engine(db_url):
    eng = create_engine(db_url)
    await create_all(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def network(probe) -> FakeProbe:
    """The connectivity fake the coordinator fixtures share."""
    return probe
