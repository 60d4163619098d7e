"""Shared test fixtures for backend tests.

Schedulers and sessions are built from the fakes in ``tests.fakes`` so the
suite runs without a camera, a detection model, or Redis.
"""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from common.config.scheduler import SchedulerSettings
from cv.scheduler import FrameScheduler
from tests.fakes import (
    FakeClock,
    FakeSource,
    RecordingRenderer,
    RecordingTelemetry,
    ScriptedDetector,
    SleepingDetector,
)

# Fast settings for tests that run the loop on a real event loop.
FAST_SETTINGS = SchedulerSettings(
    target_fps=1000.0,
    min_delay_ms=1.0,
    max_delay_ms=5.0,
    fallback_delay_ms=2.0,
)


# ---------- Scheduler fixtures ----------

@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def source() -> FakeSource:
    return FakeSource(width=640, height=480)


@pytest.fixture()
def renderer() -> RecordingRenderer:
    return RecordingRenderer()


@pytest.fixture()
def telemetry() -> RecordingTelemetry:
    return RecordingTelemetry()


@pytest.fixture()
def scheduler_factory(clock, source, renderer, telemetry):
    """Build a FrameScheduler on the fake clock; keyword overrides win."""

    def _factory(**kwargs) -> FrameScheduler:
        defaults = dict(
            source=source,
            detector=ScriptedDetector(clock),
            working_size=(320, 240),
            settings=SchedulerSettings(),
            renderer=renderer,
            telemetry=telemetry,
            session_id="test",
            clock=clock,
        )
        defaults.update(kwargs)
        return FrameScheduler(**defaults)

    return _factory


@pytest.fixture()
def fast_scheduler_factory():
    """Build a FrameScheduler on the real clock with millisecond delays."""

    def _factory(**kwargs) -> FrameScheduler:
        defaults = dict(
            source=FakeSource(),
            detector=SleepingDetector(),
            working_size=(32, 24),
            settings=FAST_SETTINGS,
            renderer=RecordingRenderer(),
            telemetry=RecordingTelemetry(),
        )
        defaults.update(kwargs)
        return FrameScheduler(**defaults)

    return _factory


# ---------- FastAPI test client ----------

@pytest.fixture()
def fake_build_session(monkeypatch):
    """Patch api.build_session so sessions use fakes instead of camera + YOLO."""
    import api
    from session import DetectionSession

    created: list[DetectionSession] = []

    def _build(config):
        scheduler = FrameScheduler(
            source=FakeSource(),
            detector=SleepingDetector(delay=0.001),
            working_size=(32, 24),
            settings=FAST_SETTINGS,
            renderer=RecordingRenderer(),
            telemetry=RecordingTelemetry(),
        )
        session = DetectionSession(scheduler, session_id=config.session_id)
        created.append(session)
        return session

    monkeypatch.setattr(api, "build_session", _build)
    return created


@pytest.fixture()
def api_client(fake_build_session):
    import api

    with TestClient(api.app) as c:
        yield c
