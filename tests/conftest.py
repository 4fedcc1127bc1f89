"""Shared fixtures: an in-memory store and row factories."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from montime import models  # noqa: F401  (registers tables on Base.metadata)
from montime.database import Base, build_engine, build_session_factory
from montime.models import Alert, AlertSettings, Metric, Monitor, Server

NOW = datetime(2026, 1, 15, 12, 0, 0)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
async def engine():
    engine = build_engine("sqlite+aiosqlite://")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def bare_engine():
    """An engine over a store with no tables at all."""
    engine = build_engine("sqlite+aiosqlite://")
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


# ── Row factories ───────────────────────────────────────────────


@pytest.fixture
def make_server(session):
    async def factory(**fields) -> Server:
        fields.setdefault("name", "web-1")
        fields.setdefault("status", "online")
        fields.setdefault("last_seen_at", NOW)
        server = Server(**fields)
        session.add(server)
        await session.commit()
        return server

    return factory


@pytest.fixture
def make_metric(session):
    async def factory(server: Server, cpu=10.0, memory=20.0, disk=30.0, created_at=None) -> Metric:
        metric = Metric(
            server_id=server.id,
            cpu_usage=cpu,
            memory_usage=memory,
            disk_usage=disk,
            created_at=created_at or NOW,
        )
        session.add(metric)
        await session.commit()
        return metric

    return factory


@pytest.fixture
def make_monitor(session):
    async def factory(**fields) -> Monitor:
        fields.setdefault("name", "homepage")
        fields.setdefault("type", "http")
        fields.setdefault("url", "https://example.com")
        fields.setdefault("interval_minutes", 5)
        fields.setdefault("timeout_seconds", 5)
        monitor = Monitor(**fields)
        session.add(monitor)
        await session.commit()
        return monitor

    return factory


@pytest.fixture
def make_alert(session):
    async def factory(alert_type: str = "cpu_high", age: timedelta = timedelta(0), **fields) -> Alert:
        fields.setdefault("severity", "warning")
        fields.setdefault("message", f"{alert_type} alert")
        alert = Alert(type=alert_type, created_at=NOW - age, **fields)
        session.add(alert)
        await session.commit()
        return alert

    return factory


@pytest.fixture
def make_alert_settings(session):
    async def factory(**fields) -> AlertSettings:
        row = AlertSettings(**fields)
        session.add(row)
        await session.commit()
        return row

    return factory
