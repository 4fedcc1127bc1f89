"""End-to-end tests for the batch evaluation service."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import httpx
import pytest
from sqlalchemy import select

from montime.database import build_engine, build_session_factory, init_db
from montime.errors import ChannelDeliveryError, ConfigurationError
from montime.models import Alert, Incident, Server
from montime.services.evaluation import EvaluationService
from montime.services.incidents import IncidentTracker
from montime.services.notifier import NotificationChannel, NotificationDispatcher
from montime.services.probes import ProbeRunner
from montime.utils.locks import KeyedLock


# ── Helpers ─────────────────────────────────────────────────────


class FakeChannel(NotificationChannel):
    """In-memory channel for testing."""

    def __init__(self, name: str = "email", fail: bool = False) -> None:
        self.name = name
        self.sent = []
        self._fail = fail

    async def send(self, notice, config) -> None:
        if self._fail:
            raise ChannelDeliveryError(self.name, "fake error")
        self.sent.append(notice)


class Upstream:
    """Switchable HTTP upstream for probes."""

    def __init__(self, status: int = 200) -> None:
        self.status = status
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        return httpx.Response(self.status, text="ok")


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


@pytest.fixture
def service(session_factory, channel, upstream) -> EvaluationService:
    return EvaluationService(
        session_factory,
        ProbeRunner(transport=httpx.MockTransport(upstream)),
        NotificationDispatcher({"email": channel}),
        max_concurrency=1,
    )


async def _alerts(session):
    result = await session.execute(select(Alert).order_by(Alert.id))
    return result.scalars().all()


# ── Servers ─────────────────────────────────────────────────────


class TestServerEvaluation:
    async def test_silent_server_goes_down(self, service, session, make_server, channel, now) -> None:
        server = await make_server(last_seen_at=now - timedelta(minutes=5), owner_email="ops@example.com")

        summary = await service.evaluate_servers(now=now)

        assert summary.servers_evaluated == 1
        assert summary.alerts_created == 1
        alerts = await _alerts(session)
        assert [(a.type, a.severity, a.server_id) for a in alerts] == [("down", "critical", server.id)]
        await session.refresh(server)
        assert server.status == "offline"
        assert len(channel.sent) == 1
        assert channel.sent[0].entity_name == "web-1"

    async def test_hot_cpu_is_critical(self, service, session, make_server, make_metric, now) -> None:
        server = await make_server(last_seen_at=now - timedelta(seconds=30))
        await make_metric(server, cpu=95, created_at=now - timedelta(seconds=30))

        await service.evaluate_servers(now=now)

        alert = (await _alerts(session))[0]
        assert alert.type == "cpu_high"
        assert alert.severity == "critical"
        assert alert.current_value == 95
        assert alert.threshold_value == 85

    async def test_latest_sample_is_used(self, service, session, make_server, make_metric, now) -> None:
        server = await make_server()
        await make_metric(server, cpu=99, created_at=now - timedelta(minutes=1))
        await make_metric(server, cpu=20, created_at=now)

        summary = await service.evaluate_servers(now=now)

        assert summary.alerts_created == 0
        assert await _alerts(session) == []

    async def test_repeat_runs_are_debounced(self, service, session, make_server, channel, now) -> None:
        await make_server(last_seen_at=None)

        first = await service.evaluate_servers(now=now)
        second = await service.evaluate_servers(now=now + timedelta(minutes=5))
        third = await service.evaluate_servers(now=now + timedelta(minutes=31))

        assert (first.alerts_created, second.alerts_created, third.alerts_created) == (1, 0, 1)
        assert len(channel.sent) == 2

    async def test_group_settings_apply(
        self, service, session, make_server, make_metric, make_alert_settings, now
    ) -> None:
        server = await make_server(group_id=3)
        await make_metric(server, cpu=70)
        await make_alert_settings(group_id=3, cpu_threshold=60)

        await service.evaluate_servers(now=now)

        alert = (await _alerts(session))[0]
        assert alert.type == "cpu_high"
        assert alert.threshold_value == 60

    async def test_disabled_settings_suppress_alerts(
        self, service, session, make_server, make_alert_settings, channel, now
    ) -> None:
        server = await make_server(last_seen_at=None)
        await make_alert_settings(server_id=server.id, enabled=False)

        summary = await service.evaluate_servers(now=now)

        assert summary.servers_evaluated == 1
        assert await _alerts(session) == []
        assert channel.sent == []

    async def test_channel_failure_keeps_alert(self, session_factory, session, make_server, now) -> None:
        service = EvaluationService(
            session_factory,
            ProbeRunner(),
            NotificationDispatcher({"email": FakeChannel(fail=True)}),
            max_concurrency=1,
        )
        await make_server(last_seen_at=None)

        summary = await service.evaluate_servers(now=now)

        assert summary.alerts_created == 1
        assert summary.notifications_failed == 1
        assert len(await _alerts(session)) == 1

    async def test_missing_tables_raise_configuration_error(self, bare_engine) -> None:
        service = EvaluationService(
            build_session_factory(bare_engine),
            ProbeRunner(),
            NotificationDispatcher({}),
        )
        with pytest.raises(ConfigurationError):
            await service.evaluate_servers()
        with pytest.raises(ConfigurationError):
            await service.check_monitors()


# ── Monitors ────────────────────────────────────────────────────


class TestMonitorChecks:
    async def test_outage_opens_and_closes_incident(
        self, service, session, make_monitor, upstream, channel, now
    ) -> None:
        monitor = await make_monitor(status="up", expected_status_code=200)

        upstream.status = 503
        down = await service.check_monitors(force=True, now=now)
        upstream.status = 200
        up = await service.check_monitors(force=True, now=now + timedelta(minutes=4))

        assert down.results[0].status == "down"
        assert down.results[0].message == "Expected status 200, got 503"
        assert up.results[0].status == "up"

        alerts = await _alerts(session)
        assert [(a.type, a.severity, a.resolved) for a in alerts] == [
            ("monitor_down", "critical", False),
            ("monitor_up", "info", True),
        ]
        assert [n.type for n in channel.sent] == ["monitor_down", "monitor_up"]

        incident = (await session.execute(select(Incident))).scalar_one()
        assert incident.status == "resolved"
        assert incident.duration_seconds == 240

    async def test_interval_respected_unless_forced(self, service, make_monitor, upstream, now) -> None:
        await make_monitor(status="up", last_checked_at=now - timedelta(minutes=1), interval_minutes=5)

        skipped = await service.check_monitors(now=now)
        forced = await service.check_monitors(force=True, now=now)
        due = await service.check_monitors(now=now + timedelta(minutes=6))

        assert skipped.monitors_checked == 0
        assert forced.monitors_checked == 1
        assert due.monitors_checked == 1
        assert upstream.calls == 2

    async def test_disabled_and_unknown_types_skipped(self, service, make_monitor, upstream, now) -> None:
        await make_monitor(name="off", enabled=False)
        await make_monitor(name="weird", type="smtp")

        summary = await service.check_monitors(now=now)

        assert summary.monitors_checked == 0
        assert summary.errors == 0
        assert upstream.calls == 0

    async def test_single_monitor_by_id(self, service, make_monitor, now) -> None:
        await make_monitor(name="a")
        second = await make_monitor(name="b")

        summary = await service.check_monitors(monitor_id=second.id, force=True, now=now)

        assert [r.name for r in summary.results] == ["b"]

    async def test_one_failure_does_not_abort_batch(self, session_factory, make_monitor, upstream, now) -> None:
        class FlakyTracker(IncidentTracker):
            async def record(self, session, monitor, result, now=None):
                if monitor.name == "broken":
                    raise RuntimeError("store hiccup")
                return await super().record(session, monitor, result, now=now)

        service = EvaluationService(
            session_factory,
            ProbeRunner(transport=httpx.MockTransport(upstream)),
            NotificationDispatcher({}),
            tracker=FlakyTracker(),
            max_concurrency=1,
        )
        await make_monitor(name="broken")
        await make_monitor(name="fine")

        summary = await service.check_monitors(now=now)

        assert summary.errors == 1
        assert summary.monitors_checked == 1
        assert summary.results[0].name == "fine"


# ── Run ─────────────────────────────────────────────────────────


class TestRun:
    async def test_run_merges_servers_and_monitors(self, service, make_server, make_monitor, now) -> None:
        await make_server(last_seen_at=None)
        await make_monitor()

        summary = await service.run(now=now)

        assert summary.servers_evaluated == 1
        assert summary.monitors_checked == 1
        assert summary.alerts_created == 1
        assert summary.success

    async def test_overlapping_runs_do_not_duplicate_alerts(self, tmp_path, now) -> None:
        # A file-backed store, so each session gets its own connection
        engine = build_engine(f"sqlite+aiosqlite:///{tmp_path}/montime.db")
        try:
            await init_db(engine)
            factory = build_session_factory(engine)
            async with factory() as session:
                session.add(Server(name="web-1", last_seen_at=None))
                await session.commit()

            locks = KeyedLock()
            service = EvaluationService(factory, ProbeRunner(), NotificationDispatcher({}), locks=locks)
            await asyncio.gather(service.evaluate_servers(now=now), service.evaluate_servers(now=now))

            async with factory() as session:
                assert len(await _alerts(session)) == 1
            assert len(locks) == 0
        finally:
            await engine.dispose()


class TestKeyedLock:
    async def test_serialises_same_key(self) -> None:
        locks = KeyedLock()
        order = []

        async def worker(tag: str) -> None:
            async with locks.hold("server-1"):
                order.append(f"{tag}-in")
                await asyncio.sleep(0.01)
                order.append(f"{tag}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["a-in", "a-out", "b-in", "b-out"]
        assert len(locks) == 0

    async def test_different_keys_do_not_block(self) -> None:
        locks = KeyedLock()
        async with locks.hold("a"):
            assert locks.locked("a")
            assert not locks.locked("b")
            async with locks.hold("b"):
                assert locks.locked("b")
