"""Ingestion service - the fast path run on every metric push.

Status and alerting here use the fixed thresholds of
``evaluator.ingest_status``, not the server's alert settings. The batch
evaluator is the authoritative path; see DESIGN.md.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import ConfigurationError, ValidationError
from ..models import Alert, Metric, Server
from ..schemas.settings import ThresholdConfig
from ..utils.db_utils import raise_if_missing_relation, retry_on_lock, utcnow
from ..utils.locks import KeyedLock
from .alert_settings import resolve_threshold_config
from .alerts import AlertRecorder
from .evaluator import ingest_condition, ingest_status

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("cpu", "memory", "disk")
OPTIONAL_FLOAT_FIELDS = ("load_average",)
OPTIONAL_INT_FIELDS = ("network_in", "network_out", "uptime", "processes")


@dataclass
class MetricSample:
    """A validated ingestion payload."""
    cpu: float
    memory: float
    disk: float
    network_in: Optional[int] = None
    network_out: Optional[int] = None
    load_average: Optional[float] = None
    uptime: Optional[int] = None
    processes: Optional[int] = None


@dataclass
class IngestOutcome:
    """What a push produced. ``alert`` is set only for a new, committed alert."""
    status: str
    server_name: str
    alert: Optional[Alert] = None
    config: Optional[ThresholdConfig] = None


def _number(name: str, value: Any) -> float:
    # bool is an int subclass; true/false are not readings
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"Field '{name}' must be numeric")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Field '{name}' must be numeric") from None
    if math.isnan(number) or math.isinf(number):
        raise ValidationError(f"Field '{name}' must be a finite number")
    return number


def parse_sample(payload: Any) -> MetricSample:
    """Validate a raw JSON payload. Raises ValidationError."""
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    missing = [name for name in REQUIRED_FIELDS if payload.get(name) is None]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(REQUIRED_FIELDS)}")

    values = {name: _number(name, payload[name]) for name in REQUIRED_FIELDS}
    for name in OPTIONAL_FLOAT_FIELDS:
        if payload.get(name) is not None:
            values[name] = _number(name, payload[name])
    for name in OPTIONAL_INT_FIELDS:
        if payload.get(name) is not None:
            values[name] = int(_number(name, payload[name]))
    return MetricSample(**values)


class IngestionService:
    """Stores pushed samples and raises the fast-path alert."""

    def __init__(self, recorder: Optional[AlertRecorder] = None, locks: Optional[KeyedLock] = None):
        self.recorder = recorder or AlertRecorder()
        self.locks = locks or KeyedLock()

    async def authenticate(self, session: AsyncSession, token: str) -> Optional[Server]:
        """The server owning ``token``, if any."""
        if not token:
            return None
        try:
            result = await session.execute(select(Server).where(Server.api_key == token))
        except DBAPIError as e:
            raise_if_missing_relation(e, "Servers table")
            raise
        return result.scalar_one_or_none()

    async def ingest(
        self,
        session: AsyncSession,
        server: Server,
        payload: Any,
        now: Optional[datetime] = None,
    ) -> IngestOutcome:
        """Validate and store one push. Nothing is evaluated for an invalid payload.

        The sample and the server's status are committed first. Alerting is
        best-effort: if it fails the push still succeeds, without an alert.
        """
        sample = parse_sample(payload)
        now = now or utcnow()
        status = ingest_status(sample.cpu, sample.memory, sample.disk)
        # A rollback expires the instance; keep what is needed afterwards
        server_id, server_name = server.id, server.name
        outcome = IngestOutcome(status=status, server_name=server_name)

        async with self.locks.hold(("server", server_id)):
            session.add(Metric(
                server_id=server_id,
                cpu_usage=sample.cpu,
                memory_usage=sample.memory,
                disk_usage=sample.disk,
                network_in=sample.network_in,
                network_out=sample.network_out,
                load_average=sample.load_average,
                uptime=sample.uptime,
                processes=sample.processes,
                created_at=now,
            ))
            server.status = status
            server.last_seen_at = now
            await retry_on_lock(session.commit)

            condition = ingest_condition(sample.cpu, sample.memory, sample.disk)
            if condition is not None:
                try:
                    config = await resolve_threshold_config(session, server=server)
                    if config.enabled:
                        alert = await self.recorder.record(session, condition, server_id=server_id, now=now)
                        await retry_on_lock(session.commit)
                        outcome.alert, outcome.config = alert, config
                except (ConfigurationError, DBAPIError) as e:
                    await session.rollback()
                    logger.warning(f"Metrics from {server_name} stored, but alerting failed: {e}")

        logger.debug(f"Metrics from {server_name}: status={status}")
        return outcome
