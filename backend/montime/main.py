"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, get_database_url, settings as default_settings
from .database import build_engine, build_session_factory, close_db, init_db, is_memory_sqlite
from .errors import ConfigurationError, ValidationError
from .routers import alerts_router, alert_settings_router, evaluation_router, metrics_router, monitors_router
from .services.alerts import AlertRecorder
from .services.debounce import DebounceGate
from .services.evaluation import EvaluationService
from .services.incidents import IncidentTracker
from .services.ingestion import IngestionService
from .services.notifier import NotificationDispatcher
from .services.probes import ProbeRunner
from .services.scheduler import SchedulerService
from .utils.locks import KeyedLock

# Configure logging
logging.basicConfig(
    level=getattr(logging, default_settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _wire_services(app: FastAPI, config: Settings, transport: Optional[httpx.AsyncBaseTransport]):
    """Build the engine and every service, and hang them on ``app.state``."""
    database_url = get_database_url(config)
    engine = build_engine(database_url)
    session_factory = build_session_factory(engine)

    max_concurrency = config.max_concurrent_checks
    if is_memory_sqlite(database_url) and max_concurrency > 1:
        # Every session shares the one in-memory connection, and so its transaction
        logger.warning(f"In-memory SQLite: running checks one at a time instead of {max_concurrency}")
        max_concurrency = 1

    # One lock table shared by ingestion, the scheduler and the cron endpoints
    locks = KeyedLock()
    recorder = AlertRecorder(DebounceGate(config.debounce_window_minutes))
    dispatcher = NotificationDispatcher.from_settings(config, transport=transport)
    evaluation = EvaluationService(
        session_factory,
        ProbeRunner(transport=transport),
        dispatcher,
        recorder=recorder,
        tracker=IncidentTracker(),
        locks=locks,
        max_concurrency=max_concurrency,
    )

    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.dispatcher = dispatcher
    app.state.evaluation = evaluation
    app.state.ingestion = IngestionService(recorder=recorder, locks=locks)
    app.state.scheduler = SchedulerService(
        evaluation,
        evaluation_interval_seconds=config.evaluation_interval_seconds,
        monitor_tick_seconds=config.monitor_tick_seconds,
    )


def create_app(config: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    ``transport`` replaces the network for probes and HTTP channels.
    """
    config = config or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan - startup and shutdown."""
        logger.info("Starting Montime")
        _wire_services(app, config, transport)

        await init_db(app.state.engine, config.data_path)
        logger.info("Database initialized")

        if config.scheduler_enabled:
            app.state.scheduler.start()
        else:
            logger.info("Scheduler disabled; evaluation runs only via /api/evaluate")

        yield

        # Shutdown
        app.state.scheduler.stop()
        await close_db(app.state.engine)
        logger.info("Shutdown complete")

    app = FastAPI(
        title="Montime",
        description="Server metrics and uptime monitoring - alert evaluation and notification dispatch",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        logger.warning(f"{request.url.path}: {exc}")
        return JSONResponse(status_code=503, content={"error": str(exc)})

    app.include_router(metrics_router)
    app.include_router(evaluation_router)
    app.include_router(monitors_router)
    app.include_router(alerts_router)
    app.include_router(alert_settings_router)

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=default_settings.web_port)
