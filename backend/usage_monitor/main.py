"""FastAPI main application."""

import logging
from typing import Optional
from fastapi import FastAPI

from . import __version__
from .api import router as api_router
from .config import Settings, get_settings
from .database import create_engine, create_session_factory, init_aggregate_schema
from .services.alerter import AlertEngine
from .services.breaker import CircuitBreaker
from .services.model_status import ModelStatusService
from .services.notifier import TelegramNotifier
from .services.retention import clean_old_data
from .services.scheduler import Job, Scheduler
from .services.snapshots import snapshot_channels
from .services.syncer import SyncEngine

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    )


def build_scheduler(app: FastAPI) -> Scheduler:
    """Wire the periodic jobs against the application's services."""
    settings: Settings = app.state.settings
    state = app.state

    async def run_snapshots():
        await snapshot_channels(state.source_sessions, state.aggregate_sessions)

    async def run_retention():
        await clean_old_data(state.aggregate_sessions, settings.retention_days)

    return Scheduler([
        Job("sync", settings.sync_interval_seconds, state.sync_engine.sync),
        Job("alerts", settings.alert_interval_seconds, state.alert_engine.check_alerts),
        Job("channel_snapshots", settings.snapshot_interval_seconds, run_snapshots, run_immediately=True),
        Job("retention", settings.retention_interval_seconds, run_retention),
    ])


def create_app(settings: Optional[Settings] = None, start_jobs: bool = True) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Usage Monitor",
        description="Usage aggregation and alerting for an API gateway",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    aggregate_engine = create_engine(settings.aggregate_database_url)
    source_engine = create_engine(settings.source_database_url, timeout=settings.external_call_timeout)

    app.state.settings = settings
    app.state.aggregate_engine = aggregate_engine
    app.state.source_engine = source_engine
    app.state.aggregate_sessions = create_session_factory(aggregate_engine)
    app.state.source_sessions = create_session_factory(source_engine)

    app.state.breaker = CircuitBreaker(settings.breaker_database_url, timeout=settings.external_call_timeout)
    app.state.notifier = TelegramNotifier(
        bot_token=settings.telegram_bot_token,
        chat_id=settings.telegram_chat_id,
        api_base=settings.telegram_api_base,
        timeout=settings.external_call_timeout,
    )
    app.state.sync_engine = SyncEngine(
        app.state.source_sessions,
        app.state.aggregate_sessions,
        batch_size=settings.sync_batch_size,
    )
    app.state.alert_engine = AlertEngine(
        app.state.aggregate_sessions,
        app.state.source_sessions,
        breaker=app.state.breaker,
        notifier=app.state.notifier,
        cooldown_seconds=settings.alert_cooldown_seconds,
        utc_offset_hours=settings.wall_clock_utc_offset_hours,
    )
    app.state.model_status = ModelStatusService(app.state.source_sessions)
    app.state.scheduler = build_scheduler(app)

    # Include API routes
    app.include_router(api_router)

    @app.get("/healthz")
    async def healthcheck():
        """Health check endpoint."""
        return {"status": "ok", "service": "usage-monitor", "jobs_running": app.state.scheduler.running}

    @app.on_event("startup")
    async def on_startup():
        logger.info("Usage monitor starting...")
        await init_aggregate_schema(aggregate_engine)
        logger.info(f"Telegram: {'configured' if app.state.notifier.configured else 'not configured'}")
        logger.info(f"Circuit breaker: {'configured' if settings.breaker_database_url else 'not configured'}")
        if start_jobs:
            app.state.scheduler.start()

    @app.on_event("shutdown")
    async def on_shutdown():
        logger.info("Usage monitor shutting down...")
        await app.state.scheduler.stop()
        await app.state.breaker.close()
        await source_engine.dispose()
        await aggregate_engine.dispose()

    return app


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
