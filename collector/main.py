"""Entry point wiring the FastAPI application for the metrics collector."""

from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI
from starlette.middleware.gzip import GZipMiddleware

from shared.errors import MetricsError, UnsupportedOperationError

from .api import routes
from .api.middleware import RequestBodyMiddleware
from .config import CollectorConfig
from .core.checkpoint import SnapshotScheduler
from .core.database import DatabaseStorage
from .core.memory import InMemoryStorage
from .core.repository import DEFAULT_RETRY_DELAYS, MetricsRepository
from .core.storage import MetricsStorage

logger = logging.getLogger(__name__)


def build_storage(config: CollectorConfig) -> MetricsStorage:
    """Select the storage backend once: a configured DSN means the database."""
    if config.database_dsn:
        return DatabaseStorage.from_dsn(config.database_dsn)
    return InMemoryStorage(
        file_path=config.file_storage_path,
        store_interval=config.store_interval,
    )


def build_app(
    config: CollectorConfig | None = None,
    storage: MetricsStorage | None = None,
    retry_delays: tuple[float, ...] = DEFAULT_RETRY_DELAYS,
) -> FastAPI:
    """Create and configure the FastAPI instance."""
    config = config or CollectorConfig.from_env()
    storage = storage or build_storage(config)
    repository = MetricsRepository(storage, retry_delays=retry_delays)

    snapshots = isinstance(storage, InMemoryStorage)
    scheduler = None
    if snapshots and config.store_interval > 0:
        scheduler = SnapshotScheduler(storage, interval=config.store_interval)

    app = FastAPI(title="Metrics Collector", version="0.1.0")
    app.state.storage = storage
    app.include_router(routes.router)
    app.dependency_overrides[routes.get_repository] = lambda: repository
    routes.install_error_handlers(app)
    app.add_middleware(GZipMiddleware, minimum_size=512)
    app.add_middleware(RequestBodyMiddleware, key=config.key)

    @app.on_event("startup")
    async def _startup() -> None:
        if isinstance(storage, DatabaseStorage):
            await storage.create_schema()
        if config.restore:
            await _restore(storage)
        if scheduler:
            scheduler.start()
        logger.info("Collector ready on %s (%s)", config.address, type(storage).__name__)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        if scheduler:
            await scheduler.stop()
        if snapshots:
            try:
                await storage.write_to_file()
            except MetricsError:
                logger.exception("Failed to write storage content to file")
        await storage.close()
        logger.info("Collector stopped")

    return app


async def _restore(storage: MetricsStorage) -> None:
    try:
        restored = await storage.restore_from_file()
    except UnsupportedOperationError as exc:
        logger.info("Restore skipped: %s", exc.message)
    except MetricsError:
        logger.exception("Failed to restore storage from file")
    else:
        if restored:
            logger.info("Storage has been restored from file")
        else:
            logger.info("No prior state to restore")


def run() -> None:
    config = CollectorConfig.from_env()
    logging.basicConfig(level=config.log_level)
    uvicorn.run(build_app(config), host=config.host, port=config.port)


app = build_app()


if __name__ == "__main__":
    run()
