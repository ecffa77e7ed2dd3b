"""
Main FastAPI Application

Boots the syslog listener, the CloudTrail indexer, the log archiver and the
retention sweep, and serves a small status API next to them.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import List, Optional
import argparse
import asyncio
import logging
import sys

from syslogidx.core.config import Settings, get_settings
from syslogidx.api.v1 import api_v1_router
from syslogidx.services.archive_service import LogArchiver
from syslogidx.services.aws_clients import SQSQueue, S3ObjectStore, create_session
from syslogidx.services.classification_cache import ClassificationCache
from syslogidx.services.cloudtrail_service import CloudTrailIndexer
from syslogidx.services.elasticsearch_service import ElasticsearchService
from syslogidx.services.listener import SyslogListener
from syslogidx.services.retention_service import RetentionSweep
from syslogidx.services.syslog_service import SyslogHandler

logger = logging.getLogger(__name__)

# Extra seconds given to the loops on shutdown on top of a pending SQS long poll
SHUTDOWN_GRACE = 5


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.INFO if not settings.debug else logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


async def _stop_tasks(tasks: List[asyncio.Task], timeout: float) -> None:
    if not tasks:
        return
    done, pending = await asyncio.wait(tasks, timeout=timeout)
    for task in pending:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    for task in done:
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Background task {task.get_name()} failed: {task.exception()!r}")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Anything that fails here (listener bind, AWS credentials, queue URL)
        aborts startup and the process exits.
        """
        logger.info(f"Starting {settings.app_name}...")
        stop_event = asyncio.Event()
        tasks: List[asyncio.Task] = []

        backend = ElasticsearchService(settings)
        try:
            await backend.connect()
        except Exception as e:
            logger.warning(f"Elasticsearch not available yet, indexing will fail until it is: {e}")
        app.state.backend = backend

        cache = ClassificationCache(settings.json_apps)
        app.state.classification_cache = cache

        try:
            session = None
            if settings.cloudtrail or settings.archive:
                session = create_session(settings)

            archiver = None
            if settings.archive:
                archiver = LogArchiver(settings, S3ObjectStore.from_session(session), stop_event)
            app.state.archiver = archiver
            handler = SyslogHandler(backend, cache, settings.app_types, archiver)

            sweep = None
            if settings.retain_days > 0:
                sweep = RetentionSweep(settings, backend, stop_event)
                tasks.append(asyncio.create_task(sweep.run(), name="retention"))
            app.state.retention_sweep = sweep

            indexer = None
            if settings.cloudtrail:
                indexer = CloudTrailIndexer(
                    settings,
                    backend,
                    SQSQueue.from_session(session),
                    S3ObjectStore.from_session(session),
                    stop_event
                )
                await indexer.setup()
                tasks.append(asyncio.create_task(indexer.run(), name="cloudtrail"))
            app.state.cloudtrail_indexer = indexer

            if archiver is not None:
                tasks.append(asyncio.create_task(archiver.run(), name="archive"))

            listener = SyslogListener(settings, handler)
            await listener.start()
            app.state.listener = listener
        except BaseException:
            stop_event.set()
            await _stop_tasks(tasks, SHUTDOWN_GRACE)
            await backend.disconnect()
            raise

        logger.info("Application startup complete")

        yield

        logger.info(f"Shutting down {settings.app_name}...")
        await listener.stop()
        # After the listener, so the archiver's final flush sees every entry
        stop_event.set()
        await _stop_tasks(tasks, settings.cloudtrail_wait_time + SHUTDOWN_GRACE)
        await backend.disconnect()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Syslog and CloudTrail indexing into daily Elasticsearch indices",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.settings = settings

    app.include_router(api_v1_router)

    @app.get("/", tags=["root"])
    async def root():
        """Root endpoint with service information"""
        return {
            "service": settings.app_name,
            "version": settings.app_version,
            "status": "running",
            "syslog": f"{settings.syslog_host}:{settings.syslog_port}",
            "elasticsearch": settings.elasticsearch_url,
            "cloudtrail": settings.cloudtrail,
            "archive": settings.archive,
            "retain_days": settings.retain_days,
            "health": "/api/v1/health"
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Internal server error",
                "error": str(exc) if settings.debug else "An error occurred"
            }
        )

    return app


async def run_cleanup(settings: Settings) -> List[str]:
    """Run a single retention sweep."""
    backend = ElasticsearchService(settings)
    try:
        await backend.connect()
        return await RetentionSweep(settings, backend).sweep()
    finally:
        await backend.disconnect()


def parse_args(argv: Optional[List[str]] = None) -> dict:
    """Command line flags, returned as settings overrides."""
    parser = argparse.ArgumentParser(description="Index syslog and CloudTrail logs into Elasticsearch")
    parser.add_argument("--archive", action="store_true", default=None, help="Enable log archiving to S3")
    parser.add_argument("--cleanup", action="store_true", default=None, help="Delete old indexes and exit")
    parser.add_argument("--cloudtrail", action="store_true", default=None, help="Enable CloudTrail log indexing")
    parser.add_argument("--retaindays", type=int, dest="retain_days", help="Number of days of indexes to retain")
    parser.add_argument("--cloudtrail-sqs-queue", dest="cloudtrail_sqs_queue", help="CloudTrail SQS queue name")
    args = parser.parse_args(argv)
    return {k: v for k, v in vars(args).items() if v is not None}


def run(argv: Optional[List[str]] = None) -> int:
    settings = Settings(**parse_args(argv))
    configure_logging(settings)

    if settings.cleanup:
        asyncio.run(run_cleanup(settings))
        return 0

    import uvicorn
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level="debug" if settings.debug else "info"
    )
    return 0


app = create_app()


if __name__ == "__main__":
    sys.exit(run())
