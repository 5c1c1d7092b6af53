import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from flowmetrics.config import settings
from flowmetrics.metrics.router import router as metrics_router
from flowmetrics.middleware.error_handler import ErrorHandlerMiddleware
from flowmetrics.middleware.logging import RequestLoggingMiddleware
from flowmetrics.queue.router import router as queue_router
from flowmetrics.webhooks.router import router as webhooks_router


def configure_logging() -> None:
    renderer = structlog.processors.JSONRenderer() if settings.LOG_FORMAT == "json" else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.LOG_LEVEL.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(),
    )


configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    from flowmetrics.scheduler import start_scheduler, stop_scheduler

    tasks = start_scheduler() if settings.SCHEDULER_ENABLED else []
    yield
    await stop_scheduler(tasks)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Flow Metrics Platform",
        version="0.1.0",
        docs_url="/docs",
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(ErrorHandlerMiddleware)

    app.include_router(webhooks_router, prefix="/api/v1")
    app.include_router(queue_router, prefix="/api/v1")
    app.include_router(metrics_router, prefix="/api/v1")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
