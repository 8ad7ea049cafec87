from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import asyncio
import logging
from typing import Any, Optional

import uvicorn
from prometheus_fastapi_instrumentator import Instrumentator

from fitquest.core.config import settings
from fitquest.core.logging import configure_logging
from fitquest.core.redis import close_redis, get_redis
from fitquest.reminders.api import notifications_router, router as reminders_router, ws_router
from fitquest.reminders.exceptions import StoreUnavailableError
from fitquest.reminders.notifications import PendingNotificationQueue
from fitquest.reminders.repository import ReminderStore
from fitquest.reminders.scheduler import ReminderScheduler
from fitquest.reminders.service import ReminderService
from fitquest.reminders.sink import WebSocketNotificationSink
from fitquest.websocket import ConnectionManager

configure_logging(settings.LOG_LEVEL)

logger = logging.getLogger(__name__)


def build_lifespan(redis_client: Optional[Any] = None):
    """Lifespan that wires the scheduler to the store and sink.

    ``redis_client`` overrides the shared client (tests pass an in-memory one).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info(f"Starting up {settings.PROJECT_NAME}...")
        client = redis_client if redis_client is not None else get_redis()

        store = ReminderStore(client, default_interval_minutes=settings.DEFAULT_INTERVAL_MINUTES)
        queue = PendingNotificationQueue(client)
        manager = ConnectionManager()
        scheduler = ReminderScheduler(asyncio.get_running_loop())
        service = ReminderService(scheduler, store, WebSocketNotificationSink(manager, queue))

        app.state.connection_manager = manager
        app.state.notification_queue = queue
        app.state.reminder_service = service

        try:
            await store.ping()
            logger.info("[Startup] Redis connection established")
        except StoreUnavailableError as e:
            logger.warning(f"[Startup] Redis connection failed: {e}")

        if settings.RESTART_REMINDERS_ON_STARTUP:
            try:
                started = await service.restart_all()
                logger.info(f"✅ [Startup] Scheduled {started} active reminders")
            except StoreUnavailableError as e:
                logger.error(f"❌ [Startup] Could not load reminders, starting with none scheduled: {e}")
        else:
            logger.info("⏸️ [Startup] Reminder restart disabled by configuration")

        yield

        # Shutdown
        logger.info(f"Shutting down {settings.PROJECT_NAME}...")
        try:
            stopped = await service.shutdown(timeout=settings.SHUTDOWN_DRAIN_TIMEOUT_SECONDS)
            logger.info(f"[Shutdown] Stopped {stopped} reminder sessions")
        finally:
            if redis_client is None:
                await close_redis()
        logger.info(f"✅ {settings.PROJECT_NAME} shutdown complete")

    return lifespan


def create_app(redis_client: Optional[Any] = None) -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        lifespan=build_lifespan(redis_client),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
        return JSONResponse(status_code=503, content={"error": "Reminder store unavailable"})

    @app.get(f"{settings.API_PREFIX}/health")
    async def health_check():
        return {"status": "ok"}

    app.include_router(reminders_router, prefix=f"{settings.API_PREFIX}/reminders", tags=["reminders"])
    app.include_router(
        notifications_router, prefix=f"{settings.API_PREFIX}/notifications", tags=["notifications"]
    )
    app.include_router(ws_router)

    if settings.METRICS_ENABLED:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "fitquest.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.is_development,
    )
