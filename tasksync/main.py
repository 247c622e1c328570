from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .db import Base, engine
from .logging_setup import purge_old_logs, setup_logging
from .realtime import BroadcastChannel
from .repositories import NotFoundError
from .routers import api_auth, api_events, api_notifications, api_tasks
from .tasks import KeyedLock
from .version import APP_VERSION


settings = get_settings()

setup_logging(level=settings.logging.level, log_dir=settings.logging.directory)
logger = logging.getLogger("tasksync")


app = FastAPI(title=settings.app.name, version=APP_VERSION)

# The auth cookie is sent cross-origin, so origins must be listed explicitly.
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.app.client_origins),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(api_auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(api_tasks.router, prefix="/api/tasks", tags=["tasks"])
app.include_router(api_notifications.router, prefix="/api/notifications", tags=["notifications"])
app.include_router(api_events.router, prefix="/api/events", tags=["events"])


scheduler: BackgroundScheduler | None = None


@app.exception_handler(NotFoundError)
def _not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse({"detail": f"{exc.kind} not found"}, status_code=404)


def _configure_logging_jobs(sched: BackgroundScheduler) -> None:
    log_dir = settings.logging.directory
    retention = int(settings.logging.retention_days)

    def _purge_logs_job() -> None:
        try:
            deleted = purge_old_logs(retention_days=retention, log_dir=log_dir)
            if deleted:
                logger.info("Purged %s old log files", deleted)
        except Exception:
            logger.exception("Error while purging old log files")

    sched.add_job(_purge_logs_job, "interval", hours=1, id="log_retention", replace_existing=True)


@app.on_event("startup")
def on_startup() -> None:
    global scheduler

    Base.metadata.create_all(bind=engine)

    # One live channel per process, handed to services via deps.get_channel.
    app.state.channel = BroadcastChannel(
        queue_size=int(settings.realtime.queue_size),
        max_sessions=int(settings.realtime.max_sessions),
    )
    app.state.task_locks = KeyedLock() if settings.tasks.serialize_updates else None

    scheduler = BackgroundScheduler(timezone="UTC")
    try:
        _configure_logging_jobs(scheduler)
    except Exception:
        logger.exception("Failed to configure logging jobs")
    scheduler.start()
    app.state.scheduler = scheduler
    logger.info("%s %s started", settings.app.name, APP_VERSION)


@app.on_event("shutdown")
def on_shutdown() -> None:
    global scheduler
    channel = getattr(app.state, "channel", None)
    if channel is not None:
        channel.disconnect_all()
    if scheduler:
        scheduler.shutdown(wait=False)
        scheduler = None


@app.get("/", include_in_schema=False)
def root():
    return {"message": f"{settings.app.name} API", "status": "running"}


@app.get("/healthz", include_in_schema=False)
def healthz(request: Request):
    channel = getattr(request.app.state, "channel", None)
    return {
        "status": "ok",
        "version": APP_VERSION,
        "live_sessions": channel.session_count if channel is not None else 0,
    }
