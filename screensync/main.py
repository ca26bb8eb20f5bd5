import logging
import os
from datetime import datetime, timezone
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from screensync.db import Base, engine, ensure_sqlite_schema
from screensync.api import playback, screen, worker
from screensync.models import advertising, location, setting, screen_sync  # noqa: F401  registers tables
from screensync.services.runtime import reconciler, remote
from screensync.services.runtime import worker as reconciliation_worker
from screensync.services.worker import WORKER_ENABLED

LOG_LEVEL = (os.getenv("SCREENSYNC_LOG_LEVEL", "INFO") or "INFO").strip().upper()
API_KEY = os.getenv("SCREENSYNC_API_KEY", "").strip()
QUIET_ACCESS_LOG = os.getenv("SCREENSYNC_QUIET_ACCESS_LOG", "1").strip().lower() in {"1", "true", "yes", "on"}

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

if QUIET_ACCESS_LOG:
    # Keep warning/error lines, suppress normal access noise (200/201 etc).
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

Base.metadata.create_all(bind=engine)
ensure_sqlite_schema()

app = FastAPI(title="screensync")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def root():
    return {
        "ok": True,
        "service": "screensync",
        "time_utc": datetime.now(timezone.utc).isoformat(),
        "docs": "/docs",
    }


@app.get("/healthz")
def healthz():
    return {
        "ok": True,
        "remote_configured": remote.configured,
        "worker_running": reconciliation_worker.running,
        "busy_screens": reconciler.locks.held(),
    }


@app.on_event("startup")
async def startup_events() -> None:
    if not remote.configured:
        logger.warning("SCREENSYNC_REMOTE_TOKEN is not set; reconciliation runs will be skipped")
    if WORKER_ENABLED:
        reconciliation_worker.start()


@app.on_event("shutdown")
async def shutdown_events() -> None:
    await reconciliation_worker.stop()
    await remote.close()


@app.middleware("http")
async def api_key_middleware(request: Request, call_next):
    if not API_KEY:
        return await call_next(request)
    path = request.url.path
    if path.startswith("/docs") or path.startswith("/openapi.json") or path.startswith("/redoc") or path == "/healthz":
        return await call_next(request)
    if request.headers.get("X-API-Key") != API_KEY:
        return JSONResponse({"detail": "Unauthorized"}, status_code=401)
    return await call_next(request)

app.include_router(screen.router)
app.include_router(playback.router)
app.include_router(worker.router)
