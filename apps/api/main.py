from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
import logging

from .errors import register_error_handlers
from .routers import patients, sessions, readings, reports, emergency, analytics
from .services.storage import Storage, DbConfig
from .settings import api_settings
from packages.dialysis_core.schemas import HealthStatus

logging.basicConfig(level=api_settings.log_level)
logger = logging.getLogger(__name__)

def create_storage() -> Storage:
    return Storage(DbConfig(
        url=api_settings.mongodb_uri,
        database=api_settings.mongodb_database,
        timeout_ms=api_settings.mongodb_timeout_ms,
    ))

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the document store before serving, close it on shutdown."""
    logger.info("Starting up Dialysis Record Service...")

    storage = create_storage()
    await run_in_threadpool(storage.connect)
    app.state.storage = storage
    logger.info("Database storage service configured")

    yield

    logger.info("Shutting down...")
    app.state.storage = None
    storage.close()

app = FastAPI(
    title="Dialysis Record Service",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/api/docs" if api_settings.debug else None,
    redoc_url="/api/redoc" if api_settings.debug else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=api_settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(patients.router)
app.include_router(sessions.router)
app.include_router(readings.router)
app.include_router(reports.router)
app.include_router(emergency.router)
app.include_router(analytics.router)

@app.get("/api")
def api_root():
    return {"message": "API is working"}

@app.get("/api/health", response_model=HealthStatus)
def health(request: Request):
    """Process status plus store connectivity; always 200."""
    storage = getattr(request.app.state, "storage", None)
    connected = storage is not None and storage.ping()
    return HealthStatus(
        timestamp=datetime.now(timezone.utc),
        database="connected" if connected else "disconnected"
    )

static_dir = Path(api_settings.static_dir)
dashboard = static_dir / api_settings.dashboard_file

if dashboard.is_file():
    @app.get("/", include_in_schema=False)
    def dashboard_page():
        return FileResponse(dashboard)

if static_dir.is_dir():
    app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
else:
    logger.info("Static directory %s not found, dashboard assets are not served", static_dir)
