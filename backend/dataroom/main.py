import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

# Load environment variables
load_dotenv()

from dataroom.api.routes import settings
from dataroom.api import websocket
from dataroom.api.deps import get_coordinator, limiter, shutdown_coordinator
from dataroom.core.config import settings as app_settings
from dataroom.core.errors import (
    Forbidden,
    NotFound,
    RemoteWriteFailure,
    ValidationError,
    WorkspaceError,
)
from dataroom.db.database import connect_db, disconnect_db
from dataroom.modules import MODULES
from dataroom.services.event_bus import event_bus

logging.basicConfig(
    level=app_settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Data Room Workspace API",
    version="1.0.0",
    description="Backend API for data room workspaces"
)

# Attach limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

ERROR_STATUS = {
    ValidationError: 400,
    NotFound: 404,
    Forbidden: 403,
    RemoteWriteFailure: 502,
}


@app.exception_handler(WorkspaceError)
async def workspace_error_handler(request: Request, exc: WorkspaceError):
    status_code = next(
        (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
        500,
    )
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
for module in MODULES:
    module.include(app)
app.include_router(settings.router, prefix="/api")
app.include_router(websocket.router)


@app.get("/")
async def root():
    return {
        "name": "Data Room Workspace API",
        "version": "1.0.0",
        "docs": "/docs",
        "modules": [module.describe() for module in MODULES]
    }


@app.get("/health")
async def health():
    return {"status": "healthy", "sync": get_coordinator().status}


@app.on_event("startup")
async def startup():
    """Connect the content cache and start the sync coordinator."""
    await connect_db()
    coordinator = get_coordinator()
    coordinator.add_listener(event_bus.publish)
    await coordinator.start()
    logger.info("Metadata store mode: %s", app_settings.metadata_store_mode)


@app.on_event("shutdown")
async def shutdown():
    """Stop the coordinator and disconnect from database on shutdown."""
    await shutdown_coordinator()
    await disconnect_db()
