"""FastAPI main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from taskgate.core.config import settings
from taskgate.core.exceptions import TaskGateError
from taskgate.core.middleware import setup_middleware
from taskgate.db.session import get_db

from taskgate.api.audit import router as audit_router
from taskgate.api.permissions import router as permissions_router
from taskgate.api.roles import router as roles_router
from taskgate.api.tasks import router as tasks_router
from taskgate.api.users import router as users_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("taskgate")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    from taskgate.services.audit_dispatcher import audit_dispatcher
    from taskgate.services.cache_service import permission_cache

    logger.info("Starting %s API", settings.APP_NAME)
    audit_dispatcher.start()

    if settings.FEATURE_PERMISSION_CACHE:
        if permission_cache.health_check():
            logger.info("Redis connected, permission cache enabled")
        else:
            logger.warning("Redis not available, permissions are read from the database")

    yield

    logger.info("Shutting down %s API", settings.APP_NAME)
    audit_dispatcher.stop()
    if audit_dispatcher.dropped or audit_dispatcher.recorder.failed_writes:
        logger.warning(
            "Audit trail lost entries this run: %s dropped, %s failed writes",
            audit_dispatcher.dropped, audit_dispatcher.recorder.failed_writes,
        )


app = FastAPI(
    title="Taskgate API",
    description="Permission-gated task workflow with an audit trail",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Middleware
setup_middleware(app)


@app.exception_handler(TaskGateError)
async def taskgate_exception_handler(request: Request, exc: TaskGateError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
    )


# Register routers
app.include_router(permissions_router, prefix="/api")
app.include_router(roles_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(tasks_router, prefix="/api")
app.include_router(audit_router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/api/health")
async def health(db: Session = Depends(get_db)):
    """Health check: database, and Redis when the permission cache is on."""
    from taskgate.services.cache_service import permission_cache

    db_ok = False
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        logger.warning("health check: database unreachable", exc_info=True)

    result = {
        "database": "ok" if db_ok else "error",
        "status": "ok" if db_ok else "degraded",
    }
    if settings.FEATURE_PERMISSION_CACHE:
        result["redis"] = "ok" if permission_cache.health_check() else "error"
    return result
