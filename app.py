"""
MedAdhere Backend
Main FastAPI application: prescription schedules, adherence ledger,
missed-dose sweeps and reminders
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from datetime import datetime

# Configuration and database
from config import settings
from database import init_db, DatabaseHealthCheck

from api import include_routers
from exceptions import AdherenceError
from services.context import TrackerContext

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


# ==================== LIFESPAN ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown"""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENV}")

    # Initialize database
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    context = getattr(app.state, "context", None) or TrackerContext()
    app.state.context = context

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = context.build_scheduler()
        context.start(scheduler)
    else:
        logger.info("Background scheduler disabled")

    yield

    # Shutdown
    if scheduler is not None:
        await scheduler.stop()
    logger.info(f"Shutting down {settings.APP_NAME}")


# ==================== APP INITIALIZATION ====================

app = FastAPI(
    title=settings.APP_NAME,
    description="""
    ## MedAdhere API

    Medication adherence tracking for doctors and their patients.

    ### Features
    - **Prescriptions**: Doctors prescribe medicines with morning, afternoon and evening timing
    - **Daily Doses**: Patients see today's doses and mark them taken
    - **Missed-Dose Detection**: Pending doses are marked missed once their period has passed
    - **Reminders**: Patients with untaken doses receive one email per period
    - **Live Updates**: Dashboards are notified over WebSocket when doses change
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Attach modular API routers (prefix /api/v1)
include_routers(app)


# ==================== EXCEPTION HANDLERS ====================

def _error_response(status_code: int, message) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": True,
            "message": message,
            "status_code": status_code,
            "timestamp": datetime.utcnow().isoformat()
        }
    )


@app.exception_handler(AdherenceError)
async def adherence_exception_handler(request, exc: AdherenceError):
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return _error_response(exc.status_code, exc.message)


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    response = _error_response(exc.status_code, exc.detail)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return _error_response(500, "An unexpected error occurred" if not settings.DEBUG else str(exc))


# ==================== HEALTH ENDPOINTS ====================

@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - basic health check"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat()
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check endpoint"""
    database = DatabaseHealthCheck.check()
    db_connected = database["status"] == "up"

    return {
        "status": "healthy" if db_connected else "degraded",
        "timestamp": datetime.utcnow().isoformat(),
        "checks": {
            "database": {
                **database,
                "type": "sqlite" if "sqlite" in settings.DATABASE_URL else "postgresql"
            },
            "scheduler": {
                "enabled": settings.SCHEDULER_ENABLED,
                "reminder_cooldown_seconds": settings.REMINDER_COOLDOWN_SECONDS
            },
            "email": {
                "configured": bool(settings.SMTP_HOST)
            }
        },
        "version": settings.APP_VERSION,
        "environment": settings.ENV
    }


# ==================== MAIN ====================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
