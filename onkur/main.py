"""
Main FastAPI application for the Onkur service
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from onkur.config import settings
from onkur.api import admin, auth, events, gallery, impact, sponsors, system, volunteers
from onkur.db.database import SessionLocal, engine
from onkur.db.migrations import ensure_schema
from onkur.errors import ServiceError
from onkur.services.auth_service import auth_service
from onkur.services.reminder_service import ReminderScheduler

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.APP_DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Starting Onkur service...")
    if settings.RUN_SCHEMA_SYNC:
        ensure_schema(engine)
    db = SessionLocal()
    try:
        auth_service.ensure_admin_account(db)
    finally:
        db.close()

    scheduler = None
    if settings.RUN_REMINDER_SCHEDULER:
        scheduler = ReminderScheduler()
        scheduler.start()

    yield

    # Shutdown
    logger.info("Shutting down Onkur service...")
    if scheduler:
        await scheduler.stop()


app = FastAPI(
    title="Onkur",
    description="Volunteer management service: events, enrollment, attendance, sponsorships and moderation",
    version="1.0.0",
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


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg')}" if location else first.get("msg", "Invalid request")
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Include routers
app.include_router(system.router, tags=["System"])
app.include_router(auth.router, prefix="/auth", tags=["Auth"])
app.include_router(events.router, prefix="/events", tags=["Events"])
app.include_router(volunteers.router, prefix="/volunteer", tags=["Volunteer"])
app.include_router(sponsors.router, prefix="/sponsors", tags=["Sponsors"])
app.include_router(gallery.router, prefix="/gallery", tags=["Gallery"])
app.include_router(impact.router, prefix="/impact", tags=["Impact"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Onkur",
        "version": "1.0.0",
        "status": "running"
    }
