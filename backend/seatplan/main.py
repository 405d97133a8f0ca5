"""Seatplan reservation service - Main Application."""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from seatplan.core.config import settings
from seatplan.core.database import engine, init_db
from seatplan.core.errors import ReservationError
from seatplan.api.v1.router import api_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    logger.info(f"🚀 {settings.APP_NAME} starting up...")
    logger.info(f"📍 Environment: {settings.ENVIRONMENT}")
    logger.info(f"🔗 Database: {settings.DATABASE_URL[:50]}...")
    logger.info(f"🕒 Service windows: {settings.SERVICE_WINDOWS} ({settings.TIMEZONE})")
    if settings.AUTO_CREATE_TABLES:
        await init_db()
        logger.info("✅ Database tables created")
    yield
    # Shutdown
    await engine.dispose()
    logger.info(f"👋 {settings.APP_NAME} shutting down...")


app = FastAPI(
    title=settings.APP_NAME,
    description="Table assignment, availability and reservation lifecycle API",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ReservationError)
async def reservation_error_handler(request: Request, exc: ReservationError):
    """Business-rule violations become {code, message, details} with their status."""
    logger.warning(f"{request.method} {request.url.path} rejected: {exc.code} - {exc.message}")
    headers = None
    if "retry_after" in exc.details:
        headers = {"Retry-After": str(exc.details["retry_after"])}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


# Include API router
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "seatplan",
        "version": "1.0.0",
    }
