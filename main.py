"""
Restaurant Waitlist - FastAPI Backend
Main application entry point
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from app.core.config import settings
from app.core.db import engine, Base
from app.api import routes_billing, routes_guest, routes_host, routes_public, ws
from app.services.errors import WaitlistError
from app.services.notifier import sms_notifier
from app.utils.responses import service_error_response

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    # Create database tables
    if not settings.USE_FIREBASE:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created")
    yield
    await sms_notifier.aclose()
    logger.info("Application shutdown")

# Create FastAPI application
app = FastAPI(
    title="Restaurant Waitlist",
    description="Live waitlist for host dashboards and guest kiosks",
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

async def waitlist_error_handler(request: Request, exc: WaitlistError):
    """Validation, not-found, transition and store errors share one envelope"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return service_error_response(exc)

app.add_exception_handler(WaitlistError, waitlist_error_handler)

# Include routers
app.include_router(routes_public.router, tags=["public"])
app.include_router(routes_billing.router, tags=["billing"])
app.include_router(routes_host.router, prefix="/host", tags=["host"])
app.include_router(routes_guest.router, prefix="/join", tags=["guest"])
app.include_router(ws.router, prefix="/ws", tags=["websocket"])

# Note: Run this ASGI app directly with Uvicorn or Hypercorn. For Gunicorn,
# use `uvicorn.workers.UvicornWorker` instead of wrapping the app.

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="127.0.0.1",
        port=8000,
        reload=True
    )
