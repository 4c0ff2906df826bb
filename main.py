"""
DeliveryLink - Delivery Order Lifecycle API
Order placement, driver dispatch, OTP-verified delivery and live statistics
"""

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
import uvicorn
from contextlib import asynccontextmanager
import logging
import traceback
import uuid
from datetime import datetime

# Import our modules
from deliverylink.config import settings
from deliverylink.database import engine, Base
from deliverylink.routers import orders, deliveries
from deliverylink.routers import statistics as statistics_router
from deliverylink.utils.error_handler import (
    LifecycleError, lifecycle_exception_handler, request_validation_exception_handler
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Rate limiting
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    # Startup
    logger.info("Starting DeliveryLink API...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")

    yield

    # Shutdown
    logger.info("Shutting down DeliveryLink API...")

# Create FastAPI app
app = FastAPI(
    title="DeliveryLink Order Lifecycle API",
    description="Delivery orders from placement through driver assignment, pickup, transit and OTP-verified delivery",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Lifecycle errors carry their own status code and stable error code
app.add_exception_handler(LifecycleError, lifecycle_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(orders.router, prefix="/api/v1/orders", tags=["orders"])
app.include_router(deliveries.router, prefix="/api/v1/deliveries", tags=["deliveries"])
app.include_router(statistics_router.router, prefix="/api/v1/statistics", tags=["statistics"])


@app.get("/")
@limiter.limit("10/minute")
async def root(request: Request):
    """Root endpoint with API information - publicly accessible"""
    return {
        "message": "DeliveryLink Order Lifecycle API",
        "version": "1.0.0",
        "docs": "/docs",
        "redoc": "/redoc",
        "timestamp": datetime.utcnow().isoformat()
    }


@app.get("/health")
@limiter.limit("30/minute")
async def health_check(request: Request):
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat()
    }


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Last-resort handler for anything outside the lifecycle error taxonomy"""
    # Generate unique error ID for tracking
    error_id = str(uuid.uuid4())

    logger.error(
        f"Unhandled exception {error_id}: {type(exc).__name__} in {request.method} {request.url.path}",
        extra={
            "error_id": error_id,
            "endpoint": str(request.url.path),
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_message": str(exc),
            "stack_trace": traceback.format_exc()
        },
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred. Please try again later.",
                "error_id": error_id,
                "timestamp": datetime.utcnow().isoformat()
            }
        }
    )

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
