"""
Main FastAPI application entry point for the SMS Gateway.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from smsgateway.api.router import api_router
from smsgateway.core.config import settings
from smsgateway.core.exceptions import SMSGatewayException
from smsgateway.core.events import startup_event_handler, shutdown_event_handler

# Setup logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("smsgateway")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await startup_event_handler(app)
    yield
    await shutdown_event_handler(app)


# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    description=settings.PROJECT_DESCRIPTION,
    version=settings.VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)


# Set up CORS middleware
if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# Register exception handlers
@app.exception_handler(SMSGatewayException)
async def sms_gateway_exception_handler(request: Request, exc: SMSGatewayException):
    """Custom exception handler for SMSGatewayException."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "status": "error",
            "code": getattr(exc.code, "value", exc.code),
            "message": exc.message,
            "details": exc.details,
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """HTTP exception handler with the same error format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "status": "error",
            "code": f"HTTP_{exc.status_code}",
            "message": exc.detail,
            "details": None,
        },
    )

# Register routers
app.include_router(api_router, prefix=settings.API_PREFIX)


# Root endpoint
@app.get("/", tags=["Health"])
async def root():
    """Root endpoint for liveness checks."""
    return {
        "status": "ok",
        "service": settings.PROJECT_NAME,
        "version": settings.VERSION,
    }

if __name__ == "__main__":
    # For debugging only - use uvicorn for production
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
