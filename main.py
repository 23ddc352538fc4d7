"""
Strategic Planner Authentication - FastAPI Application.

This is the main entry point of the authentication service, providing a
FastAPI application with the ``/api/auth`` endpoints.
"""
import logging

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from planner_auth import __version__
from planner_auth.api import router as auth_router
from planner_auth.auth import default_token_manager
from planner_auth.config import settings
from planner_auth.database import init_db
from planner_auth.errors import AuthError, RateLimitExceeded
from planner_auth.responses import error_response

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format=settings.LOG_FORMAT,
)
logger = logging.getLogger("planner_auth")

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    debug=settings.DEBUG,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    """Render business-rule failures in the response envelope."""
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    elif isinstance(exc, RateLimitExceeded):
        headers = {"Retry-After": str(exc.retry_after)}
    if exc.status_code >= 500:
        logger.error(f"{exc.kind.value} error on {request.url.path}: {exc.message}", exc_info=exc)
        return error_response(exc.status_code, exc.message, exc=exc)
    return error_response(exc.status_code, exc.message, errors=exc.errors, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Handle malformed request bodies."""
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return error_response(status.HTTP_400_BAD_REQUEST, "Validation failed", errors=errors)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    message = "Endpoint not found" if exc.status_code == 404 else str(exc.detail)
    return error_response(exc.status_code, message, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", exc=exc)


# Health check endpoint
@app.get(
    "/health",
    tags=["health"],
    summary="Health check",
    description="Check if the API is running.",
)
async def health_check():
    """Health check endpoint."""
    return {"status": "UP", "version": __version__}


# Include authentication router
app.include_router(auth_router, prefix=f"{settings.API_PREFIX}/auth")


# Startup event
@app.on_event("startup")
async def startup_event():
    """Initialize the application on startup."""
    logger.info(f"Starting {settings.APP_NAME} in {settings.APP_ENV} mode")

    init_db(settings.DATABASE_URL)
    default_token_manager.purge_expired_refresh_tokens()

    logger.info("Authentication API initialized")


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    """Clean up resources on shutdown."""
    logger.info("Shutting down authentication API")


# Run the application if executed directly
if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
        log_level=settings.LOG_LEVEL.lower(),
    )
