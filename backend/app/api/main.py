"""
FastAPI Application Configuration

This module contains the main FastAPI application setup with:
- CORS middleware
- API routes
- WebSocket handlers
- Error handling
"""

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import os

from backend.app import __version__
from backend.app.core import ActionType, ErrorKind, GameError

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*").split(",")


# =============================================================================
# Application Lifespan
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events"""
    # Startup
    logger.info("Starting Buried Treasure API...")

    yield

    # Shutdown
    logger.info("Shutting down...")
    game.reset_engine()


# =============================================================================
# Create FastAPI Application
# =============================================================================

app = FastAPI(
    title="Buried Treasure API",
    description="""
    API for Buried Treasure - a hidden-information grid exploration game.

    ## Features
    - Register a wallet and query your own state
    - Move, explore, dig and bury loot via REST API
    - Private results and public activity via WebSocket

    Tile contents are only revealed through the secure computation
    boundary, and burials are never linked to the depositor.
    """,
    version=__version__,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)


# =============================================================================
# CORS Configuration
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Import and Include Routers
# =============================================================================

from .routes import game, websocket

app.include_router(game.router, prefix="/api/game", tags=["Game"])
app.include_router(websocket.router, prefix="/ws", tags=["WebSocket"])


# =============================================================================
# Root Endpoint
# =============================================================================

@app.get("/", tags=["Root"])
async def root():
    """API root endpoint with welcome message and links"""
    return {
        "message": "Welcome to Buried Treasure API",
        "version": __version__,
        "documentation": "/api/docs",
        "health": "/health",
        "endpoints": {
            "game": "/api/game",
            "websocket": "/ws/game"
        },
        "actions": {t.name.lower(): t.description for t in ActionType},
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for monitoring"""
    return {
        "status": "healthy",
        "service": "buried-treasure-api",
        "version": __version__
    }


# =============================================================================
# Error Handlers
# =============================================================================

def error_response(kind: ErrorKind, reason: str) -> JSONResponse:
    status_code = kind.http_status
    return JSONResponse(
        status_code=status_code,
        content={
            "error": reason,
            "kind": kind.name,
            "retryable": kind.retryable,
            "status_code": status_code
        }
    )


@app.exception_handler(GameError)
async def game_error_handler(request, exc: GameError):
    """Render engine errors with their kind and retry hint"""
    return error_response(exc.kind, exc.reason)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc: RequestValidationError):
    """Malformed or missing fields"""
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    reason = "Invalid parameters"
    if fields:
        reason = f"Invalid parameters: {', '.join(fields)}"
    return error_response(ErrorKind.INVALID_INPUT, reason)


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Custom HTTP exception handler"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.detail,
            "status_code": exc.status_code
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """Handle all unhandled exceptions"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return error_response(ErrorKind.INTERNAL, "Internal server error")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
