"""
FastAPI application for the personal information parser.

Provides endpoints for:
- Parsing personal information from free text (with stored-record lookup)
- Parsing driver's license data from an uploaded image, image URL, or text
"""

import logging
import traceback

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .models import HealthResponse, ProblemDetails
from .routers import parse
from .services.image_service import get_image_service
from .services.llm import ParserServiceError, get_image_parser, get_llm_gateway, get_text_parser

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

GENERIC_ERROR_TITLE = "An error occurred while processing the request"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info("Starting Personal Information Parser Service...")
    # Fails fast with NotConfiguredError when the API key is missing
    get_llm_gateway()
    get_image_service()
    get_text_parser()
    get_image_parser()
    logger.info("Services initialized successfully")
    yield
    logger.info("Shutting down Personal Information Parser Service...")


# Create FastAPI application
app = FastAPI(
    title="Personal Information Parser API",
    description="Extracts personal information from text and driver's license images using AI",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)


# =============================================================================
# Health Endpoints
# =============================================================================


@app.get("/", response_model=HealthResponse)
async def root() -> HealthResponse:
    """Root endpoint - health check."""
    return HealthResponse(status="healthy", message="Personal Information Parser API is running")


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="healthy", message="Service is healthy")


# =============================================================================
# Include Routers
# =============================================================================

app.include_router(parse.router)


# =============================================================================
# Exception Handlers
# =============================================================================


def _problem_response(request: Request, exc: Exception) -> JSONResponse:
    """Generic 500 payload; exception details only in debug mode."""
    logger.error(
        "Error processing %s %s: %s - %s",
        request.method,
        request.url.path,
        type(exc).__name__,
        exc,
        exc_info=exc,
    )

    detail = None
    if get_settings().debug:
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        detail = f"Exception: {type(exc).__name__} - {exc}\nStackTrace: {stack}"

    problem = ProblemDetails(
        title=GENERIC_ERROR_TITLE,
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=detail,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=problem.model_dump(),
    )


@app.exception_handler(ParserServiceError)
async def parser_service_error_handler(request: Request, exc: ParserServiceError):
    """Handle upstream and response-format failures."""
    return _problem_response(request, exc)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Handle anything else without leaking internals."""
    return _problem_response(request, exc)
