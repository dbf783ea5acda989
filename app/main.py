from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from starlette.concurrency import run_in_threadpool
import logging

from app.core.config import settings
from app.core.exceptions import RateLimitError, SkinAIException
from app.core.monitoring import setup_metrics
from app.core.redis import close_redis
from app.database import connect_to_mongo, close_mongo_connection
from app.api.v1 import skin_analysis
from app.services.vector_service import vector_service

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting SkinAI API...")

    if settings.database_configured:
        try:
            await run_in_threadpool(connect_to_mongo)
        except Exception as e:
            # The analysis log is optional; serve without it
            logger.error(f"MongoDB unavailable, analysis logging disabled: {e}")
    else:
        logger.info("Skipping MongoDB connection (SKIP_DB set or MONGODB_URL empty)")

    if not vector_service.enabled:
        logger.info("Vector index disabled (USE_VECTOR_INDEX off or QDRANT_URL empty)")

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Initiating graceful shutdown...")
    close_mongo_connection()
    close_redis()
    await vector_service.close()
    logger.info("Application shutdown complete")

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="SkinAI - photo-based skin analysis and routine recommendations",
    lifespan=lifespan
)

if settings.ENABLE_METRICS:
    instrumentator = setup_metrics(app)
    instrumentator.instrument(app).expose(app, endpoint="/metrics")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Request logging
@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"{request.method} {request.url.path}")
    return await call_next(request)

# Include routers
app.include_router(skin_analysis.router, prefix="/api", tags=["Skin Analysis"])

@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "SkinAI API",
        "version": settings.APP_VERSION,
        "endpoints": {
            "health": "GET /api/health",
            "analyze": "POST /api/skin/analyze",
        },
        "docs": "/docs"
    }

@app.exception_handler(RateLimitError)
async def rate_limit_exception_handler(request: Request, exc: RateLimitError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.user_message},
        headers={"Retry-After": str(exc.retry_after)}
    )

@app.exception_handler(SkinAIException)
async def skinai_exception_handler(request: Request, exc: SkinAIException):
    if exc.status_code >= 500:
        logger.error(f"Skin analysis failed: {exc!r}")
    else:
        logger.info(f"Rejected request: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.user_message}
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": "Invalid request"}
    )

# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc!r}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": "Internal server error"}
    )
