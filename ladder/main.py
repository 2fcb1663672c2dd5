import os
import uuid
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from slowapi.errors import RateLimitExceeded

from ladder.config import settings
from ladder.config.feature_flags import FeatureFlags
from ladder.database import init_db, close_db
from ladder.errors import ErrorCode, error_payload, get_error_summary
from ladder.exceptions import InvariantViolationError, LadderError
from ladder.routes import router
from ladder.routes.public import limiter

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format=settings.LOG_FORMAT,
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting application...")
    try:
        await init_db()
        logger.info("Database connected successfully")
    except Exception as e:
        logger.error(f"Failed to connect to database: {str(e)}")
        raise

    yield

    logger.info("Shutting down application...")
    try:
        await close_db()
    except Exception as e:
        logger.error(f"Error closing database connection: {str(e)}")


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """slowapi 429 rendered in the standard error body, rate limit headers kept."""
    logger.warning(f"Rate limit exceeded on {request.url.path}: {exc.detail}")
    response = JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=error_payload(
            "Too Many Requests",
            f"Rate limit exceeded: {exc.detail}",
            ErrorCode.RATE_LIMITED
        )
    )
    view_rate_limit = getattr(request.state, "view_rate_limit", None)
    if view_rate_limit is not None:
        response = request.app.state.limiter._inject_headers(response, view_rate_limit)
    return response


app = FastAPI(
    title="Ladder Tournament API",
    description="American-format ladder tournaments: registration, team formation, stages and standings",
    version=API_VERSION,
    docs_url="/docs" if settings.is_development() else None,
    redoc_url="/redoc" if settings.is_development() else None,
    lifespan=lifespan
)

# Attach rate limiter to the app
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
logger.info(f"✓ Rate limiter configured (enabled={FeatureFlags.rate_limit()})")

origins = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://localhost:8000",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:8000",
]
origins.extend(settings.ALLOWED_ORIGINS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(LadderError)
async def ladder_error_handler(request: Request, exc: LadderError):
    if isinstance(exc, InvariantViolationError):
        logger.error(f"Invariant violation on {request.url.path}: {exc.code} - {exc.message} {exc.details}")
    else:
        logger.warning(f"Ladder error on {request.url.path}: {exc.code} - {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")

    error_details = []
    for error in exc.errors():
        error_details.append({
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "type": error.get("type")
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "error": "Validation Error",
            "message": "Request body or parameters are invalid",
            "code": ErrorCode.VALIDATION_ERROR,
            "details": error_details
        }
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(f"HTTP exception on {request.url.path}: {exc.detail}")

    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.detail
        )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": "Error",
            "message": str(exc.detail),
            "code": ErrorCode.NOT_FOUND if exc.status_code == 404 else ErrorCode.INVALID_INPUT
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    log_id = str(uuid.uuid4())[:8]
    logger.error(f"[{log_id}] Unhandled exception on {request.url.path}: {type(exc).__name__}: {str(exc)}")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "Internal Error",
            "message": "An unexpected error occurred. Please try again later.",
            "code": ErrorCode.INTERNAL_ERROR,
            "details": {"log_id": log_id}
        }
    )


@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "feature_flags": FeatureFlags.get_all_flags(),
        "version": API_VERSION
    }


@app.get("/api/errors/health", tags=["Health"])
async def error_handling_health():
    return get_error_summary()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Ladder Tournament API",
        "version": API_VERSION,
        "docs": "/docs" if settings.is_development() else None
    }


app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 8000))
    reload = settings.is_development()

    logger.info(f"Starting server on {host}:{port}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Auto-reload: {reload}")

    uvicorn.run(
        "ladder.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )
