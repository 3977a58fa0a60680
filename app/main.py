from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

# Import database components
from app.database.database import engine, Base

# Import middleware
from app.common.middleware import RequestContextMiddleware

# Import routers
from app.modules.till.router import router as till_router
from app.modules.till.exceptions import ERROR_VOCABULARY_VERSION, TillError

# Import models for table creation
import app.modules.auth.models
import app.modules.till.models
import app.modules.audit.models

from app.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 1

HTTP_ERROR_CODES = {
    status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
}

# FastAPI app
app = FastAPI(
    title="Till API",
    description="Pharmacy cash-register sessions: open, movements, close with reconciliation",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(RequestContextMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Add your terminal URLs
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def error_response(status_code: int, code: str, message: str, details=None,
                   retryable: bool = False, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "message": message,
                "details": details or {},
                "retryable": retryable,
            },
            "error_version": ERROR_VOCABULARY_VERSION,
        },
        headers=headers,
    )


@app.exception_handler(TillError)
async def till_error_handler(request: Request, exc: TillError):
    headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if exc.retryable else None
    return error_response(exc.http_status, exc.code, exc.message, exc.details, exc.retryable, headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ())), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY, "VALIDATION_ERROR", "Datos de entrada inválidos", {"errors": errors}
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    return error_response(exc.status_code, code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    request_id = getattr(request.state, "request_id", None)
    logger.exception(f"Unhandled error on {request.method} {request.url.path} request_id={request_id}")
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", "Error interno del servidor",
        {"request_id": request_id} if request_id else None,
    )


# Include routers
app.include_router(till_router, prefix="/api/v1")


@app.get("/")
async def read_root():
    return {
        "message": "Till API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Till API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    # Create database tables (only for development - use migrations in production)
    if settings.ENVIRONMENT == "development":
        try:
            Base.metadata.create_all(bind=engine)
        except Exception as e:
            logger.warning(f"Schema sync skipped or failed: {e}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Till API shutting down...")
