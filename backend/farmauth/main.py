"""FastAPI application for the farm auth service"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import text
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional
import logging
import time
import uuid

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

from farmauth.config import settings
from farmauth.core.database import init_db, SessionLocal
from farmauth.core.exceptions import BaseAPIException
from farmauth.schemas.response import ErrorResponse, HealthResponse
from farmauth.api import auth


def configure_logging() -> None:
    """Log to stderr and to the configured file"""
    log_file = Path(settings.get_log_file())
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.FileHandler(log_file), logging.StreamHandler()],
    )


configure_logging()
logger = logging.getLogger(__name__)

HTTP_REQUESTS = Counter(
    "farmauth_http_requests_total",
    "HTTP requests by route and status",
    ["method", "path", "status"],
)
HTTP_LATENCY = Histogram(
    "farmauth_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "path"],
)

SECURITY_HEADERS = {
    "Content-Security-Policy": "default-src 'self'; frame-ancestors 'none'; base-uri 'self'; form-action 'self'",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}

AUTH_PREFIX = f"{settings.API_PREFIX}/auth"
SLOW_REQUEST_SECONDS = 1.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings.validate_security_settings()
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} ({settings.ENVIRONMENT})")
    try:
        init_db()
    except Exception as e:
        logger.error(f"Database check failed: {e}")
        raise
    yield
    logger.info(f"Stopping {settings.APP_NAME}")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url=None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", settings.CSRF_HEADER_NAME, "X-Request-ID"],
)


@app.middleware("http")
async def security_headers_and_metrics(request: Request, call_next):
    """Tag the request with an id, stamp security headers, record metrics"""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    request.state.request_id = request_id

    started = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - started

    response.headers.update(SECURITY_HEADERS)
    response.headers["X-Request-ID"] = request_id
    if request.url.path.startswith(AUTH_PREFIX):
        response.headers["Cache-Control"] = "no-store"
        response.headers["Pragma"] = "no-cache"

    route = request.scope.get("route")
    path = getattr(route, "path", request.url.path)
    HTTP_REQUESTS.labels(request.method, path, str(response.status_code)).inc()
    HTTP_LATENCY.labels(request.method, path).observe(elapsed)
    if elapsed > SLOW_REQUEST_SECONDS:
        logger.warning(f"Slow request {request.method} {path}: {elapsed:.2f}s request_id={request_id}")
    return response


def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    """Standard error envelope shared by every handler"""
    body = ErrorResponse.build(
        code=code,
        message=message,
        details=details,
        request_id=getattr(request.state, "request_id", None),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(BaseAPIException)
async def api_exception_handler(request: Request, exc: BaseAPIException):
    level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    logger.log(level, f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    return error_response(request, exc.status_code, exc.code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are 400, not FastAPI's default 422"""
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"].removeprefix("Value error, "),
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    # Only field names: the submitted values may include passwords
    logger.info(f"{request.method} {request.url.path} -> 400 invalid fields {[e['field'] for e in errors]}")
    message = errors[0]["message"] if errors else "Invalid request"
    return error_response(request, status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR", message, {"errors": errors})


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"Database error on {request.method} {request.url.path}")
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "A database error occurred. Please try again later.",
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.critical(f"Unhandled exception on {request.method} {request.url.path}", exc_info=exc)
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "An unexpected error occurred.",
    )


@app.get("/health", response_model=HealthResponse)
def health_check():
    """Liveness plus database readiness"""
    database = {"ok": True, "error": None}
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error(f"Health check: database unavailable: {exc}")
        database = {"ok": False, "error": exc.__class__.__name__}
    finally:
        db.close()

    return HealthResponse(
        status="healthy" if database["ok"] else "degraded",
        version=settings.APP_VERSION,
        timestamp=datetime.now(timezone.utc).isoformat(),
        readiness={"database": database},
    )


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(auth.router, prefix=AUTH_PREFIX, tags=["Authentication"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "farmauth.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS,
    )
