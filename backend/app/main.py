from time import perf_counter

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from prometheus_client import Counter, Gauge, Histogram, generate_latest
from sqlalchemy.exc import IntegrityError
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.responses import JSONResponse, Response

from app.api.v1.api_router import api_router
from app.core.config import get_settings
from app.core.logging import configure_logging
from app.db.session import SessionLocal
from app.services.wiki_errors import WikiError
from app.services.wiki_permission_log_service import count_open_logs

settings = get_settings()
configure_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(title=settings.app_name)
app.include_router(api_router, prefix=settings.api_prefix)
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret,
    session_cookie=settings.session_cookie_name,
    max_age=settings.session_max_age_seconds,
    same_site=settings.session_same_site,
    https_only=settings.session_https_only,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

http_requests = Counter("http_requests_total", "Total HTTP requests")
http_request_duration_seconds = Histogram("http_request_duration_seconds", "HTTP request duration in seconds")
wiki_request_duration_seconds = Histogram(
    "wiki_request_duration_seconds",
    "Wiki admin API response duration in seconds",
    buckets=(0.05, 0.1, 0.2, 0.35, 0.5, 0.75, 1.0, 2.0, 3.0, 5.0),
)
wiki_permission_open_logs = Gauge("wiki_permission_open_logs", "Number of unresolved DETECTED permission logs")


@app.exception_handler(WikiError)
async def wiki_error_handler(request: Request, exc: WikiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("integrity_error", path=request.url.path, error=str(exc.orig))
    return JSONResponse(status_code=409, content={"detail": "conflicting change, please retry"})


@app.middleware("http")
async def metrics_middleware(request, call_next):  # noqa: ANN001, ANN201
    http_requests.inc()
    start = perf_counter()
    response = await call_next(request)
    elapsed = perf_counter() - start
    http_request_duration_seconds.observe(elapsed)
    if request.url.path.startswith(f"{settings.api_prefix}/admin/wiki"):
        wiki_request_duration_seconds.observe(elapsed)
    return response


@app.get("/metrics")
def metrics() -> Response:
    try:
        with SessionLocal() as db:
            wiki_permission_open_logs.set(float(count_open_logs(db)))
    except Exception as exc:  # noqa: BLE001
        # metrics stay available while the database is down
        logger.warning("metrics_refresh_failed", error=str(exc))
    return Response(generate_latest(), media_type="text/plain")
