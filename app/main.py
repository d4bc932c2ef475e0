from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import os
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from sqlalchemy import text
from sqlalchemy.engine.url import make_url

from app.api.router import api_router
from app.config import settings
from app.db.session import engine
from app.utils.error_codes import ERROR_MESSAGES, ErrorCode
from app.utils.exceptions import CrowdfundException
from app.utils.metrics import HTTP_REQUEST_DURATION_SECONDS, HTTP_REQUESTS_TOTAL, render_metrics
from app.utils.observability import configure_logging
from app.utils.request_id import request_id_var, resolve_request_id


logger = logging.getLogger(__name__)

_STARTED_AT = time.time()
_UNMATCHED_PATH = "__unmatched__"


async def _connect_redis() -> Any:
    """Redis backs the checkout double-submit lock only; startup fails if it is enabled but down."""
    import redis.asyncio as redis

    client = redis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
    try:
        await client.ping()
    except Exception as exc:
        await client.aclose()
        raise RuntimeError(f"REDIS_ENABLED is set but {settings.REDIS_URL} is unreachable") from exc
    return client


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    app.state.redis = await _connect_redis() if settings.REDIS_ENABLED else None

    keys = settings.gateway_keys()
    if not keys.is_complete:
        # Checkout answers with a configuration error until keys are provided.
        logger.warning("event=app.gateway_keys_missing live=%s", keys.live)
    logger.info(
        "event=app.startup env=%s gateway_mode=%s currency=%s checkout_lock=%s",
        settings.ENV,
        "live" if keys.live else "test",
        settings.PROJECT_CURRENCY,
        "redis" if app.state.redis is not None else "off",
    )

    try:
        yield
    finally:
        client, app.state.redis = app.state.redis, None
        try:
            if client is not None:
                await client.aclose()
        finally:
            # aiosqlite worker threads must not outlive the app (test clients included).
            await engine.dispose()


app = FastAPI(title="Crowdfund Payments", debug=settings.DEBUG, lifespan=lifespan)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    # Gateway deliveries may carry their own id; unsafe values are replaced, never echoed.
    rid = resolve_request_id(request.headers.get("X-Request-ID"))
    token = request_id_var.set(rid)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers["X-Request-ID"] = rid
    return response


def _path_label(request: Request) -> str:
    # Route templates only: raw paths (session tokens, txn ids) would explode label cardinality.
    template = getattr(request.scope.get("route"), "path", None)
    return template if isinstance(template, str) and template else _UNMATCHED_PATH


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    if not settings.METRICS_ENABLED:
        return await call_next(request)

    started = time.perf_counter()
    response = await call_next(request)
    elapsed_s = time.perf_counter() - started

    path = _path_label(request)
    HTTP_REQUESTS_TOTAL.labels(
        method=request.method, path=path, status=str(response.status_code)
    ).inc()
    HTTP_REQUEST_DURATION_SECONDS.labels(method=request.method, path=path).observe(elapsed_s)
    return response


@app.exception_handler(CrowdfundException)
async def crowdfund_exception_handler(request: Request, exc: CrowdfundException):
    if exc.status_code >= 500:
        logger.error(
            "event=api.error path=%s code=%s status=%s message=%s",
            request.url.path,
            exc.code,
            exc.status_code,
            exc.message,
        )
    else:
        logger.info("event=api.rejected path=%s code=%s message=%s", request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    # Same envelope as every other error; only the status (422) tells schema errors apart.
    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": ErrorCode.E002.value,
                "message": ERROR_MESSAGES[ErrorCode.E002],
                "details": {"errors": exc.errors()},
            }
        },
    )


app.include_router(api_router, prefix="/api/v1")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


if settings.METRICS_ENABLED:

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        payload, content_type = render_metrics()
        return Response(content=payload, media_type=content_type)


@app.get("/health")
async def health_check():
    keys = settings.gateway_keys()
    return {
        "status": "ok",
        "version": (os.getenv("APP_VERSION") or "").strip() or "dev",
        "environment": settings.ENV,
        "gateway": {"mode": "live" if keys.live else "test", "keys_configured": keys.is_complete},
        "uptime_seconds": int(max(0.0, time.time() - _STARTED_AT)),
        "timestamp": _now_iso(),
    }


@app.get("/health/db")
async def health_db_check():
    dialect = make_url(settings.DATABASE_URL).get_backend_name()
    started = time.perf_counter()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("event=health.db_unreachable dialect=%s error=%s", dialect, str(exc))
        return JSONResponse(
            status_code=503,
            content={
                "status": "error",
                "db": {"dialect": dialect, "reachable": False, "latency_ms": None},
                "details": str(exc),
                "timestamp": _now_iso(),
            },
        )
    return {
        "status": "ok",
        "db": {
            "dialect": dialect,
            "reachable": True,
            "latency_ms": int(round((time.perf_counter() - started) * 1000.0)),
        },
        "timestamp": _now_iso(),
    }
