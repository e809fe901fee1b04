from __future__ import annotations

import logging
import math
import random
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from .api_models import (
    NOT_FOUND_MESSAGE,
    GreetingResponse,
    HealthResponse,
    RateResponse,
    StatusResponse,
)
from .decision import draw_sample, should_fail
from .lifecycle import ShutdownTrigger
from .metrics import ServerMetrics
from .store import RateStore, RateStoreError

log = logging.getLogger(__name__)
access_log = logging.getLogger("ers.access")

REQUEST_ID_HEADER = "X-Request-Id"

METRICS_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class InvalidPercent(ValueError):
    pass


def parse_percent(raw: str) -> float:
    """Parse the /errors/{percent} path segment.

    Must be a finite number in [0, 100]. Underscore digit separators and
    surrounding whitespace are rejected even though float() allows them.
    """
    if raw != raw.strip() or "_" in raw:
        raise InvalidPercent(f"Invalid percent: {raw!r}")
    try:
        value = float(raw)
    except ValueError:
        raise InvalidPercent(f"Invalid percent: {raw!r}") from None
    if not math.isfinite(value):
        raise InvalidPercent(f"Percent must be finite: {raw!r}")
    if value < 0 or value > 100:
        raise InvalidPercent(f"rate out of range: {value!r}")
    return value


def client_ip(request: Request) -> str:
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "-"


def _content_length(headers) -> int:
    raw = headers.get("content-length")
    return int(raw) if raw is not None and raw.isdigit() else 0


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Request id, crash recovery, metrics and the access log line."""

    def __init__(self, app, metrics: ServerMetrics, access_log_enabled: bool = True):
        super().__init__(app)
        self.metrics = metrics
        self.access_log_enabled = access_log_enabled

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            log.exception("Unhandled error on %s %s (request_id=%s)", request.method, request.url.path, request_id)
            response = Response(status_code=500)
        elapsed = time.perf_counter() - start

        self.metrics.observe_request(
            method=request.method,
            status=response.status_code,
            seconds=elapsed,
            request_size=_content_length(request.headers),
            response_size=_content_length(response.headers),
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        if self.access_log_enabled:
            access_log.info(
                "%s %s %d %.2fms ip=%s request_id=%s",
                request.method,
                request.url.path,
                response.status_code,
                elapsed * 1000.0,
                client_ip(request),
                request_id,
            )
        return response


def create_app(
    store: RateStore,
    *,
    shutdown: ShutdownTrigger | None = None,
    rng: random.Random | None = None,
    metrics: ServerMetrics | None = None,
    default_rate: float | None = 0.001,
    percent_as_fraction: bool = False,
    access_log_enabled: bool = True,
) -> FastAPI:
    """Build the error-rate server.

    ``store`` is bound to the app's configured-error-ratio gauge, so every
    read and write through it is reported. ``default_rate`` is written at
    startup; pass None to leave the store untouched.
    """
    shutdown = shutdown or ShutdownTrigger()
    rng = rng or random.Random()
    metrics = metrics or ServerMetrics()
    store.observer = metrics.record_rate

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if default_rate is not None:
            try:
                store.set(default_rate)
                log.info("Initialised error rate to %r in %r", default_rate, store)
            except RateStoreError as e:
                log.critical("Failed to initialise error rate: %s", e)
                shutdown.trigger("error rate initialisation failed")
        yield

    app = FastAPI(
        title="Error Rate Server",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        redirect_slashes=False,
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.shutdown = shutdown
    app.state.rng = rng
    app.state.metrics = metrics
    app.add_middleware(RequestContextMiddleware, metrics=metrics, access_log_enabled=access_log_enabled)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return JSONResponse({"error": NOT_FOUND_MESSAGE}, status_code=404)
        return Response(status_code=exc.status_code, headers=getattr(exc, "headers", None))

    @app.api_route("/metrics", methods=METRICS_METHODS, include_in_schema=False)
    def export_metrics():
        body, content_type = metrics.render()
        return Response(content=body, media_type=content_type)

    @app.get("/healthz", response_model=HealthResponse)
    def healthz():
        return HealthResponse()

    @app.get("/quitquitquit")
    def quitquitquit():
        log.warning("/quitquitquit called, exiting")
        shutdown.trigger("/quitquitquit called")
        # Only reached when the trigger does not exit (tests).
        return Response(status_code=200)

    @app.get("/", response_model=GreetingResponse)
    def greet():
        try:
            rate = store.get()
        except RateStoreError as e:
            log.error("%s", e)
            return Response(status_code=500)

        if should_fail(rate, draw_sample(rng)):
            return Response(status_code=500)
        return GreetingResponse()

    @app.get("/errors", response_model=RateResponse)
    def get_errors():
        try:
            rate = store.get()
        except RateStoreError as e:
            log.error("%s", e)
            return Response(status_code=500)
        return RateResponse(rate=rate)

    @app.get("/errors/{percent}", response_model=StatusResponse)
    def set_errors(percent: str):
        try:
            rate = parse_percent(percent)
        except InvalidPercent as e:
            log.error("%s", e)
            return Response(status_code=500)

        if percent_as_fraction:
            rate = rate / 100.0

        try:
            store.set(rate)
        except RateStoreError as e:
            log.error("%s", e)
            return Response(status_code=500)

        log.info("Error rate set to %r", rate)
        return StatusResponse()

    return app
