from __future__ import annotations

import time
import uuid
from dataclasses import dataclass

import httpx
from pydantic import ValidationError

from .api_models import HealthResponse

HEALTHZ_PATH = "/healthz"


@dataclass(frozen=True)
class HealthReport:
    healthy: bool
    detail: str
    latency_ms: float
    status_code: int | None = None
    request_id: str | None = None


def check_healthz(base_url: str, timeout_s: float = 2.0, client: httpx.Client | None = None) -> HealthReport:
    """Check a running server's /healthz.

    Sends its own X-Request-Id and reports the id the server echoed back, so
    a caller can find the matching access-log line. The body must be a
    HealthResponse with ``healthy`` present and equal to "true".
    ``client`` lets callers reuse a session (or a TestClient).
    """
    url = base_url.rstrip("/") + HEALTHZ_PATH
    sent_id = uuid.uuid4().hex
    start = time.perf_counter()

    def elapsed() -> float:
        return round((time.perf_counter() - start) * 1000.0, 2)

    try:
        if client is None:
            with httpx.Client(timeout=timeout_s, follow_redirects=False) as own:
                resp = own.get(url, headers={"X-Request-Id": sent_id})
        else:
            resp = client.get(url, headers={"X-Request-Id": sent_id})
    except httpx.TransportError as e:
        return HealthReport(False, f"No response: {type(e).__name__}", elapsed())

    latency = elapsed()
    echoed = resp.headers.get("x-request-id")
    if resp.status_code != 200:
        return HealthReport(False, f"HTTP {resp.status_code}", latency, resp.status_code, echoed)

    try:
        payload = HealthResponse.model_validate(resp.json())
    except (ValueError, ValidationError):
        return HealthReport(False, "Invalid payload", latency, resp.status_code, echoed)

    if "healthy" not in payload.model_fields_set or payload.healthy != "true":
        return HealthReport(False, f"Unhealthy payload: {resp.text}", latency, resp.status_code, echoed)
    if echoed is not None and echoed != sent_id:
        return HealthReport(True, "Healthy (request id not echoed)", latency, resp.status_code, echoed)
    return HealthReport(True, "Healthy", latency, resp.status_code, echoed)
