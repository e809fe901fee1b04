from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Series names match what the opencensus Prometheus exporter produced for
# the "example/configured_error_ratio" view and ochttp.DefaultServerViews.
# prometheus_client always exposes counters with a "_total" suffix.
ERROR_RATIO = "example_configured_error_ratio"
HTTP_PREFIX = "opencensus_io_http_server_"

# ochttp.DefaultLatencyDistribution, in milliseconds.
LATENCY_BUCKETS_MS = (
    0, 1, 2, 3, 4, 5, 6, 8, 10, 13, 16, 20, 25, 30, 40, 50, 65, 80, 100, 130,
    160, 200, 250, 300, 400, 500, 650, 800, 1000, 2000, 5000, 10000, 20000,
    50000, 100000,
)
# ochttp.DefaultSizeDistribution, in bytes.
SIZE_BUCKETS = (
    0, 1024, 2048, 4096, 16384, 65536, 262144, 1048576, 4194304, 16777216,
    67108864, 268435456, 1073741824, 4294967296,
)


class ServerMetrics:
    """Prometheus instruments for one app instance.

    Each instance owns its registry, so several apps (e.g. in tests) can live
    in one process without duplicate-timeseries errors.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()

        self.error_ratio = Gauge(
            ERROR_RATIO,
            "The current configured error ratio.",
            registry=self.registry,
        )
        self.request_count = Counter(
            HTTP_PREFIX + "request_count",
            "Count of HTTP requests started",
            registry=self.registry,
        )
        self.request_count_by_method = Counter(
            HTTP_PREFIX + "request_count_by_method",
            "Server request count by HTTP method",
            ["http_method"],
            registry=self.registry,
        )
        self.response_count_by_status_code = Counter(
            HTTP_PREFIX + "response_count_by_status_code",
            "Server response count by status code",
            ["http_status"],
            registry=self.registry,
        )
        self.latency = Histogram(
            HTTP_PREFIX + "latency",
            "Latency distribution of HTTP requests (ms)",
            buckets=LATENCY_BUCKETS_MS,
            registry=self.registry,
        )
        self.request_bytes = Histogram(
            HTTP_PREFIX + "request_bytes",
            "Size distribution of HTTP request body",
            buckets=SIZE_BUCKETS,
            registry=self.registry,
        )
        self.response_bytes = Histogram(
            HTTP_PREFIX + "response_bytes",
            "Size distribution of HTTP response body",
            buckets=SIZE_BUCKETS,
            registry=self.registry,
        )

    def record_rate(self, rate: float) -> None:
        self.error_ratio.set(rate)

    def observe_request(
        self,
        method: str,
        status: int,
        seconds: float,
        request_size: int = 0,
        response_size: int = 0,
    ) -> None:
        self.request_count.inc()
        self.request_count_by_method.labels(http_method=method).inc()
        self.response_count_by_status_code.labels(http_status=str(status)).inc()
        self.latency.observe(seconds * 1000.0)
        self.request_bytes.observe(request_size)
        self.response_bytes.observe(response_size)

    def render(self) -> tuple[bytes, str]:
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
