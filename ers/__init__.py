"""Error Rate Server (ERS).

Small HTTP test fixture for chaos and reliability testing that:
 - answers a greeting endpoint with HTTP 500 at a configurable rate
 - lets operators read and change that rate at runtime
 - exports the configured rate and request metrics for Prometheus
 - can be told to crash itself (/quitquitquit)

The implementation is intentionally small so it can be audited and explained.
"""
