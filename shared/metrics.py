"""Prometheus metrics for pipeline observability.

Counters and histograms at each pipeline stage.
Exposed via /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, make_asgi_app

# Pipeline counters
refresh_runs_total = Counter(
    "refresh_runs_total",
    "Total refresh pipeline runs",
    ["trigger", "status"],  # trigger: sync, goal, boundary; status: ok, failed
)

dropped_intervals_total = Counter(
    "dropped_intervals_total",
    "Raw intervals dropped before normalization",
    ["reason"],
)

episode_writes_total = Counter(
    "episode_writes_total",
    "Episode segments written by the store mutator",
    ["operation"],  # inserted, deleted, reanchored
)

dirty_days_total = Counter(
    "dirty_days_total",
    "Day ids marked dirty by refreshes",
)

# API counters
api_requests_total = Counter(
    "api_requests_total",
    "Total API requests",
    ["endpoint", "method", "status_code"],
)

# Histograms
source_fetch_duration_seconds = Histogram(
    "source_fetch_duration_seconds",
    "Duration of interval source fetches",
    ["mode"],
)

rebuild_duration_seconds = Histogram(
    "rebuild_duration_seconds",
    "Duration of debt chain rebuilds",
)

api_response_duration_seconds = Histogram(
    "api_response_duration_seconds",
    "Duration of API responses",
    ["endpoint"],
)


def create_metrics_app():
    """Create ASGI app for /metrics endpoint."""
    return make_asgi_app()
