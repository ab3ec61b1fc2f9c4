"""
Prometheus metrics for monitoring the exploration engine.
"""
from prometheus_client import Counter, Histogram, Gauge

# Location stream metrics
location_fixes_total = Counter(
    'location_fixes_total',
    'Total number of raw location fixes received',
    ['outcome']
)

location_state_transitions_total = Counter(
    'location_state_transitions_total',
    'Location stream state transitions',
    ['from_state', 'to_state']
)

location_errors_total = Counter(
    'location_errors_total',
    'Location errors surfaced to consumers',
    ['kind']
)

location_retries_total = Counter(
    'location_retries_total',
    'Backoff retries performed while location is degraded'
)

# Grid metrics
cells_marked_total = Counter(
    'cells_marked_total',
    'Total number of grid cells newly marked as visited'
)

visited_cells = Gauge(
    'visited_cells',
    'Number of visited grid cells in the current session'
)

# Overlay metrics
overlay_build_duration_seconds = Histogram(
    'overlay_build_duration_seconds',
    'Fog overlay build latency in seconds',
    ['lod']
)

overlay_holes = Histogram(
    'overlay_holes',
    'Number of hole rings per fog overlay',
    buckets=(0, 1, 10, 50, 100, 500, 1000, 5000, 10000)
)

# Request metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests handled',
    ['endpoint', 'status']
)

request_duration_seconds = Histogram(
    'request_duration_seconds',
    'Request latency in seconds',
    ['endpoint']
)

# Redis metrics
redis_operations_total = Counter(
    'redis_operations_total',
    'Total Redis operations',
    ['operation', 'status']
)
