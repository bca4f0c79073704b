"""Prometheus metrics for monitoring"""
from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry

registry = CollectorRegistry()

request_count = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status'],
    registry=registry
)

request_duration = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=registry
)

offers_total = Counter(
    'offers_total',
    'Offer lifecycle outcomes',
    ['outcome'],
    registry=registry
)

order_transitions = Counter(
    'order_transitions_total',
    'Order status transitions',
    ['from_status', 'to_status'],
    registry=registry
)

disputes_total = Counter(
    'disputes_total',
    'Dispute actions',
    ['action'],
    registry=registry
)

reviews_total = Counter(
    'reviews_total',
    'Reviews submitted',
    ['kind'],
    registry=registry
)

rate_limit_exceeded = Counter(
    'rate_limit_exceeded_total',
    'Total rate limit exceeded events',
    ['user_id'],
    registry=registry
)

signal_deliveries = Counter(
    'signal_deliveries_total',
    'Total signal webhook delivery attempts',
    ['status'],
    registry=registry
)

webhook_duration = Histogram(
    'webhook_delivery_duration_seconds',
    'Webhook delivery duration in seconds',
    ['status'],
    registry=registry
)

redis_connected = Gauge(
    'redis_connected',
    'Redis connection status (1=connected, 0=disconnected)',
    registry=registry
)

db_connected = Gauge(
    'db_connected',
    'Database connection status (1=connected, 0=disconnected)',
    registry=registry
)


def get_metrics_text() -> str:
    """Generate Prometheus metrics in text format"""
    from prometheus_client import generate_latest
    return generate_latest(registry).decode('utf-8')
