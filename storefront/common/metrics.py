from prometheus_client import Counter, Histogram

# HTTP metrics with proper buckets for latency
REQUEST_COUNT = Counter("http_requests_total", "Total HTTP requests", ["method", "endpoint", "status"])
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0, float("inf")),
)

# Order outcomes
ORDERS_PLACED = Counter("orders_placed_total", "Orders placed successfully")
ORDERS_CANCELLED = Counter("orders_cancelled_total", "Orders cancelled")
ORDER_FAILURES = Counter("order_failures_total", "Rejected order operations", ["operation", "error"])


def normalize_endpoint(path: str) -> str:
    """Group dynamic routes to keep label cardinality bounded."""
    parts = path.strip("/").split("/")
    if not parts or parts == [""]:
        return "/"
    normalized = ["<id>" if part.isdigit() else part for part in parts]
    return "/" + "/".join(normalized)
