from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import time

# Metrics definitions
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"]
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

CACHE_HITS = Counter("cache_hits_total", "Total positive cache hits")
CACHE_MISSES = Counter("cache_misses_total", "Total cache misses")
CACHE_NEGATIVE_HITS = Counter("cache_negative_hits_total", "Total negative cache hits")
LINKS_CREATED = Counter("links_created_total", "Total short links created")
CODE_COLLISIONS = Counter("code_collisions_total", "Generated codes rejected by the unique constraint")
REDIRECT_TOTAL = Counter("redirect_total", "Redirect requests by outcome", ["outcome"])


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()

        response = await call_next(request)

        process_time = time.perf_counter() - start_time

        # Route templates (/{code}) keep label cardinality bounded
        route = request.scope.get("route")
        metric_path = getattr(route, "path", None) or "unmatched"

        HTTP_REQUESTS_TOTAL.labels(method=request.method, path=metric_path, status=str(response.status_code)).inc()
        HTTP_REQUEST_DURATION_SECONDS.labels(method=request.method, path=metric_path).observe(process_time)

        return response


def metrics_endpoint(request: Request):
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
