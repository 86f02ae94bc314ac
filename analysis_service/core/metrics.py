# File: analysis_service/core/metrics.py
from prometheus_client import Counter, Histogram

REQUEST_PROCESSING_DURATION_SECONDS = Histogram(
    "analysis_http_request_duration_seconds",
    "Time taken to process an HTTP request.",
    ["method", "path"]
)

ANALYSIS_REQUESTS_TOTAL = Counter(
    "analysis_requests_total",
    "Total number of generate-analysis requests by outcome.",
    ["status"]
)

ANALYSIS_DURATION_SECONDS = Histogram(
    "analysis_request_duration_seconds",
    "End-to-end duration of the analysis pipeline.",
    buckets=[1, 2, 5, 10, 20, 30, 60, 90, 120]
)

PRODUCT_SEARCH_TOTAL = Counter(
    "analysis_product_search_total",
    "Product searches by tier reached and outcome.",
    ["tier", "outcome"]
)

PRODUCT_SEARCH_DURATION_SECONDS = Histogram(
    "analysis_product_search_duration_seconds",
    "Time taken by a full product search, fallbacks included.",
    buckets=[0.1, 0.25, 0.5, 1, 2, 5, 10, 20]
)

UPSTREAM_CALL_DURATION_SECONDS = Histogram(
    "analysis_upstream_call_duration_seconds",
    "Duration of calls to upstream services.",
    ["service"]
)

UPSTREAM_ERRORS_TOTAL = Counter(
    "analysis_upstream_errors_total",
    "Total number of errors returned by upstream services.",
    ["service", "error_type"]
)

AUTH_TOKEN_REFRESH_TOTAL = Counter(
    "analysis_auth_token_refresh_total",
    "Number of GCP access token refreshes.",
    ["reason"]
)
