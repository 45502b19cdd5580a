"""Prometheus metrics for the auth chain and rate limiter."""

from prometheus_client import Counter

auth_attempts_total = Counter(
    "auth_attempts_total",
    "Credential verification attempts",
    ["method", "outcome"],
)

rate_limit_rejections_total = Counter(
    "rate_limit_rejections_total",
    "Requests rejected by the rate limiter",
    ["bucket"],
)

tenancy_not_found_total = Counter(
    "tenancy_not_found_total",
    "Scoped lookups that missed (absent or cross-tenant)",
    ["resource"],
)
