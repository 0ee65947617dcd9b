"""Request metrics and error translation shared by the relay routers."""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException, status
from prometheus_client import Counter, Gauge, Histogram

from ...domain.errors import RelayError

REQUEST_DURATION_BUCKETS = (
    [float(x) for x in range(5, 55, 5)]  # 5..50ms
    + [100.0, 250.0, 500.0, 1000.0, 2500.0, 5000.0]
    + [float("inf")]
)

relay_requests_total = Counter(
    "relay_requests_total",
    "Total relay API requests processed",
    ["route", "status"],
)

relay_request_duration_milliseconds = Histogram(
    "relay_request_duration_milliseconds",
    "Wall time to process a relay API request (ms)",
    ["route", "status"],
    buckets=REQUEST_DURATION_BUCKETS,
)

relay_requests_inprogress = Gauge(
    "relay_requests_inprogress",
    "Number of relay API requests currently being processed",
    multiprocess_mode="livesum",
)

_STATUS_BY_REASON = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "expired": status.HTTP_410_GONE,
    "already_claimed": status.HTTP_409_CONFLICT,
    "blocked": status.HTTP_403_FORBIDDEN,
    "too_many_attempts": status.HTTP_429_TOO_MANY_REQUESTS,
    "invalid_address": status.HTTP_400_BAD_REQUEST,
    "insufficient_funds": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "deposit_not_verified": status.HTTP_400_BAD_REQUEST,
    "payout_terminal": status.HTTP_409_CONFLICT,
    "retries_exhausted": status.HTTP_409_CONFLICT,
    "concurrent_modification": status.HTTP_409_CONFLICT,
    "ledger_unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
    "integrity_fault": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def relay_http_error(error: RelayError) -> HTTPException:
    """Map a domain error to an HTTP error carrying its reason code."""
    status_code = _STATUS_BY_REASON.get(
        error.reason, status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    return HTTPException(
        status_code=status_code,
        detail={"reason": error.reason, "message": str(error)},
    )


@contextmanager
def track_request(route: str) -> Iterator[None]:
    start_time = time.perf_counter()
    outcome = "success"
    relay_requests_inprogress.inc()
    try:
        yield
    except HTTPException as e:
        outcome = "client_error" if e.status_code < 500 else "server_error"
        raise
    except Exception:
        outcome = "server_error"
        raise
    finally:
        elapsed = (time.perf_counter() - start_time) * 1000
        relay_requests_total.labels(route=route, status=outcome).inc()
        relay_request_duration_milliseconds.labels(route=route, status=outcome).observe(
            elapsed
        )
        relay_requests_inprogress.dec()
