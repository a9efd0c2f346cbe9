"""
HTTP middleware for the webhook server.

Outermost first: rate limiting, request logging, exception recovery,
security headers.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from prbot.config import WebhookSettings

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 300.0

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
}


@dataclass
class _Bucket:
    tokens: float
    updated: float


class RateLimiter:
    """
    Per-IP token bucket: refills requests_per_minute/60 tokens per second
    up to a burst of requests_per_minute. All buckets are dropped every
    five minutes.
    """

    def __init__(self, requests_per_minute: int, clock=time.monotonic):
        self.burst = float(requests_per_minute)
        self.rate = requests_per_minute / 60.0
        self._clock = clock
        self._buckets: Dict[str, _Bucket] = {}
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    def allow(self, ip: str) -> bool:
        with self._lock:
            now = self._clock()
            if now - self._last_cleanup >= CLEANUP_INTERVAL_SECONDS:
                self._buckets.clear()
                self._last_cleanup = now

            bucket = self._buckets.get(ip)
            if bucket is None:
                bucket = _Bucket(tokens=self.burst, updated=now)
                self._buckets[ip] = bucket
            else:
                bucket.tokens = min(self.burst, bucket.tokens + (now - bucket.updated) * self.rate)
                bucket.updated = now

            if bucket.tokens < 1.0:
                return False
            bucket.tokens -= 1.0
            return True

    def __len__(self) -> int:
        return len(self._buckets)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP", "")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def install_middleware(app: FastAPI, settings: WebhookSettings) -> Optional[RateLimiter]:
    """Register the middleware stack; returns the rate limiter when enabled."""

    # Registered innermost first

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value
        return response

    @app.middleware("http")
    async def recovery(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.exception(f"Unhandled error while serving {request.url.path}: {e}")
            return PlainTextResponse("Internal server error", status_code=500)

    @app.middleware("http")
    async def request_logging(request: Request, call_next):
        start = time.monotonic()
        response = await call_next(request)
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            f"HTTP request method={request.method} path={request.url.path} "
            f"status={response.status_code} duration_ms={duration_ms} ip={client_ip(request)}"
        )
        return response

    if not settings.rate_limit_enabled:
        return None

    limiter = RateLimiter(settings.rate_limit_requests)

    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        ip = client_ip(request)
        if not limiter.allow(ip):
            logger.warning(f"Rate limit exceeded for IP: {ip}")
            return PlainTextResponse("Rate limit exceeded", status_code=429)
        return await call_next(request)

    return limiter
