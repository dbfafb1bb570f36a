"""Middleware configuration for the FastAPI application.

This module handles the configuration and registration of all middleware
components: CORS, rate limiting and security headers.
"""

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp
from structlog import get_logger

from tutorguard.core.config import Settings
from tutorguard.core.handlers import build_rate_limit_response
from tutorguard.domain.rate_limiting import UNKNOWN_IDENTIFIER, RateLimiter, RateLimitOverride

logger = get_logger(__name__)

SKIP_PREFIXES = ("/_next/", "/favicon.ico", "/robots.txt", "/sitemap.xml", "/images/", "/static/")
FORM_PATHS = ("/contact", "/enrol", "/portal/login")
NO_STORE_PREFIXES = ("/portal", "/api/")

SECURITY_HEADERS = {
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains; preload",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Cross-Origin-Embedder-Policy": "require-corp",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Permissions-Policy": (
        "camera=(), microphone=(), geolocation=(), gyroscope=(), magnetometer=(), "
        "payment=(), usb=(), interest-cohort=()"
    ),
}

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
    "Surrogate-Control": "no-store",
}


@dataclass(frozen=True)
class EndpointLimit:
    """Rate limit category, and optional custom quota, for one endpoint."""

    category: str
    override: Optional[RateLimitOverride] = None


DEFAULT_ENDPOINT_LIMITS = {
    "/api/contact": EndpointLimit("contact"),
    "/api/enrollment": EndpointLimit("enrollment"),
    "/api/auth/login": EndpointLimit("auth"),
    "/api/auth/register": EndpointLimit("auth"),
    "/api/auth/reset-password": EndpointLimit("password_reset"),
    # Health and monitoring are more permissive, admin far less.
    "/api/health": EndpointLimit("api", RateLimitOverride(200, 60)),
    "/api/health/detailed": EndpointLimit("api", RateLimitOverride(100, 60)),
    "/api/health/ready": EndpointLimit("api", RateLimitOverride(200, 60)),
    "/api/admin": EndpointLimit("api", RateLimitOverride(10, 60)),
    "/contact": EndpointLimit("contact"),
    "/enrol": EndpointLimit("enrollment"),
    "/portal/login": EndpointLimit("auth"),
}


def get_client_ip(request: Request) -> str:
    """Resolve the client address, preferring proxy headers."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_IDENTIFIER


def should_rate_limit(path: str) -> bool:
    if path.startswith(SKIP_PREFIXES):
        return False
    return path.startswith("/api/") or path.startswith(FORM_PATHS)


def resolve_endpoint_limit(
    path: str,
    endpoint_limits: Mapping[str, EndpointLimit],
    default_category: str = "api",
) -> EndpointLimit:
    """Exact match first, then the longest matching prefix, then the default."""
    if path in endpoint_limits:
        return endpoint_limits[path]

    matches = [pattern for pattern in endpoint_limits if path.startswith(pattern)]
    if matches:
        return endpoint_limits[max(matches, key=len)]
    return EndpointLimit(default_category)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Applies the rate limiter to API and form endpoints.

    Rejected requests get a 429 JSON response with ``Retry-After`` and
    ``X-RateLimit-*`` headers; admitted responses carry the ``X-RateLimit-*``
    headers. Whitelisted addresses are never limited.

    The limiter is taken from ``app.state.rate_limiter`` unless one is passed
    explicitly. Any unexpected limiter error lets the request through
    (fail open) and is logged.
    """

    def __init__(
        self,
        app: ASGIApp,
        rate_limiter: Optional[RateLimiter] = None,
        whitelist: Iterable[str] = (),
        endpoint_limits: Optional[Mapping[str, EndpointLimit]] = None,
        default_category: str = "api",
    ):
        super().__init__(app)
        self.rate_limiter = rate_limiter
        self.whitelist = frozenset(whitelist)
        self.endpoint_limits = dict(DEFAULT_ENDPOINT_LIMITS if endpoint_limits is None else endpoint_limits)
        self.default_category = default_category

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        limiter = self.rate_limiter or getattr(request.app.state, "rate_limiter", None)
        if limiter is None or not should_rate_limit(path):
            return await call_next(request)

        client_ip = get_client_ip(request)
        if client_ip in self.whitelist:
            return await call_next(request)

        endpoint_limit = resolve_endpoint_limit(path, self.endpoint_limits, self.default_category)
        try:
            decision = await limiter.check(
                endpoint_limit.category, client_ip, override=endpoint_limit.override
            )
        except Exception as exc:
            logger.error(
                "rate_limit_middleware_error",
                path=path,
                client_ip=client_ip,
                category=endpoint_limit.category,
                error=str(exc),
                exc_info=True,
            )
            return await call_next(request)

        now = limiter.now()
        if not decision.allowed:
            logger.warning(
                "rate_limit_rejected",
                client_ip=client_ip,
                path=path,
                method=request.method,
                category=endpoint_limit.category,
                durable=decision.using_durable_store,
                user_agent=request.headers.get("user-agent", "unknown"),
            )
            return build_rate_limit_response(decision, now)

        response = await call_next(request)
        if not decision.bypassed:
            response.headers.update(decision.to_http_headers(now))
        return response


async def security_headers_middleware(request: Request, call_next: RequestResponseEndpoint) -> Response:
    """Adds security headers to every response.

    Responses under ``/portal`` and ``/api/`` are additionally marked as
    not cacheable.
    """
    response = await call_next(request)
    response.headers.update(SECURITY_HEADERS)
    if request.url.path.startswith(NO_STORE_PREFIXES):
        response.headers.update(NO_STORE_HEADERS)
    return response


def configure_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure all middleware for the FastAPI application.

    Middleware added last runs first, so security headers also decorate the
    429 responses produced by the rate limiter.

    Args:
        app (FastAPI): The FastAPI application instance
        settings (Settings): Application settings
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(RateLimitMiddleware, whitelist=settings.RATE_LIMIT_WHITELIST)

    app.middleware("http")(security_headers_middleware)
