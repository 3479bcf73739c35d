"""Middleware registration."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gardennet.config import Settings
from gardennet.middleware.error_handler import setup_error_handlers
from gardennet.middleware.logging import setup_logging
from gardennet.middleware.rate_limit import RateLimitMiddleware
from gardennet.middleware.request_id import RequestIdMiddleware

# The web app sends session tokens; operator tooling adds the operator key.
CORS_ALLOW_HEADERS = ["Authorization", "Content-Type", "X-Request-Id", "X-Operator-Key"]
CORS_EXPOSE_HEADERS = ["X-Request-Id", "X-RateLimit-Remaining", "X-RateLimit-Limit"]


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register handlers and middleware.

    Middleware added last runs outermost: CORS wraps the request-id and rate
    limit layers, so 429s still carry CORS headers.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=CORS_ALLOW_HEADERS,
        expose_headers=CORS_EXPOSE_HEADERS,
    )
