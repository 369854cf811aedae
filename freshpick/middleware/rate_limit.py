from __future__ import annotations

from fastapi import FastAPI

from ..settings import Settings


def configure_rate_limiting(app: FastAPI, settings: Settings) -> None:
    """Per-client request ceiling; recommendations are recomputed on every page view."""
    if not settings.rate_limit_enabled:
        return

    from slowapi import Limiter, _rate_limit_exceeded_handler
    from slowapi.errors import RateLimitExceeded
    from slowapi.middleware import SlowAPIMiddleware
    from slowapi.util import get_remote_address

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit_default])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)
