# api/rate_limit.py
import os
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from fastapi import FastAPI

RATE_LIMIT = os.getenv("RATE_LIMIT", "100/hour")

limiter = Limiter(key_func=get_remote_address)


def register_rate_limit(app: FastAPI):
    """
    Attach the shared limiter to the app and answer RateLimitExceeded with 429.

    Endpoints opt in with ``@limiter.limit(RATE_LIMIT)`` and must accept a
    ``request: Request`` argument for slowapi to key on the client address.
    """
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
