"""
Request rate limiting.

Limits are counted per credential so users behind one proxy do not share a
bucket; anonymous requests fall back to the client address.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from app.core import config


def get_rate_limit_key(request: Request) -> str:
    """Authorization header, else the auth cookie, else the remote address."""
    auth = request.headers.get("Authorization") or request.cookies.get(config.AUTH_COOKIE_NAME)
    return auth or get_remote_address(request)


limiter = Limiter(key_func=get_rate_limit_key, enabled=config.RATE_LIMIT_ENABLED)
