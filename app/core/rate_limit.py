"""Rate limiting for the VIP endpoints (slowapi)."""

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

from app.config import settings


ANONYMOUS_KEY = 'anonymous'


def get_rate_limit_key(request: Request) -> str:
    """Key requests on the authenticated user and the socket peer address.

    ``request.state.user_id`` is set by the cabinet auth dependency, which runs
    before the limit is checked. Client supplied forwarding headers are not
    trusted; run uvicorn with ``--proxy-headers`` behind a known proxy instead.
    """
    user_id = getattr(request.state, 'user_id', None) or ANONYMOUS_KEY
    return f'vip:{user_id}:{get_remote_address(request)}'


limiter = Limiter(key_func=get_rate_limit_key, storage_uri=settings.RATE_LIMIT_STORAGE_URI)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={
            'detail': 'Too many requests. Please try again later.',
            'retry_after': exc.detail,
        },
    )


VIP_PURCHASE_RATE_LIMIT = settings.VIP_PURCHASE_RATE_LIMIT
VIP_STATUS_RATE_LIMIT = settings.VIP_STATUS_RATE_LIMIT
