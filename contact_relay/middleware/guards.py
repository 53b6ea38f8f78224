import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse

logger = logging.getLogger(__name__)

BODY_METHODS = {"POST", "PUT", "PATCH"}


class OriginAllowListMiddleware(BaseHTTPMiddleware):
    """Refuse browser requests from origins outside the allow-list.

    Requests without an Origin header (curl, health checks) pass through.
    """

    def __init__(self, app, allowed_origins):
        super().__init__(app)
        self.allowed_origins = set(allowed_origins)

    async def dispatch(self, request: Request, call_next):
        origin = request.headers.get("origin")
        if origin and origin not in self.allowed_origins:
            logger.warning("Rejected request from origin %s to %s", origin, request.url.path)
            return PlainTextResponse("Not allowed by CORS", status_code=403)
        return await call_next(request)


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, max_bytes: int):
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next):
        if request.method in BODY_METHODS:
            length = request.headers.get("content-length")
            if length is not None:
                try:
                    too_large = int(length) > self.max_bytes
                except ValueError:
                    return PlainTextResponse("Invalid Content-Length", status_code=400)
            else:
                too_large = len(await request.body()) > self.max_bytes
            if too_large:
                return PlainTextResponse("Payload Too Large", status_code=413)
        return await call_next(request)
