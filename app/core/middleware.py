from typing import Iterable

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.core.exceptions import RateLimitExceededError
from app.core.logger import logger
from app.core.rate_limit import RateLimiter, client_ip
from app.core.validation import is_suspicious


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Applies one limiter to every request except the excluded paths."""

    def __init__(self, app, limiter: RateLimiter, excluded_paths: Iterable[str] = ()):
        super().__init__(app)
        self.limiter = limiter
        self.excluded_paths = set(excluded_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self.excluded_paths or request.method == "OPTIONS":
            return await call_next(request)

        try:
            await self.limiter.check(request)
        except RateLimitExceededError as exc:
            # Raised outside the router, so the app's exception handlers never see it
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response(),
                headers={"Retry-After": str(exc.retry_after)},
            )

        return await call_next(request)


class SecurityLoggerMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, sensitive_prefixes: Iterable[str] = ()):
        super().__init__(app)
        self.sensitive_prefixes = tuple(sensitive_prefixes)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        ip = client_ip(request)

        if is_suspicious(path) or is_suspicious(request.url.query):
            logger.warning(f"🕵️ Suspicious request | ip={ip} method={request.method} path={path} query={request.url.query}")
        elif path.startswith(self.sensitive_prefixes):
            logger.info(
                f"🔐 Security-relevant request | method={request.method} path={path} ip={ip} "
                f"user_agent={request.headers.get('user-agent', '-')}"
            )

        return await call_next(request)


class AllowListCORSMiddleware(CORSMiddleware):
    """
    CORSMiddleware whose allow-list is authoritative.

    Origins outside ALLOWED_ORIGINS get no Access-Control-Allow-Origin
    header (preflights are rejected); each refusal is logged.
    """

    def is_allowed_origin(self, origin: str) -> bool:
        allowed = super().is_allowed_origin(origin)
        if not allowed:
            logger.warning(f"🚫 CORS blocked request from origin {origin}")
        return allowed
