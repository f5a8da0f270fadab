import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api import auth, bookings, notifications, services
from app.core.config import settings
from app.core.constants import ERROR_MESSAGES
from app.core.exceptions import ClinicError, RateLimitExceededError
from app.core.logger import logger, setup_logging
from app.core.middleware import AllowListCORSMiddleware, RateLimitMiddleware, SecurityLoggerMiddleware
from app.core.rate_limit import CounterStore, build_counter_store, build_rate_limiters, client_ip

setup_logging()


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ClinicError)
    async def clinic_error_handler(request: Request, exc: ClinicError):
        if exc.status_code >= 500:
            logger.error(f"❌ {type(exc).__name__} on {request.method} {request.url.path}: {exc.message} | {exc.context}")
        else:
            logger.info(f"↩️ {exc.status_code} {type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")

        headers = None
        if isinstance(exc, RateLimitExceededError):
            headers = {"Retry-After": str(exc.retry_after)}
        return JSONResponse(status_code=exc.status_code, content=exc.to_response(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        fields = []
        for error in exc.errors():
            loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
            field = ".".join(loc) or "body"
            if field not in fields:
                fields.append(field)
        logger.info(f"↩️ 400 invalid request on {request.method} {request.url.path}: {fields}")
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "message": ERROR_MESSAGES["INVALID_REQUEST"],
                "code": "VALIDATION_ERROR",
                "required": fields,
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return JSONResponse(
                status_code=404,
                content={"success": False, "message": ERROR_MESSAGES["NOT_FOUND"], "path": request.url.path},
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        logger.error(
            f"🔥 UNHANDLED ERROR: {exc} | path={request.url.path} method={request.method} ip={client_ip(request)}\n{stack}"
        )
        if settings.is_production:
            content = {"success": False, "message": ERROR_MESSAGES["INTERNAL_SERVER_ERROR"]}
        else:
            content = {"success": False, "message": str(exc) or ERROR_MESSAGES["INTERNAL_SERVER_ERROR"], "stack": stack}
        return JSONResponse(status_code=500, content=content)


def create_app(counter_store: Optional[CounterStore] = None) -> FastAPI:
    """
    Builds the API. ``counter_store`` holds the rate-limit counters; by default
    Redis when RATE_LIMIT_REDIS_URL is set, otherwise in-process memory.
    """
    store = counter_store or build_counter_store()
    limiters = build_rate_limiters(store)
    prefix = settings.API_PREFIX
    health_path = f"{prefix}/health"

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"🚀 Starting {settings.PROJECT_NAME} v{settings.VERSION} ({settings.ENVIRONMENT})")
        logger.info(f"🌐 CORS allowed origins: {settings.allowed_origins_list}")
        yield
        await store.close()
        logger.info("🛑 Shutting down backend")

    app = FastAPI(title=settings.PROJECT_NAME, version=settings.VERSION, lifespan=lifespan)
    app.state.counter_store = store
    app.state.rate_limiters = limiters

    register_exception_handlers(app)

    # Registered innermost first
    app.add_middleware(
        RateLimitMiddleware,
        limiter=limiters["general"],
        excluded_paths=[health_path, "/", "/docs", "/redoc", "/openapi.json"],
    )
    app.add_middleware(
        AllowListCORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )
    app.add_middleware(
        SecurityLoggerMiddleware,
        sensitive_prefixes=[f"{prefix}/auth", f"{prefix}/bookings"],
    )

    app.include_router(auth.router, prefix=prefix, tags=["Auth"])
    app.include_router(bookings.router, prefix=prefix, tags=["Bookings"])
    app.include_router(services.router, prefix=prefix, tags=["Services"])
    app.include_router(notifications.router, prefix=prefix, tags=["Notifications"])

    @app.get(health_path)
    async def health_check():
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": settings.ENVIRONMENT,
            "version": settings.VERSION,
        }

    @app.get("/")
    async def root():
        return {
            "success": True,
            "message": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "endpoints": {
                "health": health_path,
                "auth": f"{prefix}/auth",
                "bookings": f"{prefix}/bookings",
                "services": f"{prefix}/services",
                "notifications": f"{prefix}/notifications",
            },
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=settings.PORT, reload=not settings.is_production)
