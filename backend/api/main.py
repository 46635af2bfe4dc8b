"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from config.settings import DEFAULT_CSRF_SECRET, settings

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    security_logger = logging.getLogger("abuse-guard.security")

    # Block startup with the default CSRF secret in production
    if settings.csrf_secret == DEFAULT_CSRF_SECRET:
        if settings.is_production:
            raise RuntimeError(
                "FATAL: Default CSRF secret detected with ENVIRONMENT=production. "
                "Set CSRF_SECRET environment variable to a secure random value."
            )
        security_logger.warning("Default CSRF secret in use. Set CSRF_SECRET before deploying.")

    if not settings.safe_browsing_api_key:
        logger.info("SAFE_BROWSING_API_KEY not set; outbound links are not reputation-checked")

    # 1. Store initialization
    from core.store import close_store, get_store

    store = await get_store()
    logger.info("Rate-limit store initialized: %s", type(store).__name__)

    # 2. Periodic ledger cleanup
    from core.scheduler import get_cleanup_scheduler

    scheduler = get_cleanup_scheduler()
    scheduler.start()

    yield

    # Shutdown
    scheduler.stop()

    from auth.notifications import security_notifier
    from moderation.url_reputation import close_url_reputation_gate

    await security_notifier.drain()
    await close_url_reputation_gate()
    await close_store()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"
        if not settings.debug:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


from security.csrf_middleware import CSRFMiddleware

# Added first so it runs innermost, after CORS
app.add_middleware(CSRFMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*", settings.csrf_header_name],
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> Response:
    logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "internal_error"})


# Prometheus /metrics endpoint (optional)
if settings.prometheus_enabled:
    from monitoring.metrics import metrics_endpoint

    app.add_route("/metrics", metrics_endpoint)
    logger.info("Prometheus metrics enabled at /metrics")

# Register auth routes (login is CSRF-exempt; admin endpoints use the admin token)
from auth.routes import router as auth_router

app.include_router(auth_router, prefix="/api", tags=["auth"])

# Register application routes
from api.routes import csrf, messages, public

app.include_router(csrf.router, prefix="/api", tags=["csrf"])
app.include_router(messages.router, prefix="/api", tags=["messages"])
app.include_router(public.router, prefix="/api", tags=["public"])


@app.get("/health")
async def health_check():
    return {
        "status": "ok",
        "app": settings.app_name,
        "version": settings.app_version,
        "store_backend": settings.store_backend,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host=settings.host, port=settings.port, reload=settings.debug)
