import asyncio
import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from app.config import settings
from app.modules.auth import routes as auth_routes
from app.modules.data_sources import routes as data_sources_routes
from app.modules.templates import routes as templates_routes
from app.modules.playout import routes as playout_routes
from app.modules.textures import routes as textures_routes
from app.modules.ai_images import routes as ai_images_routes

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    redirect_slashes=False,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception on %s %s: %s", request.method, request.url.path, exc)
    if settings.is_production:
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
    return JSONResponse(status_code=500, content={"detail": str(exc)})


class SecurityHeadersMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                message["headers"].extend([
                    (b"X-Content-Type-Options", b"nosniff"),
                    (b"X-Frame-Options", b"DENY"),
                    (b"Referrer-Policy", b"strict-origin-when-cross-origin"),
                ])
            await send(message)

        await self.app(scope, receive, send_with_headers)


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_routes.router, prefix="/api/v1")
app.include_router(data_sources_routes.router, prefix="/api/v1")
app.include_router(templates_routes.router, prefix="/api/v1")
app.include_router(playout_routes.router, prefix="/api/v1")
app.include_router(textures_routes.router, prefix="/api/v1")
app.include_router(ai_images_routes.router, prefix="/api/v1")

_background_tasks = set()


@app.on_event("startup")
async def startup_event():
    logger.info(f"Application startup ({settings.environment})")
    if settings.sync_scheduler_enabled:
        from app.modules.data_sources.sync_scheduler import sync_scheduler_loop
        task = asyncio.create_task(sync_scheduler_loop())
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)
        logger.info(
            f"Sync scheduler started - checking for due data sources every "
            f"{settings.sync_scheduler_interval_seconds}s"
        )


@app.on_event("shutdown")
async def shutdown_event():
    for task in list(_background_tasks):
        task.cancel()
    logger.info("Application shutdown")


@app.get("/")
async def root():
    return {"message": f"Welcome to {settings.app_name}", "status": "healthy"}


@app.get("/health")
@limiter.exempt
async def health():
    return {"status": "healthy"}


@app.get("/ready")
@limiter.exempt
async def ready():
    """Readiness probe: reports which optional integrations are configured."""
    return {
        "status": "ready",
        "integrations": {
            "supabase": bool(settings.supabase_url),
            "s3": bool(settings.s3_bucket_name),
            "image_generation": bool(settings.gemini_api_key),
            "file_server": bool(settings.file_server_url),
            "sync_scheduler": settings.sync_scheduler_enabled,
        },
    }
