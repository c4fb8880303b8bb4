"""Voice receptionist gateway — FastAPI Application Entry Point."""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.config import settings
from app.database import engine, Base
from app.errors import GatewayError
from app.middleware.rate_limit import limiter
from app.routers import functions
from app.routers.functions import error_response

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Create all tables on startup
Base.metadata.create_all(bind=engine)

_cors_origins = [o.strip() for o in settings.ALLOWED_ORIGINS.split(",") if o.strip()]

app = FastAPI(
    title="Voice Receptionist Gateway",
    description="Function-call gateway between the voice assistant and each shop's catalog.",
    version="1.0.0",
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return error_response(exc)


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(functions.router)


@app.on_event("startup")
async def on_startup():
    """Warn loudly when the webhook secret is missing."""
    if not settings.VAPI_WEBHOOK_SECRET:
        logger.warning("VAPI_WEBHOOK_SECRET is not set: every POST /functions call will be rejected")
    logger.info("Registered functions: %s", ", ".join(functions.registry.names()))


@app.on_event("shutdown")
async def on_shutdown():
    from app.services.storefront_client import close_storefront_client
    await close_storefront_client()


@app.get("/")
def root():
    return {
        "name": "Voice Receptionist Gateway",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
def health():
    return {"status": "ok"}
