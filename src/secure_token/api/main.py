# Secure Token Service - FastAPI Backend
#
# REST API over the tokenization vault and the TOTP engine.
# Configuration is loaded at startup so a missing or invalid encryption key
# stops the service before it accepts any request.

import logging

import uvicorn
from fastapi import FastAPI

from .. import __version__
from ..config import get_settings
from ..core import (
    AuditLogger,
    EventSeverity,
    EventType,
    get_audit_logger,
    set_audit_logger,
)
from .mfa_routes import get_totp_engine, router as mfa_router
from .security import get_api_key, initialize_api_key
from .token_routes import get_vault, router as token_router

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Secure Token API",
    description="Payload tokenization vault and TOTP multi-factor service",
    version=__version__,
)

app.include_router(token_router)
app.include_router(mfa_router)


@app.on_event("startup")
async def startup_event():
    """Load settings, wire the audit logger, and build the vault and engine."""
    settings = get_settings()  # ConfigurationError aborts startup

    set_audit_logger(AuditLogger(log_dir=settings.audit_log_dir))
    if get_api_key() is None:
        initialize_api_key(settings.api_key)
    if get_api_key() is None:
        logger.warning("SECURE_TOKEN_API_KEY is not set; protected endpoints will answer 503")

    get_vault()
    get_totp_engine()

    get_audit_logger().log_event(
        event_type=EventType.SERVICE_START,
        severity=EventSeverity.INFO,
        message="Secure token service started",
        details={"cipher_mode": settings.cipher_mode.value, "version": __version__},
    )


@app.on_event("shutdown")
async def shutdown_event():
    get_audit_logger().log_event(
        event_type=EventType.SERVICE_STOP,
        severity=EventSeverity.INFO,
        message="Secure token service stopped",
    )


@app.get("/health")
async def health():
    """Liveness probe (no API key required)."""
    return {"status": "ok", "version": __version__}


def start_api_server(host: str = "127.0.0.1", port: int = 8000):
    """
    Start FastAPI server.

    Args:
        host: Host to bind to (default: localhost only)
        port: Port to listen on
    """
    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    start_api_server()
