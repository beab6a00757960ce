"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Channel-level delivery problems never surface here: transports convert
them into ``Failed`` outcomes. These exceptions cover programmer and
configuration errors, plus the opt-in strict mode of the send endpoint.

Usage:
    from backend.app.core.errors import (
        MessagingAPIError,
        ConfigurationError,
        DispatchFailedError,
        register_error_handlers,
    )

    raise ConfigurationError("WHATSAPP_ACCESS_TOKEN", "required in live mode")
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.app.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class MessagingAPIError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class ConfigurationError(MessagingAPIError):
    """Deployment is missing or has inconsistent settings (500)."""

    def __init__(self, setting: str, message: str = ""):
        super().__init__(
            message=f"Invalid configuration for '{setting}': {message}",
            status_code=500,
            error_code="CONFIGURATION_ERROR",
            details={"setting": setting},
        )


class DispatchFailedError(MessagingAPIError):
    """No requested channel delivered the message (502)."""

    def __init__(self, message: str, results: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=502,
            error_code="DISPATCH_FAILED",
            details={"results": results or {}},
        )


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def _build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    """Build a consistent JSON error response."""
    body: Dict[str, Any] = {
        "error": {
            "code": error_code,
            "message": message,
            "status": status_code,
        }
    }

    if details:
        body["error"]["details"] = details

    # Include request path in non-production
    if request and not settings.is_production:
        body["error"]["path"] = str(request.url.path)
        body["error"]["method"] = request.method

    return JSONResponse(status_code=status_code, content=body)


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(MessagingAPIError)
    async def handle_messaging_error(request: Request, exc: MessagingAPIError):
        logger.error(
            "API Error [%s]: %s | details=%s",
            exc.error_code, exc.message, exc.details,
        )
        return _build_error_response(
            exc.status_code, exc.error_code, exc.message,
            exc.details, request,
        )

    @app.exception_handler(ValueError)
    async def handle_value_error(request: Request, exc: ValueError):
        logger.warning("ValueError: %s", exc)
        return _build_error_response(
            422, "VALIDATION_ERROR", str(exc), request=request,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical(
            "Unhandled exception: %s\n%s",
            exc, traceback.format_exc(),
        )
        message = str(exc) if settings.DEBUG else "Internal server error"
        details = (
            {"traceback": traceback.format_exc().split("\n")}
            if settings.DEBUG else None
        )
        return _build_error_response(
            500, "INTERNAL_ERROR", message, details, request,
        )
