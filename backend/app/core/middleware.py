"""
Request middleware — correlation IDs and dispatch summaries.

Every request gets a request_id in the log context, so transport log
lines for a send carry the id of the request that triggered them. The
send endpoint adds what it was asked to do (``bind_dispatch_context``)
and what happened (``record_dispatch_result``); the middleware turns the
latter into response headers and the per-request log line:

    X-Request-ID          correlation ID (echoed or generated)
    X-Process-Time        wall time of the request
    X-Dispatch-Success    "true" / "false" (send requests only)
    X-Dispatch-Channels   channels actually invoked, comma-separated
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import List, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from backend.app.core.logging_config import bind_request_context, set_request_context
from backend.app.messaging.models import DispatchResult, Message

logger = logging.getLogger(__name__)

QUIET_PATH_PREFIXES = ("/docs", "/redoc", "/openapi", "/favicon", "/health/live")

DISPATCH_SUCCESS_HEADER = "X-Dispatch-Success"
DISPATCH_CHANNELS_HEADER = "X-Dispatch-Channels"


# ---------------------------------------------------------------------------
# Hooks for the send endpoint
# ---------------------------------------------------------------------------

def bind_dispatch_context(message: Message) -> None:
    """Tag the log context of the current send with its request shape."""
    bind_request_context(
        channels_requested=[c.value for c in message.requested_channels()],
        recipient_count=len(message.recipients),
    )


def record_dispatch_result(request: Request, result: DispatchResult) -> None:
    """Hand the aggregate result to the middleware for headers and logging."""
    request.state.dispatch_result = result


def _invoked_channels(result: DispatchResult) -> List[str]:
    return [channel.value for channel in result.results]


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Inject the correlation ID and log one line per request.

    Send requests are logged at WARNING when no channel delivered, even
    though the endpoint answers 200 outside strict mode.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        path = request.url.path

        set_request_context(
            request_id=request_id,
            endpoint=path,
            method=request.method,
        )
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "%s %s → 500 (%.1fms)",
                request.method, path, (time.perf_counter() - start) * 1000,
                extra={"status_code": 500, "endpoint": path},
            )
            set_request_context()
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{duration_ms:.1f}ms"

        result: Optional[DispatchResult] = getattr(request.state, "dispatch_result", None)
        if result is not None:
            invoked = _invoked_channels(result)
            response.headers[DISPATCH_SUCCESS_HEADER] = "true" if result.success else "false"
            if invoked:
                response.headers[DISPATCH_CHANNELS_HEADER] = ",".join(invoked)

        if not path.startswith(QUIET_PATH_PREFIXES):
            self._log_request(request, response, duration_ms, result)

        set_request_context()
        return response

    def _log_request(
        self,
        request: Request,
        response: Response,
        duration_ms: float,
        result: Optional[DispatchResult],
    ) -> None:
        path = request.url.path
        extra = {
            "duration_ms": duration_ms,
            "status_code": response.status_code,
            "endpoint": path,
        }
        failed = response.status_code >= 400
        if result is None:
            message = "%s %s → %d (%.1fms)" % (
                request.method, path, response.status_code, duration_ms,
            )
        else:
            failed = failed or not result.success
            extra["channels_invoked"] = _invoked_channels(result)
            extra["dispatch_success"] = result.success
            message = "%s %s → %d (%.1fms) dispatch=%s channels=%s" % (
                request.method, path, response.status_code, duration_ms,
                "ok" if result.success else "failed",
                ",".join(extra["channels_invoked"]) or "-",
            )

        logger.log(logging.WARNING if failed else logging.INFO, message, extra=extra)
