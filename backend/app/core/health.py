"""
Health check aggregation — configuration probe for the delivery providers.

Checks:
    • Email provider (Brevo API key present)
    • WhatsApp provider (live vs. simulated transport)
    • Dispatcher wiring (which channels have a transport)

No outbound call is made: a health probe must not send messages or
spend provider quota.

Returns a structured health report suitable for:
    - Kubernetes liveness/readiness probes
    - Load balancer health checks
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from backend.app.core.config import Settings, settings
from backend.app.messaging.models import MessageChannel

if TYPE_CHECKING:
    from backend.app.messaging.dispatcher import MessageDispatcher

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    environment: str = settings.ENVIRONMENT
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


# Track application start time
_start_time = time.monotonic()


async def check_email_provider(config: Settings) -> ComponentHealth:
    """Brevo is usable only with an API key."""
    comp = ComponentHealth(name="email_provider")
    start = time.monotonic()
    comp.details = {"url": config.BREVO_API_URL, "sender": config.EMAIL_SENDER_ADDRESS}
    if config.BREVO_API_KEY:
        comp.status = HealthStatus.HEALTHY
        comp.message = "Brevo API key configured"
    else:
        comp.status = HealthStatus.DEGRADED
        comp.message = "BREVO_API_KEY missing; email sends will fail"
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_whatsapp_provider(
    config: Settings,
    dispatcher: Optional["MessageDispatcher"] = None,
) -> ComponentHealth:
    """Live transport is healthy; simulation is reported as degraded."""
    comp = ComponentHealth(name="whatsapp_provider")
    start = time.monotonic()

    mode = "live" if config.whatsapp_live_configured else "simulated"
    if config.WHATSAPP_MODE == "simulation":
        mode = "simulated"
    if dispatcher is not None:
        transport = dispatcher.transport_for(MessageChannel.WHATSAPP)
        if transport is not None:
            mode = transport.mode

    comp.details = {"mode": mode, "configured_mode": config.WHATSAPP_MODE}
    if mode == "live":
        comp.status = HealthStatus.HEALTHY
        comp.message = "WhatsApp Cloud API configured"
    else:
        comp.status = HealthStatus.DEGRADED
        comp.message = "WhatsApp running in simulation mode"
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_dispatcher(dispatcher: Optional["MessageDispatcher"]) -> ComponentHealth:
    comp = ComponentHealth(name="dispatcher")
    start = time.monotonic()
    if dispatcher is None:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = "Dispatcher not initialised"
    elif not dispatcher.registered_channels:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = "No channel transports registered"
    else:
        comp.status = HealthStatus.HEALTHY
        comp.message = "Dispatcher ready"
        comp.details = {"channels": [c.value for c in dispatcher.registered_channels]}
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def run_health_check(
    dispatcher: Optional["MessageDispatcher"] = None,
    config: Optional[Settings] = None,
) -> HealthReport:
    """Run all health checks and aggregate into a report."""
    config = config or settings
    report = HealthReport(
        version=config.APP_VERSION,
        environment=config.ENVIRONMENT,
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    checks = [
        check_email_provider(config),
        check_whatsapp_provider(config, dispatcher),
        check_dispatcher(dispatcher),
    ]

    for coro in checks:
        comp = await coro
        report.components.append(comp)

    # Aggregate status
    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    if report.status != HealthStatus.HEALTHY:
        logger.debug("Health check: %s", report.status.value)

    return report
