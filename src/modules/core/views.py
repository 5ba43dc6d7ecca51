"""Liveness endpoint for load balancers and the on-call dashboard."""

import time
from typing import Any, Dict

import structlog
from django.db import DatabaseError, connections
from django.http import HttpRequest, JsonResponse
from django.utils import timezone

from modules.core.models import OutboxEvent

logger = structlog.get_logger()


def _probe_database() -> Dict[str, Any]:
    started = time.monotonic()
    with connections["default"].cursor() as cursor:
        cursor.execute("SELECT 1")
        cursor.fetchone()
    return {
        "status": "up",
        "response_time_ms": round((time.monotonic() - started) * 1000, 2),
    }


def _probe_outbox() -> Dict[str, Any]:
    # A backlog that keeps growing means the relay worker is down.
    return {"status": "up", "pending_events": OutboxEvent.objects.backlog().count()}


def health_check(request: HttpRequest) -> JsonResponse:
    """``GET /health``: database reachability and outbox backlog.  No auth."""
    try:
        services = {"database": _probe_database(), "outbox": _probe_outbox()}
        healthy = True
    except DatabaseError:
        logger.exception("health_check_db_failure")
        services = {"database": {"status": "down"}}
        healthy = False

    status = "healthy" if healthy else "unhealthy"
    logger.info("health_check_completed", status=status)
    return JsonResponse(
        {"status": status, "timestamp": timezone.now().isoformat(), "services": services},
        status=200 if healthy else 503,
    )
