"""Error envelope for API responses: ``{"code", "detail", ...}``.

Views hand domain exceptions (``code`` plus ``as_dict()``) to
``error_response``, which looks the HTTP status up by code.  Framework
exceptions are reshaped into the same envelope by the DRF handler.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = structlog.get_logger(__name__)

ERROR_STATUS_CODES: Dict[str, int] = {
    "ValidationError": status.HTTP_400_BAD_REQUEST,
    "ItemsNotFound": status.HTTP_400_BAD_REQUEST,
    "StateError": status.HTTP_400_BAD_REQUEST,
    "NotFound": status.HTTP_404_NOT_FOUND,
    "OrderLocked": status.HTTP_409_CONFLICT,
    "Conflict": status.HTTP_409_CONFLICT,
    "AllocationExhausted": status.HTTP_503_SERVICE_UNAVAILABLE,
}

_FRAMEWORK_CODES = {
    exceptions.ValidationError: "ValidationError",
    exceptions.ParseError: "ValidationError",
    exceptions.NotFound: "NotFound",
    Http404: "NotFound",
}


def error_response(exc: Any) -> Response:
    """Translate a domain exception carrying ``code`` and ``as_dict()``."""
    status_code = ERROR_STATUS_CODES.get(exc.code, status.HTTP_400_BAD_REQUEST)
    logger.warning("api.domain_error", code=exc.code, status_code=status_code)
    return Response(exc.as_dict(), status=status_code)


def api_exception_handler(exc: Exception, context: Dict[str, Any]) -> Optional[Response]:
    """Reshape framework errors (payload, auth, throttling) into the same envelope."""
    response = drf_exception_handler(exc, context)
    if response is None:
        return None

    code = _FRAMEWORK_CODES.get(type(exc)) or getattr(exc, "default_code", "error")
    if isinstance(exc, exceptions.ValidationError):
        response.data = {
            "code": code,
            "detail": "Invalid request payload.",
            "errors": response.data,
        }
    else:
        detail = response.data.get("detail") if isinstance(response.data, dict) else None
        response.data = {"code": code, "detail": str(detail or exc)}
    return response
