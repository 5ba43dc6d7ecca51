import time
import uuid
from typing import Callable

import structlog
from django.conf import settings
from django.http import HttpRequest, HttpResponse

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"


def resolve_store_id(request: HttpRequest) -> str:
    """Store named in ``X-Store-ID`` by the access layer, else the configured default."""
    return request.META.get("HTTP_X_STORE_ID", "").strip() or settings.DEFAULT_STORE_ID


class RequestContextMiddleware:
    """Puts the correlation ID and store on every log line of a request.

    ``X-Request-ID`` is taken from the request or generated (UUID4) and
    always echoed on the response.
    """

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        request_id = request.META.get("HTTP_X_REQUEST_ID") or str(uuid.uuid4())
        request.store_id = resolve_store_id(request)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            correlation_id=request_id,
            store_id=request.store_id,
        )

        path = request.get_full_path()
        logger.info("request_started", method=request.method, path=path)
        started = time.monotonic()

        response = self.get_response(request)

        logger.info(
            "request_finished",
            method=request.method,
            path=path,
            status_code=response.status_code,
            duration_ms=round((time.monotonic() - started) * 1000, 2),
        )
        response[REQUEST_ID_HEADER] = request_id
        return response
