"""
Request logging and correlation middleware.

Each request gets a request_id and correlation_id (taken from the inbound
x-request-id / x-correlation-id headers when present) in contextvars, so
every log line written while serving it carries them. One
``request_completed`` line per request records the route template, the
shipment it addressed, the acting user and the outcome. Health checks log
at DEBUG.
"""
from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from copallet.core.structured_logging import actor_id_var, correlation_id_var, request_id_var

logger = logging.getLogger(__name__)

_QUIET_PREFIX = "/api/health"


def _completion_fields(request: Request, status_code, duration_ms: float) -> dict:
    route = request.scope.get("route")
    fields = {
        "http.method": request.method,
        "http.path": request.url.path,
        "http.path_template": getattr(route, "path", None),
        "http.status_code": status_code,
        "duration_ms": duration_ms,
    }
    shipment_id = request.scope.get("path_params", {}).get("shipment_id")
    if shipment_id:
        fields["shipment_id"] = shipment_id
    actor = getattr(request.state, "actor", None)
    if actor is not None:
        fields["actor_id"] = actor.user_id
        fields["actor.role"] = actor.role.value
    return fields


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Bind request ids to the logging context and log each request's outcome."""

    async def dispatch(self, request: Request, call_next) -> Response:
        req_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        corr_id = request.headers.get("x-correlation-id") or uuid.uuid4().hex

        rid_token = request_id_var.set(req_id)
        cid_token = correlation_id_var.set(corr_id)
        aid_token = actor_id_var.set(None)

        start = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response is not None else 500
            level = logging.DEBUG if request.url.path.startswith(_QUIET_PREFIX) else logging.INFO
            logger.log(level, "request_completed",
                       extra=_completion_fields(request, status_code, duration_ms))
            request_id_var.reset(rid_token)
            correlation_id_var.reset(cid_token)
            actor_id_var.reset(aid_token)

        response.headers["x-request-id"] = req_id
        response.headers["x-correlation-id"] = corr_id
        return response
