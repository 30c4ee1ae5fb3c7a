"""
FastAPI exception handler for CoPalletError.

The error kind fixes the HTTP status (InvalidTransition 409, Unauthorized
403, InvalidArgument 400, NotFound 404, ConcurrencyConflict 503); the
registry entry for the code supplies the title, safe message and
remediation. Codes missing from the registry still answer with the kind's
status and a generic body. Retryable errors carry a Retry-After header.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from copallet.config import settings
from copallet.core.errors import CoPalletError
from copallet.core.errors.registry import error_registry

logger = logging.getLogger(__name__)

_SEVERITY_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _error_body(code: str, title: str, message: str, retryable: bool,
                user_action_required: bool, remediation: list) -> dict:
    return {
        "error": {
            "code": code,
            "title": title,
            "message": message,
            "retryable": retryable,
            "user_action_required": user_action_required,
            "remediation": remediation,
        }
    }


def _request_context(request: Request) -> dict:
    actor = getattr(request.state, "actor", None)
    context = {"http.method": request.method, "http.path": request.url.path}
    if actor is not None:
        context["actor.id"] = actor.user_id
        context["actor.role"] = actor.role.value
    shipment_id = request.path_params.get("shipment_id")
    if shipment_id:
        context["shipment_id"] = shipment_id
    return context


async def copallet_error_handler(request: Request, exc: CoPalletError) -> JSONResponse:
    """Convert CoPalletError into a structured JSON response."""
    status_code = type(exc).http_status
    entry = error_registry.get(exc.code)
    log_extra = {
        "error.code": exc.code,
        "error.kind": type(exc).__name__,
        "error.message": exc.detail,
        **_request_context(request),
        **{f"error.ctx.{k}": v for k, v in exc.context.items()},
    }

    if entry is None:
        logger.error("unregistered_error_code", extra=log_extra)
        return JSONResponse(
            status_code=status_code,
            content=_error_body(exc.code, "Request failed", "The request could not be completed.",
                                False, False, []),
        )

    if entry.http_status != status_code:
        logger.warning(
            "error_status_mismatch %s: registry %d, %s %d",
            exc.code, entry.http_status, type(exc).__name__, status_code,
        )

    logger.log(
        _SEVERITY_LEVELS.get(entry.severity, logging.ERROR),
        entry.title,
        extra={**log_extra, "error.retryable": entry.retryable},
    )

    headers = None
    if entry.retryable:
        headers = {"Retry-After": str(max(1, settings.conflict_backoff_max_ms // 1000))}

    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content=_error_body(entry.code, entry.title, entry.safe_message, entry.retryable,
                            entry.user_action_required, entry.remediation),
    )
