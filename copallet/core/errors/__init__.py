"""
Error code system.

CoPalletError is the base exception for all structured errors. Each error
kind of the lifecycle engine is a subclass with a default registry code;
raise it with a more specific code from the registry where one exists, and
the error middleware will produce a structured JSON response.

Usage:
    from copallet.core.errors import InvalidTransition
    raise InvalidTransition("CPL-SHP-001", detail="shipment abc is delivered")
"""

from __future__ import annotations

import re

CODE_PATTERN = re.compile(r"^CPL-[A-Z]{2,6}-\d{3}$")


class CoPalletError(Exception):
    """Structured application error tied to the error registry.

    Args:
        code: Registry error code, e.g. "CPL-SHP-001".
        detail: Internal-only detail message (never exposed to users).
        context: Arbitrary key-value context for structured logging.
    """

    default_code = "CPL-SYS-001"
    http_status = 500

    def __init__(
        self,
        code: str | None = None,
        detail: str | None = None,
        context: dict | None = None,
    ) -> None:
        code = code or self.default_code
        if not CODE_PATTERN.match(code):
            raise ValueError(f"Invalid error code format: {code!r}")
        self.code = code
        self.detail = detail
        self.context = context or {}
        super().__init__(f"{code}: {detail}" if detail else code)


class InvalidTransition(CoPalletError):
    """Operation is not legal from the entity's current status."""

    default_code = "CPL-SHP-001"
    http_status = 409


class Unauthorized(CoPalletError):
    """Actor does not hold the role or ownership the operation requires."""

    default_code = "CPL-AUTH-001"
    http_status = 403


class InvalidArgument(CoPalletError):
    """Malformed input: non-positive price, self-bid, missing payload field."""

    default_code = "CPL-API-001"
    http_status = 400


class NotFound(CoPalletError):
    """Shipment or bid does not exist, or the bid belongs to another shipment."""

    default_code = "CPL-SHP-404"
    http_status = 404


class ConcurrencyConflict(CoPalletError):
    """The shipment row changed between read and conditional write."""

    default_code = "CPL-DB-001"
    http_status = 503


ERROR_KINDS = (
    CoPalletError,
    InvalidTransition,
    Unauthorized,
    InvalidArgument,
    NotFound,
    ConcurrencyConflict,
)
