"""
Error registry: loads and validates registry.yaml.

Every code the lifecycle engine can raise has one entry carrying the user
facing title, safe message and remediation. Two rules tie the file to the
API contract:

    - http_status is one of the statuses the API answers errors with
    - only 503 entries (lost conditional writes) may be retryable

``check_error_kinds`` additionally verifies that every error kind's
default code is registered under the status that kind maps to.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Type

import yaml

from copallet.core.errors import CODE_PATTERN, CoPalletError

logger = logging.getLogger(__name__)

VALID_DOMAINS = {"API", "AUTH", "BID", "CFG", "DB", "SHP", "SYS"}
VALID_SEVERITIES = {"DEBUG", "INFO", "WARN", "ERROR", "CRITICAL"}
VALID_HTTP_STATUSES = {400, 403, 404, 409, 500, 503}
RETRYABLE_HTTP_STATUS = 503
REQUIRED_FIELDS = {"code", "domain", "title", "severity", "retryable", "user_action_required", "http_status", "safe_message", "remediation"}


@dataclass(frozen=True)
class ErrorEntry:
    code: str
    domain: str
    title: str
    severity: str
    retryable: bool
    user_action_required: bool
    http_status: int
    safe_message: str
    remediation: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)


class RegistryValidationError(Exception):
    """Raised when registry.yaml has structural errors."""


def _parse_entry(idx: int, raw: dict) -> ErrorEntry:
    missing = REQUIRED_FIELDS - set(raw.keys())
    if missing:
        raise RegistryValidationError(
            f"Entry {idx} ({raw.get('code', '?')}): missing fields {sorted(missing)}"
        )

    code = raw["code"]
    if not CODE_PATTERN.match(code):
        raise RegistryValidationError(f"Invalid code format: {code!r}")

    domain = raw["domain"]
    code_domain = code.split("-")[1]
    if domain != code_domain:
        raise RegistryValidationError(
            f"{code}: domain {domain!r} doesn't match code prefix {code_domain!r}"
        )
    if domain not in VALID_DOMAINS:
        raise RegistryValidationError(f"{code}: unknown domain {domain!r}")

    if raw["severity"] not in VALID_SEVERITIES:
        raise RegistryValidationError(f"{code}: unknown severity {raw['severity']!r}")

    http_status = int(raw["http_status"])
    if http_status not in VALID_HTTP_STATUSES:
        raise RegistryValidationError(f"{code}: unsupported http_status {http_status}")

    retryable = bool(raw["retryable"])
    if retryable and http_status != RETRYABLE_HTTP_STATUS:
        raise RegistryValidationError(
            f"{code}: retryable entries must use http_status {RETRYABLE_HTTP_STATUS}"
        )

    return ErrorEntry(
        code=code,
        domain=domain,
        title=raw["title"],
        severity=raw["severity"],
        retryable=retryable,
        user_action_required=bool(raw["user_action_required"]),
        http_status=http_status,
        safe_message=raw["safe_message"],
        remediation=raw.get("remediation") or [],
        tags=raw.get("tags") or [],
    )


class ErrorRegistry:
    """Loads, validates, and provides lookup for error codes."""

    def __init__(self) -> None:
        self._entries: Dict[str, ErrorEntry] = {}
        self.schema_version: int = 0

    def load(self, path: str | None = None) -> None:
        if path is None:
            path = os.path.join(os.path.dirname(__file__), "registry.yaml")

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        self.schema_version = data.get("schema_version", 0)
        errors_list = data.get("errors", [])
        if not isinstance(errors_list, list):
            raise RegistryValidationError("'errors' must be a list")

        entries: Dict[str, ErrorEntry] = {}
        for idx, raw in enumerate(errors_list):
            entry = _parse_entry(idx, raw)
            if entry.code in entries:
                raise RegistryValidationError(f"Duplicate code: {entry.code}")
            entries[entry.code] = entry

        self._entries = entries
        logger.info("error_registry_loaded", extra={"count": len(entries), "schema_version": self.schema_version})

    def check_error_kinds(self, kinds: Iterable[Type[CoPalletError]]) -> None:
        """Each kind's default code must be registered with the kind's status."""
        for kind in kinds:
            entry = self._entries.get(kind.default_code)
            if entry is None:
                raise RegistryValidationError(
                    f"{kind.__name__}: default code {kind.default_code} is not registered"
                )
            if entry.http_status != kind.http_status:
                raise RegistryValidationError(
                    f"{kind.__name__}: {entry.code} maps to {entry.http_status}, "
                    f"expected {kind.http_status}"
                )

    def get(self, code: str) -> ErrorEntry | None:
        return self._entries.get(code)

    def lookup(self, code: str) -> ErrorEntry:
        """Lookup by code, raising KeyError if not found."""
        entry = self._entries.get(code)
        if entry is None:
            raise KeyError(f"Unknown error code: {code!r}")
        return entry

    def __len__(self) -> int:
        return len(self._entries)


# Loaded once at startup
error_registry = ErrorRegistry()
