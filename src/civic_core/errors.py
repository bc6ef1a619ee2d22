"""Error classification and remediation hints.

The platform services report failures as opaque message strings. This
module is the only place those strings are interpreted: everything above
the store adapters works with ``StoreStatus`` values.
"""
import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from .models import FailureKind, StoreStatus

logger = logging.getLogger("civic-core.errors")


# Substrings the platform uses when an item already exists
DUPLICATE_MARKERS = ("DUPLICATE", "already exists", "unique", "NON_UNIQUE")

# Substrings for a missing prerequisite (schema, root scope, user)
NOT_FOUND_MARKERS = ("not found", "does not exist", "NOT_FOUND")

TRANSIENT_STATUS_CODES = {401, 403, 408, 429}


class AuthenticationError(Exception):
    """Raised when no session can be established with the platform.

    This is the one failure that escapes a pipeline call: without a token
    no store call can succeed.
    """

    def __init__(self, message: str, tried_tenants: Optional[list[str]] = None):
        super().__init__(message)
        self.tried_tenants = tried_tenants or []


class MalformedResponseError(ValueError):
    """Raised when a store response does not have the documented shape."""

    def __init__(self, message: str, payload: Any = None):
        super().__init__(message)
        self.payload = payload


def is_duplicate_message(message: str) -> bool:
    return any(marker in message for marker in DUPLICATE_MARKERS)


def classify_error(message: str, status_code: Optional[int] = None) -> StoreStatus:
    """Map an upstream error message and HTTP status to a StoreStatus.

    Args:
        message: Error text returned by the service
        status_code: HTTP status, if the failure came with a response

    Returns:
        StoreStatus describing the failure (never OK)
    """
    if is_duplicate_message(message):
        return StoreStatus.CONFLICT
    lowered = message.lower()
    if any(marker.lower() in lowered for marker in NOT_FOUND_MARKERS):
        return StoreStatus.NOT_FOUND
    if status_code is None:
        return StoreStatus.TRANSIENT
    if status_code in TRANSIENT_STATUS_CODES or status_code >= 500:
        return StoreStatus.TRANSIENT
    return StoreStatus.FATAL


def classify_exception(exc: Exception) -> StoreStatus:
    """Classify an exception raised while calling a store."""
    # Imported here to avoid a cycle: client imports errors
    from .client import ApiClientError

    if isinstance(exc, ApiClientError):
        return classify_error(str(exc), exc.status_code)
    if isinstance(exc, httpx.RequestError):
        return StoreStatus.TRANSIENT
    if isinstance(exc, (MalformedResponseError, ValidationError, KeyError, TypeError)):
        return StoreStatus.FATAL
    if isinstance(exc, ValueError):
        # json decoding errors on a 2xx body
        return StoreStatus.FATAL
    return StoreStatus.TRANSIENT


# ============================================================================
# Remediation hints
# ============================================================================

def format_call(operation: str, **arguments: Any) -> str:
    """Render a follow-up tool call, e.g. ``tenant_bootstrap(target_tenant="ke")``."""
    rendered = []
    for key, value in arguments.items():
        if value is None:
            continue
        if isinstance(value, str):
            rendered.append(f'{key}="{value}"')
        elif isinstance(value, (list, tuple)):
            items = ", ".join(f'"{v}"' for v in value)
            rendered.append(f"{key}=[{items}]")
        else:
            rendered.append(f"{key}={value!r}")
    return f"{operation}({', '.join(rendered)})"


def state_root(scope: str) -> str:
    """Root of a scope id: ``"pg.citya"`` -> ``"pg"``."""
    return scope.split(".", 1)[0]


def bootstrap_hint(target: str, source: str) -> str:
    return (
        f"Some schema or reference-data items failed. Re-run "
        f"{format_call('tenant_bootstrap', target_tenant=target, source_tenant=source)}; "
        f"items that already exist are skipped."
    )


def record_hint(kind: Optional[FailureKind], scope: str, schema_code: str, source: str = "pg") -> str:
    """Hint for a failed single-record create."""
    root = state_root(scope)
    if kind == FailureKind.DEPENDENCY_MISSING:
        return (
            f'Schema "{schema_code}" is not registered for the "{root}" root. '
            f"FIX: call {format_call('tenant_bootstrap', target_tenant=root, source_tenant=source)} "
            f"to copy all schemas and reference data."
        )
    if kind == FailureKind.DUPLICATE_CONFLICT:
        return "Record already exists. Search for it instead of creating it again."
    if kind == FailureKind.TRANSIENT_SERVICE_FAILURE:
        return "The data service is unavailable or rejected the credentials. Retry the same call."
    return (
        f'Record create failed. Verify the "{root}" root has its schemas registered; '
        f"call {format_call('tenant_bootstrap', target_tenant=root)} if it is a new root."
    )


def grant_hint(scope: str, capabilities: list[str], username: Optional[str] = None) -> str:
    return (
        "Principal provisioning failed. Retry with "
        f"{format_call('user_role_add', tenant_id=scope, role_codes=capabilities, username=username)}."
    )


def workflow_hint(source: str, target: str) -> str:
    return (
        "Some workflow definitions were not copied. Retry with "
        f"{format_call('workflow_copy', source_tenant=source, target_tenant=target)}."
    )


def boundary_hint(scope: str) -> str:
    return (
        "Some boundaries were not created. Re-run "
        f"{format_call('boundary_create', tenant_id=scope)} with the same boundaries; "
        "existing nodes are skipped."
    )
