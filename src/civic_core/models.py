"""Enumerations shared across the provisioning pipeline."""
import enum


class StoreStatus(str, enum.Enum):
    """Typed outcome of a single store call.

    Store adapters classify the upstream response once and return one of
    these; reconcilers branch on the status, never on message text.
    """

    OK = "ok"
    CONFLICT = "conflict"        # Item already exists
    NOT_FOUND = "not_found"      # A prerequisite (schema, root, user) is absent
    TRANSIENT = "transient"      # Network, auth, rate-limit, 5xx
    FATAL = "fatal"              # Malformed response / contract break


class FailureKind(str, enum.Enum):
    """Failure taxonomy reported at item level."""

    DUPLICATE_CONFLICT = "duplicate_conflict"
    DEPENDENCY_MISSING = "dependency_missing"
    TRANSIENT_SERVICE_FAILURE = "transient_service_failure"
    STRUCTURAL_FAILURE = "structural_failure"


STATUS_TO_FAILURE: dict[StoreStatus, FailureKind] = {
    StoreStatus.CONFLICT: FailureKind.DUPLICATE_CONFLICT,
    StoreStatus.NOT_FOUND: FailureKind.DEPENDENCY_MISSING,
    StoreStatus.TRANSIENT: FailureKind.TRANSIENT_SERVICE_FAILURE,
    StoreStatus.FATAL: FailureKind.STRUCTURAL_FAILURE,
}


class ItemAction(str, enum.Enum):
    """What a reconciler did with one item."""

    CREATED = "created"
    REACTIVATED = "reactivated"
    SKIPPED = "skipped"
    FAILED = "failed"


class StageName(str, enum.Enum):
    """Bootstrap stages, in declaration order."""

    SCHEMAS = "schemas"
    REFERENCE_DATA = "reference_data"
    IDENTITY = "identity"
    WORKFLOWS = "workflows"


class UserType(str, enum.Enum):
    """Principal type as understood by the identity store."""

    EMPLOYEE = "EMPLOYEE"
    CITIZEN = "CITIZEN"
    SYSTEM = "SYSTEM"
