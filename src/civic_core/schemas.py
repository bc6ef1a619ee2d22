"""Pydantic schemas for store payloads and pipeline results.

Domain models use snake_case attribute names with camelCase aliases that
match the platform's wire format, so adapters can ``model_validate`` a raw
response and ``model_dump(by_alias=True)`` a request body.
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import FailureKind, ItemAction, STATUS_TO_FAILURE, StoreStatus


class WireModel(BaseModel):
    """Base for models that round-trip through the platform APIs."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# Schema and Reference Data

class SchemaDefinition(WireModel):
    """A registered data shape. Identity is (scope, code)."""

    scope: str = Field(..., alias="tenantId")
    code: str
    description: Optional[str] = None
    shape: dict[str, Any] = Field(default_factory=dict, alias="definition")
    is_active: bool = Field(True, alias="isActive")


class DataRecord(WireModel):
    """A master-data record. Identity is (scope, schema_code, unique_id).

    Records are never removed; deletion flips ``is_active``. The store's
    update call is whole-object, so unknown fields are kept for round-trip.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[str] = None
    scope: str = Field(..., alias="tenantId")
    schema_code: str = Field(..., alias="schemaCode")
    unique_id: str = Field(..., alias="uniqueIdentifier")
    payload: dict[str, Any] = Field(default_factory=dict, alias="data")
    is_active: bool = Field(True, alias="isActive")
    audit_meta: Optional[dict[str, Any]] = Field(None, alias="auditDetails")

    @property
    def key(self) -> str:
        return f"{self.schema_code}/{self.unique_id}"


# Workflow

class WorkflowAction(WireModel):
    name: str = Field(..., alias="action")
    next_state_ref: Optional[str] = Field(None, alias="nextState")
    allowed_roles: list[str] = Field(default_factory=list, alias="roles")
    active: Optional[bool] = True


class WorkflowState(WireModel):
    """One state of a business-service state machine.

    ``uuid`` is the identifier allocated by the source scope; it has no
    meaning anywhere else.
    """

    uuid: Optional[str] = None
    name: Optional[str] = Field(None, alias="state")
    status: Optional[str] = Field(None, alias="applicationStatus")
    doc_upload_required: Optional[bool] = Field(None, alias="docUploadRequired")
    is_start: Optional[bool] = Field(None, alias="isStartState")
    is_terminal: Optional[bool] = Field(None, alias="isTerminateState")
    is_state_updatable: Optional[bool] = Field(None, alias="isStateUpdatable")
    actions: list[WorkflowAction] = Field(default_factory=list)


class WorkflowDefinition(WireModel):
    uuid: Optional[str] = None
    scope: Optional[str] = Field(None, alias="tenantId")
    service_code: str = Field(..., alias="businessService")
    business: Optional[str] = None
    sla_millis: Optional[int] = Field(None, alias="businessServiceSla")
    states: list[WorkflowState] = Field(default_factory=list)


# Identity

class Grant(WireModel):
    """A capability bound to a scope."""

    capability: str = Field(..., alias="code")
    name: Optional[str] = None
    scope: str = Field(..., alias="tenantId")

    @property
    def key(self) -> tuple[str, str]:
        return (self.capability, self.scope)


class Principal(WireModel):
    """A platform user. Grants form a sparse (capability, scope) set.

    The identity store replaces the whole object on update, so every field
    the store returned is preserved (``extra="allow"``) and sent back.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[int] = None
    uuid: Optional[str] = None
    username: str = Field(..., alias="userName")
    display_name: Optional[str] = Field(None, alias="name")
    contact: Optional[str] = Field(None, alias="mobileNumber")
    email: Optional[str] = Field(None, alias="emailId")
    gender: Optional[str] = None
    type: Optional[str] = None
    active: bool = True
    scope: Optional[str] = Field(None, alias="tenantId")
    grants: list[Grant] = Field(default_factory=list, alias="roles")

    def grant_keys(self) -> set[tuple[str, str]]:
        return {g.key for g in self.grants}

    def grants_for(self, scope: str) -> list[Grant]:
        return [g for g in self.grants if g.scope == scope]


# Boundaries

class BoundaryLevel(WireModel):
    boundary_type: str = Field(..., alias="boundaryType")
    parent_boundary_type: Optional[str] = Field(None, alias="parentBoundaryType")
    active: bool = True


class BoundaryNode(WireModel):
    code: str
    scope: str = Field(..., alias="tenantId")
    type: str
    parent_code: Optional[str] = Field(None, alias="parent")


# Store call outcome

class StoreResult(BaseModel):
    """Typed result of a store call (ok | conflict | not_found | transient | fatal)."""

    status: StoreStatus
    value: Any = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == StoreStatus.OK

    @property
    def failure_kind(self) -> Optional[FailureKind]:
        return STATUS_TO_FAILURE.get(self.status)

    @classmethod
    def success(cls, value: Any = None) -> "StoreResult":
        return cls(status=StoreStatus.OK, value=value)


# Pipeline results

class ItemResult(BaseModel):
    """Outcome for the smallest unit of work (one schema, record, grant, ...)."""

    key: str
    action: ItemAction
    kind: Optional[FailureKind] = None
    message: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True)


class StageResult(BaseModel):
    """Per-stage created/skipped/failed accounting with item-level detail."""

    name: str
    items: list[ItemResult] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)
    note: Optional[str] = None
    hint: Optional[str] = None

    def record(
        self,
        key: str,
        action: ItemAction,
        kind: Optional[FailureKind] = None,
        message: Optional[str] = None,
    ) -> ItemResult:
        item = ItemResult(key=key, action=action, kind=kind, message=message)
        self.items.append(item)
        return item

    def fail(self, key: str, result: StoreResult) -> ItemResult:
        """Record a failed store call for ``key``."""
        return self.record(key, ItemAction.FAILED, kind=result.failure_kind, message=result.message)

    def _keys(self, action: ItemAction) -> list[str]:
        return [i.key for i in self.items if i.action == action.value]

    @property
    def created(self) -> list[str]:
        return self._keys(ItemAction.CREATED)

    @property
    def reactivated(self) -> list[str]:
        return self._keys(ItemAction.REACTIVATED)

    @property
    def skipped(self) -> list[str]:
        return self._keys(ItemAction.SKIPPED)

    @property
    def failed(self) -> list[str]:
        return self._keys(ItemAction.FAILED)

    @property
    def copied(self) -> int:
        """Items that now exist because of this run (created or reactivated)."""
        return len(self.created) + len(self.reactivated)

    def counts(self) -> dict[str, int]:
        return {
            "created": len(self.created),
            "reactivated": len(self.reactivated),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
        }


class BootstrapResult(BaseModel):
    success: bool
    source: str
    target: str
    stages: dict[str, StageResult] = Field(default_factory=dict)
    hint: Optional[str] = None
    next_steps: list[str] = Field(default_factory=list)

    def stage(self, name: str) -> StageResult:
        return self.stages[name]

    def summary(self) -> dict[str, int]:
        out: dict[str, int] = {}
        for name, stage in self.stages.items():
            out[f"{name}_copied"] = stage.copied
            out[f"{name}_skipped"] = len(stage.skipped)
            out[f"{name}_failed"] = len(stage.failed)
        return out


class GrantResult(BaseModel):
    """Outcome of adding grants to one principal."""

    success: bool
    username: str
    added: list[Grant] = Field(default_factory=list)
    already_held: list[Grant] = Field(default_factory=list)
    created_principal: bool = False
    reactivated_principal: bool = False
    error: Optional[str] = None
    kind: Optional[FailureKind] = None
    hint: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True)


class BoundaryResult(BaseModel):
    success: bool
    scope: str
    hierarchy_reused: bool = False
    levels: list[str] = Field(default_factory=list)
    entities: StageResult = Field(default_factory=lambda: StageResult(name="boundary_entities"))
    relationships: StageResult = Field(default_factory=lambda: StageResult(name="boundary_relationships"))
    error: Optional[str] = None


class CleanupResult(BaseModel):
    scope: str
    found: int = 0
    deleted: int = 0
    already_inactive: int = 0
    failed: int = 0
    domains: dict[str, int] = Field(default_factory=dict)
    users_deactivated: int = 0
    users_failed: int = 0
    errors: list[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed == 0 and self.users_failed == 0


class CitySetupResult(BaseModel):
    success: bool
    city: str
    root: Optional[str] = None
    steps: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    hint: Optional[str] = None
    next_steps: list[str] = Field(default_factory=list)
