"""Shared fixtures: in-memory stores that follow the platform contracts.

- Duplicate creates return a conflict.
- Records are never removed; ``update_record`` flips ``is_active``.
- Creating a record whose identity exists but is inactive reports success
  and changes nothing, as the real data service does.
- Principal updates replace the whole object.
- Workflow listing requires a filter.
- A boundary relationship needs its node entity and its parent's relationship.
"""
import itertools
from typing import Optional

import pytest

from civic_core.catalog import Capability, Catalog, TENANT_SCHEMA
from civic_core.config import Settings
from civic_core.context import ProvisioningContext
from civic_core.models import StoreStatus
from civic_core.schemas import (
    BoundaryLevel,
    BoundaryNode,
    DataRecord,
    Grant,
    Principal,
    SchemaDefinition,
    StoreResult,
    WorkflowAction,
    WorkflowDefinition,
    WorkflowState,
)

_ids = itertools.count(1)


def _conflict(message: str) -> StoreResult:
    return StoreResult(status=StoreStatus.CONFLICT, message=message)


def _not_found(message: str) -> StoreResult:
    return StoreResult(status=StoreStatus.NOT_FOUND, message=message)


def _transient(message: str = "Service unavailable") -> StoreResult:
    return StoreResult(status=StoreStatus.TRANSIENT, message=message)


class FakeSchemaStore:
    def __init__(self):
        self.schemas: dict[tuple[str, str], SchemaDefinition] = {}
        self.fail_create: set[str] = set()
        self.fail_list: set[str] = set()

    def add(self, scope: str, code: str) -> None:
        self.schemas[(scope, code)] = SchemaDefinition(
            scope=scope, code=code, description=f"{code} schema",
            shape={"type": "object", "x-unique": ["code"]},
        )

    def has(self, scope: str, code: str) -> bool:
        return (scope, code) in self.schemas

    async def create_schema(self, scope, code, description, shape):
        if code in self.fail_create:
            return _transient()
        if (scope, code) in self.schemas:
            return _conflict(f"DUPLICATE_SCHEMA: {code} already exists")
        self.schemas[(scope, code)] = SchemaDefinition(scope=scope, code=code, description=description, shape=shape)
        return StoreResult.success(self.schemas[(scope, code)])

    async def list_schemas(self, scope, codes=None):
        if scope in self.fail_list:
            return _transient()
        return StoreResult.success([
            s for (sc, code), s in self.schemas.items()
            if sc == scope and (not codes or code in codes)
        ])


class FakeDataStore:
    def __init__(self, schemas: Optional[FakeSchemaStore] = None):
        self.schemas = schemas
        self.records: list[DataRecord] = []
        self.fail_list: set[tuple[str, str]] = set()
        self.fail_update: set[str] = set()
        self.calls: list[tuple[str, str]] = []

    def find(self, scope: str, schema_code: str, unique_id: str) -> list[DataRecord]:
        return [
            r for r in self.records
            if (r.scope, r.schema_code, r.unique_id) == (scope, schema_code, unique_id)
        ]

    def add(self, scope: str, schema_code: str, unique_id: str, payload: Optional[dict] = None,
            is_active: bool = True) -> DataRecord:
        record = DataRecord(
            id=str(next(_ids)), scope=scope, schema_code=schema_code, unique_id=unique_id,
            payload=payload or {"code": unique_id}, is_active=is_active,
        )
        self.records.append(record)
        return record

    async def create_record(self, scope, schema_code, unique_id, payload):
        self.calls.append(("create", f"{scope}/{schema_code}/{unique_id}"))
        if self.schemas is not None and not self.schemas.has(scope, schema_code):
            return _not_found(f"Schema definition not found for {schema_code}")
        existing = self.find(scope, schema_code, unique_id)
        if any(r.is_active for r in existing):
            return _conflict("DUPLICATE_RECORD: record with unique identifier already exists")
        if existing:
            # Misleading success for an inactive identity
            return StoreResult.success(existing[0])
        return StoreResult.success(self.add(scope, schema_code, unique_id, payload))

    async def update_record(self, record, is_active):
        self.calls.append(("update", f"{record.scope}/{record.key}"))
        if record.unique_id in self.fail_update:
            return _transient()
        for i, held in enumerate(self.records):
            if held.id == record.id:
                self.records[i] = held.model_copy(update={"is_active": is_active})
                return StoreResult.success(self.records[i])
        return _not_found(f"Record {record.key} not found")

    async def list_records(self, scope, schema_code, ids=None, limit=100, offset=0):
        self.calls.append(("list", f"{scope}/{schema_code}@{offset}"))
        if (scope, schema_code) in self.fail_list:
            return _transient()
        matches = [
            r for r in self.records
            if r.scope == scope
            and (not schema_code or r.schema_code == schema_code)
            and (not ids or r.unique_id in ids)
        ]
        return StoreResult.success(matches[offset:offset + limit])


class FakeWorkflowStore:
    def __init__(self):
        self.definitions: dict[tuple[str, str], WorkflowDefinition] = {}
        self.fail_create: set[str] = set()
        self.created: list[tuple[str, WorkflowDefinition]] = []

    def add(self, scope: str, definition: WorkflowDefinition) -> None:
        self.definitions[(scope, definition.service_code)] = definition.model_copy(update={"scope": scope})

    async def create_workflow(self, scope, definition):
        code = definition.service_code
        if code in self.fail_create:
            return StoreResult(status=StoreStatus.FATAL, message=f"{code}: API returned 200 but no data")
        if (scope, code) in self.definitions:
            return _conflict(f"DUPLICATE: business service {code} already exists")
        self.created.append((scope, definition))
        # The store allocates fresh state ids
        states = [s.model_copy(update={"uuid": f"{scope}-{next(_ids)}"}) for s in definition.states]
        stored = definition.model_copy(update={"scope": scope, "uuid": str(next(_ids)), "states": states})
        self.definitions[(scope, code)] = stored
        return StoreResult.success(stored)

    async def list_workflows(self, scope, service_codes):
        if not service_codes:
            return StoreResult(status=StoreStatus.FATAL, message="businessServices filter is required")
        return StoreResult.success([
            d for (sc, code), d in self.definitions.items() if sc == scope and code in service_codes
        ])


class FakeIdentityStore:
    def __init__(self):
        self.principals: dict[tuple[str, str], Principal] = {}
        self.passwords: dict[tuple[str, str], str] = {}
        self.fail_update: set[str] = set()
        self.updates: list[Principal] = []

    def add(self, principal: Principal) -> None:
        self.principals[(principal.scope, principal.username)] = principal

    async def find_principal(self, scope, username):
        return StoreResult.success(self.principals.get((scope, username)))

    async def list_principals(self, scope, limit=100, offset=0):
        return StoreResult.success([p for (sc, _), p in self.principals.items() if sc == scope][offset:offset + limit])

    async def create_principal(self, principal, password):
        key = (principal.scope, principal.username)
        if key in self.principals:
            return _conflict(f"DuplicateUserNameException: {principal.username} already exists")
        self.principals[key] = principal
        self.passwords[key] = password
        return StoreResult.success(principal)

    async def update_principal(self, principal):
        key = (principal.scope, principal.username)
        if principal.username in self.fail_update:
            return _transient()
        if key not in self.principals:
            return _not_found(f"User {principal.username} not found")
        # Whole-object replace
        self.principals[key] = principal
        self.updates.append(principal)
        return StoreResult.success(principal)


class FakeBoundaryStore:
    def __init__(self):
        self.hierarchies: dict[tuple[str, str], list[BoundaryLevel]] = {}
        self.nodes: set[tuple[str, str]] = set()
        self.relationships: dict[tuple[str, str], Optional[str]] = {}
        self.fail_relationship: set[str] = set()
        self.calls: list[tuple[str, str]] = []

    async def create_hierarchy(self, scope, name, levels):
        if (scope, name) in self.hierarchies:
            return _conflict("DUPLICATE hierarchy definition")
        self.hierarchies[(scope, name)] = [
            BoundaryLevel(boundary_type=level, parent_boundary_type=levels[i - 1] if i else None)
            for i, level in enumerate(levels)
        ]
        return StoreResult.success()

    async def list_hierarchy(self, scope, name):
        return StoreResult.success(self.hierarchies.get((scope, name)))

    async def create_node(self, scope, node):
        self.calls.append(("entity", node.code))
        if (scope, node.code) in self.nodes:
            return _conflict(f"DUPLICATE boundary code {node.code}")
        self.nodes.add((scope, node.code))
        return StoreResult.success()

    async def create_relationship(self, scope, node, hierarchy):
        self.calls.append(("relationship", node.code))
        if node.code in self.fail_relationship:
            return _transient()
        if (scope, node.code) not in self.nodes:
            return _not_found(f"Boundary entity {node.code} does not exist")
        if node.parent_code and (scope, node.parent_code) not in self.relationships:
            return StoreResult(status=StoreStatus.FATAL, message=f"Parent {node.parent_code} has no relationship")
        if (scope, node.code) in self.relationships:
            return _conflict("DUPLICATE relationship")
        self.relationships[(scope, node.code)] = node.parent_code
        return StoreResult.success()


# ============================================================================
# Seed helpers
# ============================================================================

TEST_DOMAINS = ["ACCESSCONTROL-ROLES.roles", "common-masters.Department"]


def make_workflow(code: str = "PGR", uuid_refs: bool = True) -> WorkflowDefinition:
    """A three-state workflow; action targets are source uuids or names."""
    ids = {"APPLY": f"src-{code}-1", "ASSIGNED": f"src-{code}-2", "RESOLVED": f"src-{code}-3"}

    def ref(name: str) -> str:
        return ids[name] if uuid_refs else name

    return WorkflowDefinition(
        uuid=f"src-{code}",
        service_code=code,
        business="pgr-services",
        sla_millis=432000000,
        states=[
            WorkflowState(uuid=ids["APPLY"], name="APPLY", status="PENDINGFORASSIGNMENT", is_start=True,
                          actions=[WorkflowAction(name="ASSIGN", next_state_ref=ref("ASSIGNED"), allowed_roles=["GRO"])]),
            WorkflowState(uuid=ids["ASSIGNED"], name="ASSIGNED", status="PENDINGATLME",
                          actions=[
                              WorkflowAction(name="RESOLVE", next_state_ref=ref("RESOLVED"), allowed_roles=["PGR_LME"]),
                              WorkflowAction(name="REASSIGN", next_state_ref=ref("APPLY"), allowed_roles=["PGR_LME"]),
                          ]),
            WorkflowState(uuid=ids["RESOLVED"], name="RESOLVED", status="RESOLVED", is_terminal=True),
        ],
    )


class Stores:
    def __init__(self):
        self.schemas = FakeSchemaStore()
        self.data = FakeDataStore(self.schemas)
        self.workflows = FakeWorkflowStore()
        self.identity = FakeIdentityStore()
        self.boundaries = FakeBoundaryStore()

    def seed_source(self, source: str, extra_schemas: int = 0, records_per_domain: int = 2) -> None:
        """A known-good root: schemas, records, its own registry record and workflows."""
        for code in [TENANT_SCHEMA, *TEST_DOMAINS]:
            self.schemas.add(source, code)
        for i in range(extra_schemas):
            self.schemas.add(source, f"demo.Schema{i}")
        self.data.add(source, TENANT_SCHEMA, source)
        for domain in TEST_DOMAINS:
            for i in range(records_per_domain):
                self.data.add(source, domain, f"{domain.split('.')[-1].upper()}_{i}")
        self.workflows.add(source, make_workflow("PGR"))
        self.workflows.add(source, make_workflow("PT.CREATE"))


@pytest.fixture
def settings():
    return Settings(_env_file=None, username="ADMIN", password="secret", page_size=500)


@pytest.fixture
def catalog():
    return Catalog(
        reference_data=TEST_DOMAINS,
        workflow_services=["PGR", "PT.CREATE", "NewTL"],
        standard_capabilities=[
            Capability(code="EMPLOYEE", name="Employee"),
            Capability(code="SUPERUSER", name="Super User"),
            Capability(code="GRO", name="Grievance Routing Officer"),
        ],
        boundary_levels=["Country", "State", "District", "City", "Ward", "Locality"],
    )


@pytest.fixture
def operator():
    return Principal(
        username="ADMIN",
        display_name="Platform Admin",
        contact="9000000001",
        scope="pg",
        grants=[Grant(capability="SUPERUSER", name="Super User", scope="pg")],
    )


@pytest.fixture
def stores(operator):
    stores = Stores()
    stores.identity.add(operator)
    return stores


@pytest.fixture
def ctx(stores, operator, settings, catalog):
    return ProvisioningContext(
        schemas=stores.schemas,
        data=stores.data,
        workflows=stores.workflows,
        identity=stores.identity,
        boundaries=stores.boundaries,
        operator=operator,
        settings=settings,
        catalog=catalog,
    )
