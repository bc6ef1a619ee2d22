"""Store interfaces and their HTTP adapters.

The pipeline talks to five external domains (schemas, reference data,
workflows, identity, boundaries). Each is described by a Protocol; the
HTTP adapters translate platform payloads to domain models and return a
``StoreResult`` instead of raising for per-item failures.
"""
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol

import httpx
from pydantic import ValidationError

from .client import ApiClientError, DigitClient
from .errors import MalformedResponseError, classify_exception
from .schemas import (
    BoundaryLevel,
    BoundaryNode,
    DataRecord,
    Principal,
    SchemaDefinition,
    StoreResult,
    WorkflowDefinition,
)

logger = logging.getLogger("civic-core.stores")

STORE_ERRORS = (
    ApiClientError,
    httpx.RequestError,
    MalformedResponseError,
    ValidationError,
    KeyError,
    TypeError,
    ValueError,
)


# ============================================================================
# Interfaces
# ============================================================================

class SchemaStore(Protocol):
    async def create_schema(self, scope: str, code: str, description: str, shape: dict) -> StoreResult: ...

    async def list_schemas(self, scope: str, codes: Optional[list[str]] = None) -> StoreResult: ...


class DataStore(Protocol):
    async def create_record(self, scope: str, schema_code: str, unique_id: str, payload: dict) -> StoreResult: ...

    async def update_record(self, record: DataRecord, is_active: bool) -> StoreResult: ...

    async def list_records(
        self,
        scope: str,
        schema_code: str,
        ids: Optional[list[str]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> StoreResult: ...


class WorkflowStore(Protocol):
    async def create_workflow(self, scope: str, definition: WorkflowDefinition) -> StoreResult: ...

    async def list_workflows(self, scope: str, service_codes: list[str]) -> StoreResult: ...


class IdentityStore(Protocol):
    async def find_principal(self, scope: str, username: str) -> StoreResult: ...

    async def list_principals(self, scope: str, limit: int = 100, offset: int = 0) -> StoreResult: ...

    async def create_principal(self, principal: Principal, password: str) -> StoreResult: ...

    async def update_principal(self, principal: Principal) -> StoreResult: ...


class BoundaryStore(Protocol):
    async def create_hierarchy(self, scope: str, name: str, levels: list[str]) -> StoreResult: ...

    async def list_hierarchy(self, scope: str, name: str) -> StoreResult: ...

    async def create_node(self, scope: str, node: BoundaryNode) -> StoreResult: ...

    async def create_relationship(self, scope: str, node: BoundaryNode, hierarchy: str) -> StoreResult: ...


# ============================================================================
# HTTP adapters
# ============================================================================

def _first(data: dict[str, Any], *keys: str) -> Any:
    """Return the first present key; lists are unwrapped to their first item."""
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, list):
            return value[0] if value else None
        return value
    return None


class HttpStore:
    """Shared plumbing: run a call and fold failures into a StoreResult."""

    def __init__(self, client: DigitClient):
        self.client = client

    async def _guard(self, operation: str, call: Callable[[], Awaitable[Any]]) -> StoreResult:
        try:
            return StoreResult.success(await call())
        except STORE_ERRORS as e:
            status = classify_exception(e)
            message = str(e) or type(e).__name__
            logger.warning(f"{operation} failed ({status.value}): {message}")
            return StoreResult(status=status, message=message)


class HttpSchemaStore(HttpStore):

    async def create_schema(self, scope: str, code: str, description: str, shape: dict) -> StoreResult:
        async def call():
            data = await self.client.post("MDMS_SCHEMA_CREATE", {
                "SchemaDefinition": {
                    "tenantId": scope,
                    "code": code,
                    "description": description,
                    "definition": shape,
                    "isActive": True,
                },
            })
            created = _first(data, "SchemaDefinition", "SchemaDefinitions")
            return SchemaDefinition.model_validate(created) if created else None

        return await self._guard(f"create_schema {scope}/{code}", call)

    async def list_schemas(self, scope: str, codes: Optional[list[str]] = None) -> StoreResult:
        async def call():
            criteria: dict[str, Any] = {"tenantId": scope, "limit": 500, "offset": 0}
            if codes:
                criteria["codes"] = codes
            data = await self.client.post("MDMS_SCHEMA_SEARCH", {"SchemaDefCriteria": criteria})
            return [SchemaDefinition.model_validate(s) for s in data.get("SchemaDefinitions") or []]

        return await self._guard(f"list_schemas {scope}", call)


class HttpDataStore(HttpStore):

    async def create_record(self, scope: str, schema_code: str, unique_id: str, payload: dict) -> StoreResult:
        async def call():
            data = await self.client.post("MDMS_CREATE", {
                "Mdms": {
                    "tenantId": scope,
                    "schemaCode": schema_code,
                    "uniqueIdentifier": unique_id,
                    "data": payload,
                    "isActive": True,
                },
            }, suffix=f"/{schema_code}")
            created = _first(data, "mdms", "Mdms")
            return DataRecord.model_validate(created) if created else None

        return await self._guard(f"create_record {scope}/{schema_code}/{unique_id}", call)

    async def update_record(self, record: DataRecord, is_active: bool) -> StoreResult:
        async def call():
            body = record.model_dump(by_alias=True, exclude_none=True)
            body["isActive"] = is_active
            data = await self.client.post("MDMS_UPDATE", {"Mdms": body}, suffix=f"/{record.schema_code}")
            updated = _first(data, "mdms", "Mdms")
            if updated is None:
                return record.model_copy(update={"is_active": is_active})
            return DataRecord.model_validate(updated)

        return await self._guard(f"update_record {record.scope}/{record.key}", call)

    async def list_records(
        self,
        scope: str,
        schema_code: str,
        ids: Optional[list[str]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> StoreResult:
        async def call():
            criteria: dict[str, Any] = {
                "tenantId": scope,
                "schemaCode": schema_code,
                "limit": limit,
                "offset": offset,
            }
            if ids:
                criteria["uniqueIdentifiers"] = ids
            data = await self.client.post("MDMS_SEARCH", {"MdmsCriteria": criteria})
            return [DataRecord.model_validate(r) for r in data.get("mdms") or []]

        return await self._guard(f"list_records {scope}/{schema_code or '*'}@{offset}", call)


class HttpWorkflowStore(HttpStore):

    async def create_workflow(self, scope: str, definition: WorkflowDefinition) -> StoreResult:
        async def call():
            body = definition.model_dump(by_alias=True, exclude_none=True, exclude={"uuid"})
            body["tenantId"] = scope
            data = await self.client.post("WORKFLOW_BUSINESS_SERVICE_CREATE", {"BusinessServices": [body]})
            created = _first(data, "BusinessServices")
            if not created:
                raise MalformedResponseError(f"{definition.service_code}: API returned 200 but no data", data)
            return WorkflowDefinition.model_validate(created)

        return await self._guard(f"create_workflow {scope}/{definition.service_code}", call)

    async def list_workflows(self, scope: str, service_codes: list[str]) -> StoreResult:
        async def call():
            params = {"tenantId": scope, "businessServices": ",".join(service_codes)}
            data = await self.client.post("WORKFLOW_BUSINESS_SERVICE_SEARCH", params=params)
            return [WorkflowDefinition.model_validate(bs) for bs in data.get("BusinessServices") or []]

        return await self._guard(f"list_workflows {scope}", call)


class HttpIdentityStore(HttpStore):

    async def _search(self, scope: str, username: Optional[str], limit: int, offset: int = 0) -> list[Principal]:
        criteria: dict[str, Any] = {"tenantId": scope, "pageSize": limit, "offset": offset}
        if username:
            criteria["userName"] = username
        data = await self.client.post("USER_SEARCH", criteria)
        return [Principal.model_validate(u) for u in data.get("user") or []]

    async def find_principal(self, scope: str, username: str) -> StoreResult:
        async def call():
            found = await self._search(scope, username, 1)
            return found[0] if found else None

        return await self._guard(f"find_principal {scope}/{username}", call)

    async def list_principals(self, scope: str, limit: int = 100, offset: int = 0) -> StoreResult:
        async def call():
            return await self._search(scope, None, limit, offset)

        return await self._guard(f"list_principals {scope}", call)

    async def create_principal(self, principal: Principal, password: str) -> StoreResult:
        async def call():
            body = principal.model_dump(by_alias=True)
            body["password"] = password
            data = await self.client.post("USER_CREATE", {"user": body})
            created = _first(data, "user")
            return Principal.model_validate(created) if created else principal

        return await self._guard(f"create_principal {principal.scope}/{principal.username}", call)

    async def update_principal(self, principal: Principal) -> StoreResult:
        async def call():
            data = await self.client.post("USER_UPDATE", {"user": principal.model_dump(by_alias=True)})
            updated = _first(data, "user")
            return Principal.model_validate(updated) if updated else principal

        return await self._guard(f"update_principal {principal.scope}/{principal.username}", call)


class HttpBoundaryStore(HttpStore):

    async def create_hierarchy(self, scope: str, name: str, levels: list[str]) -> StoreResult:
        async def call():
            chain = [
                BoundaryLevel(
                    boundary_type=level,
                    parent_boundary_type=levels[i - 1] if i > 0 else None,
                ).model_dump(by_alias=True)
                for i, level in enumerate(levels)
            ]
            return await self.client.post("BOUNDARY_HIERARCHY_CREATE", {
                "BoundaryHierarchy": {
                    "tenantId": scope,
                    "hierarchyType": name,
                    "boundaryHierarchy": chain,
                },
            })

        return await self._guard(f"create_hierarchy {scope}/{name}", call)

    async def list_hierarchy(self, scope: str, name: str) -> StoreResult:
        """Value is the hierarchy's levels in listing order, or None if absent."""
        async def call():
            data = await self.client.post("BOUNDARY_HIERARCHY_SEARCH", {
                "BoundaryTypeHierarchySearchCriteria": {"tenantId": scope, "hierarchyType": name},
            })
            found = _first(data, "BoundaryHierarchy")
            if not found or not found.get("boundaryHierarchy"):
                return None
            return [BoundaryLevel.model_validate(level) for level in found["boundaryHierarchy"]]

        return await self._guard(f"list_hierarchy {scope}/{name}", call)

    async def create_node(self, scope: str, node: BoundaryNode) -> StoreResult:
        async def call():
            return await self.client.post("BOUNDARY_CREATE", {
                "Boundary": [{"tenantId": scope, "code": node.code}],
            })

        return await self._guard(f"create_node {scope}/{node.code}", call)

    async def create_relationship(self, scope: str, node: BoundaryNode, hierarchy: str) -> StoreResult:
        async def call():
            return await self.client.post("BOUNDARY_RELATIONSHIP_CREATE", {
                "BoundaryRelationship": {
                    "tenantId": scope,
                    "code": node.code,
                    "hierarchyType": hierarchy,
                    "boundaryType": node.type,
                    "parent": node.parent_code,
                },
            })

        return await self._guard(f"create_relationship {scope}/{node.code}", call)
