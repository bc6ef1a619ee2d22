"""Shape pipeline results into the JSON payloads returned to MCP clients."""
import json
from typing import Any

from civic_core.schemas import (
    BootstrapResult,
    BoundaryResult,
    CitySetupResult,
    CleanupResult,
    GrantResult,
    StageResult,
)


def to_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, indent=2, default=str)


def format_stage(stage: StageResult) -> dict[str, Any]:
    """Created/reactivated/skipped keys plus failure detail for one stage."""
    out: dict[str, Any] = {
        "created": stage.created,
        "reactivated": stage.reactivated,
        "skipped": stage.skipped,
        "failed": [
            {"key": i.key, "kind": i.kind, "message": i.message}
            for i in stage.items if i.action == "failed"
        ],
    }
    if stage.details:
        out["details"] = stage.details
    if stage.note:
        out["note"] = stage.note
    if stage.hint:
        out["hint"] = stage.hint
    return out


def format_bootstrap(result: BootstrapResult) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "success": result.success,
        "source": result.source,
        "target": result.target,
        "summary": result.summary(),
        "results": {name: format_stage(stage) for name, stage in result.stages.items()},
        "next_steps": result.next_steps,
    }
    if result.hint:
        payload["hint"] = result.hint
    return payload


def format_grants(result: GrantResult, scope: str) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "success": result.success,
        "username": result.username,
        "tenant_id": scope,
        "roles_added": [g.capability for g in result.added],
        "roles_already_held": [g.capability for g in result.already_held],
    }
    if result.error:
        payload["error"] = result.error
        payload["kind"] = result.kind
    if result.hint:
        payload["hint"] = result.hint
    return payload


def format_boundaries(result: BoundaryResult) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "success": result.success,
        "tenant_id": result.scope,
        "hierarchy_reused": result.hierarchy_reused,
        "levels": result.levels,
        "entities": format_stage(result.entities),
        "relationships": format_stage(result.relationships),
    }
    if result.error:
        payload["error"] = result.error
    return payload


def format_cleanup(result: CleanupResult) -> dict[str, Any]:
    return {
        "success": result.success,
        "tenant_id": result.scope,
        "summary": {
            "records_found": result.found,
            "records_deleted": result.deleted,
            "records_already_inactive": result.already_inactive,
            "records_failed": result.failed,
            "users_deactivated": result.users_deactivated,
            "users_failed": result.users_failed,
        },
        "schemas_affected": result.domains,
        "errors": result.errors,
        "note": "Records soft-deleted (isActive=false). Schema definitions are left in place.",
    }


def format_city_setup(result: CitySetupResult) -> dict[str, Any]:
    payload = result.model_dump(exclude_none=True)
    if not result.next_steps:
        payload.pop("next_steps", None)
    return payload
