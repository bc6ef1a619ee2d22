"""Tenant provisioning pipeline: bootstrap a root and set up a city under it.

Bootstrap is an explicit stage graph. Stages run one at a time in
dependency order; a failing stage never stops the ones after it.
"""
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from .boundary_builder import (
    HierarchyShapeError,
    build_hierarchy,
    build_nodes,
    build_ordered_levels,
    city_boundary_nodes,
    city_code,
)
from .catalog import TENANT_SCHEMA
from .context import ProvisioningContext
from .data_reconciler import ensure_record, list_all_records, reconcile_reference_data
from .errors import AuthenticationError, bootstrap_hint, format_call, state_root
from .identity import provision_dual_scoped, provision_operator
from .models import FailureKind, ItemAction, StageName
from .schema_reconciler import reconcile_schemas
from .schemas import BootstrapResult, BoundaryResult, CitySetupResult, StageResult
from .workflow_cloner import clone_workflows

logger = logging.getLogger("civic-core.pipeline")

StageRunner = Callable[[ProvisioningContext, str, str], Awaitable[StageResult]]


# ============================================================================
# Stage graph
# ============================================================================

@dataclass
class Stage:
    """One node of the bootstrap graph.

    Attributes:
        name: Stage name, also the key in BootstrapResult.stages
        run: Coroutine taking (ctx, target, source)
        depends_on: Stages whose side effects this stage needs
        gates_success: Whether failures here make the whole run unsuccessful
    """

    name: str
    run: StageRunner
    depends_on: tuple[str, ...] = field(default_factory=tuple)
    gates_success: bool = False


class StageGraphError(ValueError):
    """Raised for unknown dependencies or dependency cycles."""


def order_stages(stages: list[Stage]) -> list[Stage]:
    """Topologically sort stages; ties keep declaration order.

    Raises:
        StageGraphError: If a dependency is unknown or the graph has a cycle
    """
    by_name = {s.name: s for s in stages}
    for stage in stages:
        missing = [d for d in stage.depends_on if d not in by_name]
        if missing:
            raise StageGraphError(f"Stage {stage.name} depends on unknown stage(s): {', '.join(missing)}")

    remaining = {s.name: len(set(s.depends_on)) for s in stages}
    ordered: list[Stage] = []
    while remaining:
        ready = [s for s in stages if remaining.get(s.name) == 0]
        if not ready:
            raise StageGraphError(f"Dependency cycle among: {', '.join(remaining)}")
        current = ready[0]
        ordered.append(current)
        del remaining[current.name]
        for stage in stages:
            if stage.name in remaining and current.name in stage.depends_on:
                remaining[stage.name] -= 1
    return ordered


async def _run_schemas(ctx: ProvisioningContext, target: str, source: str) -> StageResult:
    return await reconcile_schemas(ctx, target, source)


async def _run_reference_data(ctx: ProvisioningContext, target: str, source: str) -> StageResult:
    return await reconcile_reference_data(ctx, target, source)


async def _run_identity(ctx: ProvisioningContext, target: str, source: str) -> StageResult:
    return await provision_operator(ctx, target)


async def _run_workflows(ctx: ProvisioningContext, target: str, source: str) -> StageResult:
    return await clone_workflows(ctx, source, target)


BOOTSTRAP_STAGES: list[Stage] = [
    Stage(StageName.SCHEMAS.value, _run_schemas, gates_success=True),
    Stage(StageName.REFERENCE_DATA.value, _run_reference_data, depends_on=(StageName.SCHEMAS.value,), gates_success=True),
    Stage(StageName.IDENTITY.value, _run_identity, depends_on=(StageName.REFERENCE_DATA.value,)),
    Stage(StageName.WORKFLOWS.value, _run_workflows),
]


async def run_stages(
    ctx: ProvisioningContext,
    stages: list[Stage],
    target: str,
    source: str,
) -> dict[str, StageResult]:
    """Run every stage in graph order and collect their results."""
    results: dict[str, StageResult] = {}
    crashed: set[str] = set()

    for stage in order_stages(stages):
        upstream = [d for d in stage.depends_on if d in crashed]
        try:
            result = await stage.run(ctx, target, source)
        except AuthenticationError:
            raise
        except Exception as e:
            logger.exception(f"Stage {stage.name} raised")
            crashed.add(stage.name)
            result = StageResult(name=stage.name)
            result.record(
                f"<{stage.name}>", ItemAction.FAILED,
                kind=FailureKind.STRUCTURAL_FAILURE, message=f"{type(e).__name__}: {e}",
            )
        if upstream:
            note = f"ran after upstream stage(s) {', '.join(upstream)} raised"
            result.note = f"{result.note}; {note}" if result.note else note
        results[stage.name] = result
    return results


# ============================================================================
# Bootstrap
# ============================================================================

async def bootstrap(
    ctx: ProvisioningContext,
    target: str,
    source: Optional[str] = None,
    stages: Optional[list[Stage]] = None,
) -> BootstrapResult:
    """Bootstrap root ``target`` by cloning from ``source``.

    Args:
        ctx: Provisioning session
        target: New root scope
        source: Known-good root (default: ``settings.state_tenant``)
        stages: Stage graph to run (default: ``BOOTSTRAP_STAGES``)

    Returns:
        BootstrapResult; success reflects only the gating stages
    """
    source = source or ctx.settings.state_tenant
    graph = stages if stages is not None else BOOTSTRAP_STAGES
    logger.info(f"Bootstrapping {target} from {source}")

    results = await run_stages(ctx, graph, target, source)
    gating = [s.name for s in graph if s.gates_success]
    success = not any(results[name].failed for name in gating)

    result = BootstrapResult(success=success, source=source, target=target, stages=results)
    if not success:
        result.hint = bootstrap_hint(target, source)
    result.next_steps = [
        f"Create a city: {format_call('city_setup', tenant_id=f'{target}.yourcity', city_name='Your City')}",
        "Platform services read their root scope from deployment config; a new root may need those services restarted.",
    ]
    logger.info(f"Bootstrap {target}: success={success} {result.summary()}")
    return result


# ============================================================================
# City setup
# ============================================================================

async def _root_registered(ctx: ProvisioningContext, root: str) -> Optional[str]:
    """Return an error message if ``root`` is not a known root scope."""
    own = await list_all_records(ctx, root, TENANT_SCHEMA, ids=[root])
    if own.ok and own.value:
        return None

    default_root = ctx.settings.state_tenant
    if root == default_root:
        return None

    listed = await list_all_records(ctx, default_root, TENANT_SCHEMA, ids=[root])
    if listed.ok and listed.value:
        return None
    if not own.ok:
        return f'Root tenant "{root}" not accessible: {own.message}'
    return f'Root tenant "{root}" not found'


async def _workflow_source(ctx: ProvisioningContext, root: str) -> str:
    """The root itself if it already has the PGR service, else the default root."""
    default_root = ctx.settings.state_tenant
    if root == default_root:
        return root
    found = await ctx.workflows.list_workflows(root, ["PGR"])
    return root if found.ok and found.value else default_root


async def _city_boundaries(
    ctx: ProvisioningContext,
    root: str,
    city: str,
    locality_codes: Optional[list[str]],
) -> BoundaryResult:
    hierarchy = ctx.settings.hierarchy_type
    levels = list(ctx.catalog.boundary_levels)
    reused = False

    listed = await ctx.boundaries.list_hierarchy(root, hierarchy)
    if listed.ok and listed.value:
        try:
            levels = build_ordered_levels(listed.value)
            reused = True
        except HierarchyShapeError as e:
            logger.warning(f"Ignoring malformed {hierarchy} hierarchy on {root}: {e}")

    await build_hierarchy(ctx, root, levels, name=hierarchy)
    result = await build_hierarchy(ctx, city, levels, name=hierarchy)
    result.hierarchy_reused = result.hierarchy_reused or reused
    if not result.success:
        return result
    if len(result.levels) < 2:
        result.success = False
        result.error = f"Hierarchy on {city} needs at least two levels, has {len(result.levels)}"
        return result

    nodes = city_boundary_nodes(city, result.levels, locality_codes)
    return await build_nodes(ctx, city, nodes, result.levels, hierarchy=hierarchy, result=result)


async def city_setup(
    ctx: ProvisioningContext,
    tenant_id: str,
    city_name: str,
    source: Optional[str] = None,
    create_boundaries: bool = True,
    locality_codes: Optional[list[str]] = None,
) -> CitySetupResult:
    """Set up child scope ``tenant_id`` under an already bootstrapped root.

    Steps: registry record at the root, dual-scoped operator grants,
    workflows on the root, then a default boundary tree. Only a missing root
    or an unrecoverable registry record fails the call; later steps report
    their own failures.
    """
    if "." not in tenant_id:
        return CitySetupResult(
            success=False,
            city=tenant_id,
            error=f'tenant_id "{tenant_id}" must be a city-level id containing a dot (e.g. "pg.newcity")',
            hint=f"Use {format_call('tenant_bootstrap', target_tenant=tenant_id)} for root scopes.",
        )

    root = state_root(tenant_id)
    result = CitySetupResult(success=True, city=tenant_id, root=root)

    missing = await _root_registered(ctx, root)
    if missing:
        result.success = False
        result.error = missing
        result.hint = f"Run {format_call('tenant_bootstrap', target_tenant=root)} first."
        return result

    code = city_code(tenant_id)
    record = await ensure_record(ctx, root, TENANT_SCHEMA, f"Tenant.{tenant_id}", {
        "code": tenant_id,
        "name": city_name,
        "tenantId": tenant_id,
        "parent": root,
        "city": {"code": code, "name": city_name, "districtName": root},
    })
    if record.action == ItemAction.FAILED.value:
        result.success = False
        result.error = f"Failed to create city tenant record: {record.message}"
        result.hint = (
            f'Ensure root "{root}" has the {TENANT_SCHEMA} schema; '
            f"run {format_call('tenant_bootstrap', target_tenant=root)} if needed."
        )
        return result
    result.steps["tenant_record"] = record.action

    identity = await provision_dual_scoped(ctx, tenant_id, root)
    result.steps["identity"] = identity.model_dump()

    workflow_source = source or await _workflow_source(ctx, root)
    workflows = await clone_workflows(ctx, workflow_source, root)
    result.steps["workflows"] = workflows.model_dump()

    if create_boundaries:
        boundaries = await _city_boundaries(ctx, root, tenant_id, locality_codes)
        result.steps["boundaries"] = boundaries.model_dump()

    result.next_steps = [
        f'Create employees with tenant_id="{tenant_id}"',
        f'Verify complaint types and employees for tenant_id="{tenant_id}"',
    ]
    logger.info(f"City setup {tenant_id}: record {record.action}")
    return result
