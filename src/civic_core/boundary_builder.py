"""Build geographic/administrative boundary trees for a scope.

Two phases: the hierarchy (an ordered chain of level names) and the nodes.
Node entities are created first as one batch; relationships are created
after, parents first, so a parent's relationship always exists before
its children's.
"""
import logging
from typing import Optional

from .context import ProvisioningContext
from .errors import boundary_hint
from .models import FailureKind, ItemAction, StoreStatus
from .schemas import BoundaryLevel, BoundaryNode, BoundaryResult

logger = logging.getLogger("civic-core.boundary_builder")


class HierarchyShapeError(ValueError):
    """Raised when a listed hierarchy is not a single chain from one root."""


def build_ordered_levels(levels: list[BoundaryLevel]) -> list[str]:
    """Reconstruct root-first level order by walking the parent chain.

    Listing order from the store is not trusted.

    Raises:
        HierarchyShapeError: If there is not exactly one rootless level, or
            the chain branches or does not reach every level
    """
    roots = [lvl for lvl in levels if not lvl.parent_boundary_type]
    if len(roots) != 1:
        raise HierarchyShapeError(f"Expected exactly one root level, found {len(roots)}")

    children: dict[str, list[str]] = {}
    for lvl in levels:
        if lvl.parent_boundary_type:
            children.setdefault(lvl.parent_boundary_type, []).append(lvl.boundary_type)

    ordered = [roots[0].boundary_type]
    while True:
        below = children.get(ordered[-1], [])
        if not below:
            break
        if len(below) > 1:
            raise HierarchyShapeError(f"Level {ordered[-1]} has more than one child: {', '.join(below)}")
        if below[0] in ordered:
            raise HierarchyShapeError(f"Cycle at level {below[0]}")
        ordered.append(below[0])

    if len(ordered) != len(levels):
        missing = sorted({lvl.boundary_type for lvl in levels} - set(ordered))
        raise HierarchyShapeError(f"Levels not reachable from root: {', '.join(missing)}")
    return ordered


def relationship_order(nodes: list[BoundaryNode], depth: dict[str, int]) -> tuple[list[BoundaryNode], list[BoundaryNode]]:
    """Order nodes so every in-batch parent comes before its children.

    Ties are broken by level depth, then input order. Nodes whose parent
    chain loops back on itself cannot be ordered.

    Returns:
        Tuple of (ordered nodes, nodes caught in a parent cycle)
    """
    in_batch = {n.code for n in nodes}
    pending = sorted(nodes, key=lambda n: depth[n.type])
    ordered: list[BoundaryNode] = []
    placed: set[str] = set()
    while pending:
        ready = next(
            (n for n in pending if n.parent_code not in in_batch or n.parent_code in placed),
            None,
        )
        if ready is None:
            break
        ordered.append(ready)
        placed.add(ready.code)
        pending.remove(ready)
    return ordered, pending


async def build_hierarchy(
    ctx: ProvisioningContext,
    scope: str,
    levels: list[str],
    name: Optional[str] = None,
    result: Optional[BoundaryResult] = None,
) -> BoundaryResult:
    """Ensure ``scope`` has hierarchy ``name``; an existing one is reused.

    Args:
        ctx: Provisioning session
        scope: Scope owning the hierarchy
        levels: Root-first level names used when the hierarchy is absent
        name: Hierarchy name (default: ``settings.hierarchy_type``)
        result: Result to fill in (a new one is created if omitted)

    Returns:
        BoundaryResult with ``levels`` set to the effective order
    """
    name = name or ctx.settings.hierarchy_type
    result = result if result is not None else BoundaryResult(success=True, scope=scope)

    listed = await ctx.boundaries.list_hierarchy(scope, name)
    if listed.ok and listed.value:
        try:
            result.levels = build_ordered_levels(listed.value)
            result.hierarchy_reused = True
            logger.info(f"Reusing {name} hierarchy on {scope}: {' > '.join(result.levels)}")
            return result
        except HierarchyShapeError as e:
            result.success = False
            result.error = f"Existing {name} hierarchy on {scope} is malformed: {e}"
            logger.error(result.error)
            return result

    created = await ctx.boundaries.create_hierarchy(scope, name, levels)
    if created.ok or created.status == StoreStatus.CONFLICT:
        result.levels = list(levels)
        return result

    result.success = False
    result.error = f"Hierarchy create on {scope} failed: {created.message}"
    logger.error(result.error)
    return result


async def build_nodes(
    ctx: ProvisioningContext,
    scope: str,
    nodes: list[BoundaryNode],
    levels: list[str],
    hierarchy: Optional[str] = None,
    result: Optional[BoundaryResult] = None,
) -> BoundaryResult:
    """Create node entities, then their relationships, parents first.

    A relationship is not attempted when its parent's relationship failed in
    this batch.
    """
    hierarchy = hierarchy or ctx.settings.hierarchy_type
    result = result if result is not None else BoundaryResult(success=True, scope=scope, levels=list(levels))
    depth = {level: i for i, level in enumerate(levels)}

    unknown = [n.code for n in nodes if n.type not in depth]
    if unknown:
        result.success = False
        result.error = f"Nodes with a type outside the hierarchy: {', '.join(unknown)}"
        return result

    for node in nodes:
        outcome = await ctx.boundaries.create_node(scope, node)
        if outcome.ok:
            result.entities.record(node.code, ItemAction.CREATED)
        elif outcome.status == StoreStatus.CONFLICT:
            result.entities.record(node.code, ItemAction.SKIPPED)
        else:
            result.entities.fail(node.code, outcome)

    blocked = set(result.entities.failed)
    ordered, cyclic = relationship_order(nodes, depth)
    for node in cyclic:
        blocked.add(node.code)
        result.relationships.record(
            node.code, ItemAction.FAILED, kind=FailureKind.DEPENDENCY_MISSING,
            message=f"Parent chain of {node.code} loops back on itself",
        )

    for node in ordered:
        if node.code in blocked:
            continue
        if node.parent_code in blocked:
            blocked.add(node.code)
            result.relationships.record(
                node.code, ItemAction.FAILED, kind=FailureKind.DEPENDENCY_MISSING,
                message=f"Parent {node.parent_code} is not attached",
            )
            continue
        outcome = await ctx.boundaries.create_relationship(scope, node, hierarchy)
        if outcome.ok:
            result.relationships.record(node.code, ItemAction.CREATED)
        elif outcome.status == StoreStatus.CONFLICT:
            result.relationships.record(node.code, ItemAction.SKIPPED)
        else:
            logger.warning(f"Relationship for {node.code} on {scope} failed: {outcome.message}")
            blocked.add(node.code)
            result.relationships.fail(node.code, outcome)

    if result.entities.failed or result.relationships.failed:
        result.success = False
        result.entities.hint = result.relationships.hint = boundary_hint(scope)
    logger.info(
        f"Boundaries on {scope}: {len(result.entities.created)} entities created, "
        f"{len(result.relationships.created)} relationships created, "
        f"{len(result.entities.failed) + len(result.relationships.failed)} failed"
    )
    return result


async def build_boundaries(
    ctx: ProvisioningContext,
    scope: str,
    nodes: list[BoundaryNode],
    levels: Optional[list[str]] = None,
    hierarchy: Optional[str] = None,
) -> BoundaryResult:
    """Ensure the hierarchy, then create ``nodes`` under it."""
    result = await build_hierarchy(
        ctx, scope, levels or ctx.catalog.boundary_levels, name=hierarchy,
    )
    if not result.success:
        return result
    return await build_nodes(ctx, scope, nodes, result.levels, hierarchy=hierarchy, result=result)


def city_code(scope: str) -> str:
    """``"pg.citya"`` -> ``"CITYA"``; nested dots become underscores."""
    return scope.split(".", 1)[-1].upper().replace(".", "_")


def city_boundary_nodes(
    scope: str,
    levels: list[str],
    locality_codes: Optional[list[str]] = None,
) -> list[BoundaryNode]:
    """Default tree for a city: one node per upper level, then a ward and a
    locality per locality code.

    ``levels`` must have at least two entries; the last two are used for the
    ward and locality.
    """
    code = city_code(scope)
    localities = locality_codes or [f"LOC_{code}_1"]
    *upper, ward_level, locality_level = levels

    nodes: list[BoundaryNode] = []
    parent: Optional[str] = None
    for level in upper:
        node_code = f"{level.upper()}_{code}"
        nodes.append(BoundaryNode(code=node_code, scope=scope, type=level, parent_code=parent))
        parent = node_code

    for i, locality in enumerate(localities, start=1):
        ward = f"{ward_level.upper()}_{code}_{i}"
        nodes.append(BoundaryNode(code=ward, scope=scope, type=ward_level, parent_code=parent))
        nodes.append(BoundaryNode(code=locality, scope=scope, type=locality_level, parent_code=ward))
    return nodes
