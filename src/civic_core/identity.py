"""Identity and role provisioning.

A principal's grants are a sparse set of (capability, scope) pairs spread
across many scopes. The identity store replaces the whole principal on
update, so every change here is computed client-side as a set union over
the grants the store returned; a grant held under another scope is never
dropped.
"""
import logging
from typing import Optional

from .context import ProvisioningContext
from .errors import grant_hint
from .models import FailureKind, ItemAction, StageName, UserType
from .schemas import Grant, GrantResult, Principal, StageResult

logger = logging.getLogger("civic-core.identity")


def build_grants(ctx: ProvisioningContext, scope: str, capabilities: Optional[list[str]] = None) -> list[Grant]:
    """Grants for ``capabilities`` (default: the standard catalog) on ``scope``."""
    codes = capabilities if capabilities is not None else ctx.catalog.capability_codes
    return [Grant(capability=code, name=ctx.catalog.capability_name(code), scope=scope) for code in codes]


def merge_grants(existing: list[Grant], requested: list[Grant]) -> tuple[list[Grant], list[Grant], list[Grant]]:
    """Union ``requested`` into ``existing`` keyed by (capability, scope).

    Returns:
        Tuple of (merged grant list, grants added, requested grants already held)
    """
    held = {g.key for g in existing}
    added: list[Grant] = []
    already: list[Grant] = []
    for grant in requested:
        if grant.key in held:
            already.append(grant)
        else:
            added.append(grant)
            held.add(grant.key)
    return [*existing, *added], added, already


async def _operator_profile(ctx: ProvisioningContext) -> Optional[Principal]:
    """Full record of the operating principal in its home scope, if reachable."""
    home = ctx.operator_home_scope
    if home:
        found = await ctx.identity.find_principal(home, ctx.operator_username)
        if found.ok and found.value is not None:
            return found.value
    return ctx.operator


async def add_grants(
    ctx: ProvisioningContext,
    scope: str,
    capabilities: list[str],
    username: Optional[str] = None,
    principal_scope: Optional[str] = None,
) -> GrantResult:
    """Append the missing ``capabilities`` on ``scope`` to an existing principal.

    Args:
        ctx: Provisioning session
        scope: Scope the grants are bound to
        capabilities: Capability codes requested
        username: Principal to update (default: the operator)
        principal_scope: Scope the principal is registered in (default: ``scope``)

    Returns:
        GrantResult listing added and already-held grants
    """
    username = username or ctx.operator_username
    lookup_scope = principal_scope or scope
    requested = build_grants(ctx, scope, capabilities)

    found = await ctx.identity.find_principal(lookup_scope, username)
    if not found.ok or found.value is None:
        error = found.message if not found.ok else f'User "{username}" not found on "{lookup_scope}"'
        logger.warning(f"add_grants: {error}")
        return GrantResult(
            success=False,
            username=username,
            error=error,
            kind=found.failure_kind if not found.ok else FailureKind.DEPENDENCY_MISSING,
            hint=grant_hint(scope, capabilities, username),
        )

    principal: Principal = found.value
    merged, added, already = merge_grants(principal.grants, requested)
    if not added:
        return GrantResult(success=True, username=username, already_held=already)

    updated = await ctx.identity.update_principal(principal.model_copy(update={"grants": merged}))
    if not updated.ok:
        return GrantResult(
            success=False,
            username=username,
            already_held=already,
            error=updated.message,
            kind=updated.failure_kind,
            hint=grant_hint(scope, capabilities, username),
        )

    logger.info(f"Granted {', '.join(g.capability for g in added)} on {scope} to {username}")
    return GrantResult(success=True, username=username, added=added, already_held=already)


async def ensure_principal(ctx: ProvisioningContext, home_scope: str, grants: list[Grant]) -> GrantResult:
    """Find-or-create the operating principal in ``home_scope`` holding ``grants``."""
    profile = await _operator_profile(ctx)
    username = profile.username if profile is not None else ctx.operator_username

    found = await ctx.identity.find_principal(home_scope, username)
    if found.ok and found.value is not None:
        principal: Principal = found.value
        merged, added, already = merge_grants(principal.grants, grants)
        # Teardown deactivates principals; provisioning brings them back
        reactivate = not principal.active
        if not added and not reactivate:
            return GrantResult(success=True, username=username, already_held=already)
        updated = await ctx.identity.update_principal(
            principal.model_copy(update={"grants": merged, "active": True})
        )
        if not updated.ok:
            return GrantResult(
                success=False, username=username, already_held=already,
                error=updated.message, kind=updated.failure_kind,
                hint=grant_hint(home_scope, sorted({g.capability for g in grants}), username),
            )
        if reactivate:
            logger.info(f"Reactivated principal {username} on {home_scope}")
        return GrantResult(
            success=True, username=username, added=added, already_held=already,
            reactivated_principal=reactivate,
        )

    if not found.ok:
        # A brand-new scope may not answer user searches yet
        logger.warning(f"Principal search on {home_scope} failed, creating: {found.message}")

    new_principal = Principal(
        username=username,
        display_name=(profile.display_name if profile else None) or "Admin",
        contact=(profile.contact if profile else None) or ctx.settings.default_contact,
        email=profile.email if profile else None,
        gender=profile.gender if profile else None,
        type=UserType.EMPLOYEE.value,
        active=True,
        scope=home_scope,
        grants=list(grants),
    )
    created = await ctx.identity.create_principal(new_principal, ctx.settings.default_password)
    if not created.ok:
        return GrantResult(
            success=False, username=username, error=created.message, kind=created.failure_kind,
            hint=grant_hint(home_scope, sorted({g.capability for g in grants}), username),
        )
    logger.info(f"Created principal {username} on {home_scope} with {len(grants)} grants")
    return GrantResult(success=True, username=username, added=list(grants), created_principal=True)


def _to_stage(result: GrantResult, scope: str, stage: Optional[StageResult] = None) -> StageResult:
    stage = stage if stage is not None else StageResult(name=StageName.IDENTITY.value)
    if result.reactivated_principal:
        stage.record(f"{result.username}@{scope}", ItemAction.REACTIVATED)
    for grant in result.added:
        stage.record(f"{grant.capability}@{grant.scope}", ItemAction.CREATED)
    for grant in result.already_held:
        stage.record(f"{grant.capability}@{grant.scope}", ItemAction.SKIPPED)
    if not result.success:
        stage.record(f"{result.username}@{scope}", ItemAction.FAILED, kind=result.kind, message=result.error)
        stage.hint = result.hint
    return stage


async def provision_operator(ctx: ProvisioningContext, target: str) -> StageResult:
    """Bootstrap-time: the operator exists on ``target`` with the standard catalog."""
    result = await ensure_principal(ctx, target, build_grants(ctx, target))
    stage = _to_stage(result, target)
    stage.details.update({
        "username": result.username,
        "scope": target,
        "provisioned": result.success,
        "created_principal": result.created_principal,
    })
    return stage


async def provision_dual_scoped(ctx: ProvisioningContext, child: str, parent: str) -> StageResult:
    """The operator holds the standard catalog under both ``parent`` and ``child``.

    Lifecycle actions are authorized against whichever scope issued the
    record, so both sets are required. The operator's home-scope record also
    gains the child-scope grants.
    """
    grants = build_grants(ctx, parent) + build_grants(ctx, child)
    result = await ensure_principal(ctx, child, grants)
    stage = _to_stage(result, child)

    home = ctx.operator_home_scope
    if home and home != child:
        home_result = await add_grants(
            ctx, child, ctx.catalog.capability_codes, username=result.username, principal_scope=home,
        )
        if home_result.kind == FailureKind.DEPENDENCY_MISSING:
            logger.info(f"Operator record on {home} not reachable; skipping home-scope grants")
        else:
            _to_stage(home_result, home, stage)

    stage.details.update({
        "username": result.username,
        "scope": child,
        "parent_scope": parent,
        "provisioned": result.success,
        "dual_scoped": result.success,
        "created_principal": result.created_principal,
    })
    return stage
