"""Soft-delete a scope's reference data and deactivate its principals.

The data store has no hard delete: records are flipped inactive and a later
bootstrap reactivates them. Schema definitions are left in place.
"""
import logging
from typing import Optional

from .context import ProvisioningContext
from .data_reconciler import list_all_records
from .schemas import CleanupResult, Principal

logger = logging.getLogger("civic-core.teardown")

# Principals fetched per user-search page during the sweep
PRINCIPAL_PAGE_SIZE = 100


async def cleanup(
    ctx: ProvisioningContext,
    scope: str,
    domains: Optional[list[str]] = None,
    deactivate_users: bool = True,
) -> CleanupResult:
    """Tear down ``scope``.

    Args:
        ctx: Provisioning session
        scope: Scope to clean; only this scope is touched, never its parent
        domains: Restrict to these schema codes (default: every record)
        deactivate_users: Also deactivate active principals of the scope

    Returns:
        CleanupResult with record and principal counts
    """
    result = CleanupResult(scope=scope)

    # A single domain can be listed directly; otherwise list all and filter
    listing_code = domains[0] if domains and len(domains) == 1 else ""
    listed = await list_all_records(ctx, scope, listing_code)
    if not listed.ok:
        logger.error(f"Cannot list records on {scope}: {listed.message}")
        result.errors.append(f"list {scope}: {listed.message}")
        result.failed += 1
    else:
        records = listed.value
        if domains and len(domains) > 1:
            records = [r for r in records if r.schema_code in domains]
        result.found = len(records)

        for record in records:
            if not record.is_active:
                result.already_inactive += 1
                continue
            outcome = await ctx.data.update_record(record, False)
            if outcome.ok:
                result.deleted += 1
                result.domains[record.schema_code] = result.domains.get(record.schema_code, 0) + 1
            else:
                logger.warning(f"Failed to deactivate {record.key} on {scope}: {outcome.message}")
                result.failed += 1
                result.errors.append(f"{record.key}: {outcome.message}")

    if deactivate_users:
        await _deactivate_principals(ctx, scope, result)

    logger.info(
        f"Cleanup {scope}: {result.deleted} deleted, {result.already_inactive} already inactive, "
        f"{result.failed} failed, {result.users_deactivated} users deactivated"
    )
    return result


async def _list_all_principals(ctx: ProvisioningContext, scope: str, result: CleanupResult) -> Optional[list[Principal]]:
    """Page through the scope's principals; None if a page failed."""
    principals: dict[str, Principal] = {}
    offset = 0
    while True:
        page = await ctx.identity.list_principals(scope, limit=PRINCIPAL_PAGE_SIZE, offset=offset)
        if not page.ok:
            logger.error(f"User search failed for {scope}: {page.message}")
            result.errors.append(f"user search {scope}: {page.message}")
            return None
        fresh = [p for p in page.value if p.username not in principals]
        principals.update((p.username, p) for p in fresh)
        if len(page.value) < PRINCIPAL_PAGE_SIZE:
            break
        if not fresh:
            # Full page of already-seen users: the search ignored the offset
            logger.warning(f"User search on {scope} repeated a page; stopping after {len(principals)} users")
            result.errors.append(f"user search {scope}: paging stalled after {len(principals)} users")
            break
        offset += PRINCIPAL_PAGE_SIZE
    return list(principals.values())


async def _deactivate_principals(ctx: ProvisioningContext, scope: str, result: CleanupResult) -> None:
    principals = await _list_all_principals(ctx, scope, result)
    if principals is None:
        return

    for principal in principals:
        if not principal.active:
            continue
        outcome = await ctx.identity.update_principal(principal.model_copy(update={"active": False}))
        if outcome.ok:
            result.users_deactivated += 1
        else:
            logger.warning(f"Failed to deactivate user {principal.username}: {outcome.message}")
            result.users_failed += 1
            result.errors.append(f"user {principal.username}: {outcome.message}")
