"""Clone reference-data record sets into a target scope.

Each source record is matched against the target by identity
``(scope, schema_code, unique_id)``:

- target has it active   -> skipped
- target has it inactive -> reactivated through update (create may report a
  misleading success for an existing-but-inactive identity)
- target lacks it        -> created
"""
import logging
from typing import Optional

from .catalog import TENANT_SCHEMA
from .context import ProvisioningContext
from .models import ItemAction, StageName, StoreStatus
from .schemas import DataRecord, ItemResult, StageResult, StoreResult

logger = logging.getLogger("civic-core.data_reconciler")


async def list_all_records(
    ctx: ProvisioningContext,
    scope: str,
    schema_code: str,
    ids: Optional[list[str]] = None,
) -> StoreResult:
    """Page through a domain until a short page is returned.

    Returns:
        StoreResult whose value is every record (active and inactive), or the
        first failed page
    """
    records: list[DataRecord] = []
    offset = 0
    page_size = ctx.page_size
    while True:
        page = await ctx.data.list_records(scope, schema_code, ids=ids, limit=page_size, offset=offset)
        if not page.ok:
            return page
        records.extend(page.value)
        if len(page.value) < page_size:
            break
        offset += page_size
    return StoreResult.success(records)


def _index_by_identity(records: list[DataRecord]) -> dict[str, DataRecord]:
    """Index records by unique id, preferring the active one per identity."""
    index: dict[str, DataRecord] = {}
    for record in records:
        current = index.get(record.unique_id)
        if current is None or (record.is_active and not current.is_active):
            index[record.unique_id] = record
    return index


async def apply_record(
    ctx: ProvisioningContext,
    stage: StageResult,
    scope: str,
    schema_code: str,
    unique_id: str,
    payload: dict,
    existing: Optional[DataRecord],
    label: Optional[str] = None,
) -> tuple[ItemResult, Optional[DataRecord]]:
    """Make one record active at ``scope`` and record what happened.

    Returns:
        The item result and the record now held by the target (if known)
    """
    key = label or f"{schema_code}/{unique_id}"

    if existing is not None and existing.is_active:
        logger.debug(f"{key} already active on {scope}")
        return stage.record(key, ItemAction.SKIPPED), existing

    if existing is not None:
        outcome = await ctx.data.update_record(existing, True)
        if outcome.ok:
            logger.info(f"Reactivated {key} on {scope}")
            reactivated = outcome.value or existing.model_copy(update={"is_active": True})
            return stage.record(key, ItemAction.REACTIVATED), reactivated
        return stage.fail(key, outcome), existing

    outcome = await ctx.data.create_record(scope, schema_code, unique_id, payload)
    if outcome.ok:
        created = outcome.value or DataRecord(
            scope=scope, schema_code=schema_code, unique_id=unique_id, payload=payload,
        )
        return stage.record(key, ItemAction.CREATED), created
    if outcome.status == StoreStatus.CONFLICT:
        return stage.record(key, ItemAction.SKIPPED, message=outcome.message), None
    logger.warning(f"Create {key} on {scope} failed: {outcome.message}")
    return stage.fail(key, outcome), None


async def ensure_record(
    ctx: ProvisioningContext,
    scope: str,
    schema_code: str,
    unique_id: str,
    payload: dict,
    stage: Optional[StageResult] = None,
    label: Optional[str] = None,
) -> ItemResult:
    """Look up one identity at ``scope`` and create or reactivate it as needed.

    A failed lookup fails the item: create may report success for an
    inactive identity without reactivating it. A not-found lookup (schema
    absent) falls through so create reports the missing dependency.
    """
    stage = stage if stage is not None else StageResult(name="record")
    found = await list_all_records(ctx, scope, schema_code, ids=[unique_id])
    existing = None
    if found.ok:
        existing = _index_by_identity(found.value).get(unique_id)
    elif found.status != StoreStatus.NOT_FOUND:
        logger.warning(f"Lookup of {schema_code}/{unique_id} on {scope} failed: {found.message}")
        return stage.fail(label or f"{schema_code}/{unique_id}", found)
    item, _ = await apply_record(ctx, stage, scope, schema_code, unique_id, payload, existing, label=label)
    return item


async def reconcile_domain(
    ctx: ProvisioningContext,
    stage: StageResult,
    target: str,
    source: str,
    schema_code: str,
) -> None:
    """Clone one domain's records, one record at a time."""
    source_listing = await list_all_records(ctx, source, schema_code)
    if not source_listing.ok:
        logger.info(f"Domain {schema_code} skipped: cannot list on {source} ({source_listing.message})")
        stage.details.setdefault("skipped_domains", {})[schema_code] = source_listing.message
        return

    target_listing = await list_all_records(ctx, target, schema_code)
    if not target_listing.ok:
        logger.warning(f"Domain {schema_code} skipped: cannot list on {target} ({target_listing.message})")
        stage.details.setdefault("skipped_domains", {})[schema_code] = target_listing.message
        return

    target_by_id = _index_by_identity(target_listing.value)
    for unique_id, record in _index_by_identity(source_listing.value).items():
        _, now_held = await apply_record(
            ctx, stage, target, schema_code, unique_id, record.payload, target_by_id.get(unique_id),
        )
        if now_held is not None:
            target_by_id[unique_id] = now_held


async def ensure_root_record(ctx: ProvisioningContext, stage: StageResult, target: str) -> ItemResult:
    """Register the target root in its own scope registry.

    Services resolve city codes through the registry of the scope's own
    root, so the root must list itself.
    """
    payload = {
        "code": target,
        "name": target,
        "description": f"State tenant root: {target}",
        "city": {
            "code": target.upper(),
            "name": target,
            "districtCode": target.upper(),
            "districtName": target,
        },
    }
    return await ensure_record(
        ctx, target, TENANT_SCHEMA, target, payload, stage=stage,
        label=f"{TENANT_SCHEMA}/{target} (root self-record)",
    )


async def reconcile_reference_data(
    ctx: ProvisioningContext,
    target: str,
    source: str,
    domains: Optional[list[str]] = None,
    include_root_record: bool = True,
) -> StageResult:
    """Clone the reference-data catalog from ``source`` into ``target``.

    Domains are processed strictly in catalog order; a failure in one domain
    never prevents the next.
    """
    stage = StageResult(name=StageName.REFERENCE_DATA.value)

    if include_root_record:
        await ensure_root_record(ctx, stage, target)

    for schema_code in domains if domains is not None else ctx.catalog.reference_data:
        await reconcile_domain(ctx, stage, target, source, schema_code)

    counts = stage.counts()
    logger.info(
        f"Reference data {source} -> {target}: {counts['created']} created, "
        f"{counts['reactivated']} reactivated, {counts['skipped']} skipped, {counts['failed']} failed"
    )
    return stage
