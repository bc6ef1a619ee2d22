"""Clone schema definitions from a source scope into a target scope."""
import logging

from .context import ProvisioningContext
from .models import ItemAction, StageName, StoreStatus
from .schemas import StageResult

logger = logging.getLogger("civic-core.schema_reconciler")


async def reconcile_schemas(ctx: ProvisioningContext, target: str, source: str) -> StageResult:
    """Create every source schema at the target.

    A conflict from the store means the schema is already registered and is
    counted as skipped. Any other failure is recorded and the next schema is
    attempted.

    Args:
        ctx: Provisioning session
        target: Scope receiving the schemas
        source: Known-good scope to copy from

    Returns:
        StageResult with one item per source schema
    """
    result = StageResult(name=StageName.SCHEMAS.value)

    listed = await ctx.schemas.list_schemas(source)
    if not listed.ok:
        result.record(f"<list {source}>", ItemAction.FAILED, kind=listed.failure_kind, message=listed.message)
        result.note = f"Could not list schemas on source \"{source}\""
        return result

    for schema in listed.value:
        outcome = await ctx.schemas.create_schema(
            target,
            schema.code,
            schema.description or schema.code,
            schema.shape,
        )
        if outcome.ok:
            result.record(schema.code, ItemAction.CREATED)
        elif outcome.status == StoreStatus.CONFLICT:
            logger.debug(f"Schema {schema.code} already on {target}")
            result.record(schema.code, ItemAction.SKIPPED)
        else:
            logger.warning(f"Schema {schema.code} copy to {target} failed: {outcome.message}")
            result.fail(schema.code, outcome)

    counts = result.counts()
    logger.info(
        f"Schemas {source} -> {target}: {counts['created']} created, "
        f"{counts['skipped']} skipped, {counts['failed']} failed"
    )
    return result
