"""Clone business-service state machines between roots."""
import logging
from typing import Optional

from .context import ProvisioningContext
from .errors import workflow_hint
from .models import FailureKind, ItemAction, StageName, StoreStatus
from .schemas import StageResult, WorkflowAction, WorkflowDefinition, WorkflowState

logger = logging.getLogger("civic-core.workflow_cloner")


def state_name_map(states: list[WorkflowState]) -> dict[str, str]:
    """Map each state's source-allocated uuid to its symbolic name."""
    return {s.uuid: s.name for s in states if s.uuid and s.name}


def portable_definition(definition: WorkflowDefinition) -> WorkflowDefinition:
    """Strip source identifiers so the definition can be created elsewhere.

    Every ``next_state_ref`` that is a source uuid is rewritten to the
    symbolic name of the state it points to. References that are already
    names are kept as they are.
    """
    names = state_name_map(definition.states)
    states = [
        WorkflowState(
            name=state.name,
            status=state.status,
            doc_upload_required=state.doc_upload_required,
            is_start=state.is_start,
            is_terminal=state.is_terminal,
            is_state_updatable=state.is_state_updatable,
            actions=[
                WorkflowAction(
                    name=action.name,
                    next_state_ref=names.get(action.next_state_ref, action.next_state_ref),
                    allowed_roles=list(action.allowed_roles),
                    active=action.active,
                )
                for action in state.actions
            ],
        )
        for state in definition.states
    ]
    return WorkflowDefinition(
        service_code=definition.service_code,
        business=definition.business,
        sla_millis=definition.sla_millis,
        states=states,
    )


async def clone_workflows(
    ctx: ProvisioningContext,
    source_root: str,
    target_root: str,
    known_service_codes: Optional[list[str]] = None,
) -> StageResult:
    """Copy every known service found at ``source_root`` into ``target_root``.

    The workflow store only supports filtered listing, so the services to
    search come from ``known_service_codes`` (default: the catalog).

    Args:
        ctx: Provisioning session
        source_root: Root to copy from
        target_root: Root to copy into
        known_service_codes: Service codes to search for at the source

    Returns:
        StageResult with one item per service code
    """
    stage = StageResult(name=StageName.WORKFLOWS.value)
    codes = known_service_codes if known_service_codes is not None else ctx.catalog.workflow_services

    listed = await ctx.workflows.list_workflows(source_root, codes)
    if not listed.ok:
        stage.fail(f"<list {source_root}>", listed)
        stage.note = f'Could not list workflow services on source "{source_root}"'
    elif not listed.value:
        stage.record(
            f"<list {source_root}>", ItemAction.FAILED, kind=FailureKind.DEPENDENCY_MISSING,
            message=f'No workflow services found in source "{source_root}"',
        )
    else:
        for definition in listed.value:
            await _clone_one(ctx, stage, target_root, definition)

    if stage.failed:
        stage.hint = workflow_hint(source_root, target_root)
    counts = stage.counts()
    logger.info(
        f"Workflows {source_root} -> {target_root}: {counts['created']} created, "
        f"{counts['skipped']} skipped, {counts['failed']} failed"
    )
    return stage


async def _clone_one(
    ctx: ProvisioningContext,
    stage: StageResult,
    target_root: str,
    definition: WorkflowDefinition,
) -> None:
    code = definition.service_code

    existing = await ctx.workflows.list_workflows(target_root, [code])
    if existing.ok and existing.value:
        logger.debug(f"Workflow {code} already on {target_root}")
        stage.record(code, ItemAction.SKIPPED)
        return
    if not existing.ok:
        logger.warning(f"Could not check {code} on {target_root}, attempting create: {existing.message}")

    outcome = await ctx.workflows.create_workflow(target_root, portable_definition(definition))
    if outcome.ok:
        stage.record(code, ItemAction.CREATED)
    elif outcome.status == StoreStatus.CONFLICT:
        stage.record(code, ItemAction.SKIPPED, message=outcome.message)
    else:
        logger.warning(f"Workflow {code} copy to {target_root} failed: {outcome.message}")
        stage.fail(code, outcome)
