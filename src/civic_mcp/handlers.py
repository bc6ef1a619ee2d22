"""MCP tool handlers.

All provisioning handlers follow one pattern:
- Accept: arguments dict and the session's ProvisioningContext
- Return: list[TextContent] holding the JSON result
- Log the outcome

``configure`` is the exception: it creates the session, so it takes the
current session and returns the new one alongside its content. Session state
is held by the caller (the transport).
"""
from typing import Optional
import logging

from mcp.types import TextContent

from civic_core.boundary_builder import build_boundaries
from civic_core.config import get_settings
from civic_core.context import ProvisioningContext
from civic_core.data_reconciler import ensure_record
from civic_core.errors import AuthenticationError, record_hint
from civic_core.identity import add_grants
from civic_core.pipeline import bootstrap, city_setup
from civic_core.schemas import BoundaryNode
from civic_core.session import Session, connect
from civic_core.teardown import cleanup
from civic_core.workflow_cloner import clone_workflows

from . import formatters

logger = logging.getLogger("civic-mcp.handlers")


def _text(payload: dict) -> list[TextContent]:
    return [TextContent(type="text", text=formatters.to_json(payload))]


# ============================================================================
# Session
# ============================================================================

async def handle_configure(
    arguments: dict,
    current_session: Optional[Session] = None
) -> tuple[list[TextContent], Optional[Session]]:
    """Log in and replace the session.

    On failure the current session (if any) is kept.
    """
    settings = get_settings()
    if arguments.get("api_url"):
        settings = settings.model_copy(update={"api_url": arguments["api_url"]})

    try:
        session = await connect(
            settings,
            username=arguments.get("username"),
            password=arguments.get("password"),
            tenant_id=arguments.get("tenant_id"),
        )
    except AuthenticationError as e:
        logger.warning(f"configure failed: {e}")
        tried = ", ".join(f'"{t}"' for t in e.tried_tenants)
        return _text({
            "success": False,
            "error": str(e),
            "tried_login_tenants": e.tried_tenants,
            "hint": f"Login failed against tenants: {tried}. Check the username, password and tenant_id."
                    if tried else "Provide username and password, or set CIVIC_USERNAME and CIVIC_PASSWORD.",
        }), current_session

    if current_session is not None:
        await current_session.aclose()

    operator = session.context.operator
    logger.info(f"Configured session on {settings.api_url} as {session.context.operator_username}")
    return _text({
        "success": True,
        "environment": settings.environment_name,
        "api_url": settings.api_url,
        "login_tenant": session.login_tenant,
        "user": {
            "username": session.context.operator_username,
            "name": operator.display_name if operator else None,
            "tenant_id": session.context.operator_home_scope,
            "roles": sorted({g.capability for g in operator.grants}) if operator else [],
        },
    }), session


# ============================================================================
# Provisioning
# ============================================================================

async def handle_tenant_bootstrap(arguments: dict, context: ProvisioningContext) -> list[TextContent]:
    """Clone schemas, reference data, operator grants and workflows into a new root."""
    result = await bootstrap(context, arguments["target_tenant"], arguments.get("source_tenant"))
    logger.info(f"tenant_bootstrap {result.target}: success={result.success}")
    return _text(formatters.format_bootstrap(result))


async def handle_city_setup(arguments: dict, context: ProvisioningContext) -> list[TextContent]:
    create_boundaries = arguments.get("create_boundaries")
    result = await city_setup(
        context,
        arguments["tenant_id"],
        arguments["city_name"],
        source=arguments.get("source_tenant"),
        create_boundaries=True if create_boundaries is None else bool(create_boundaries),
        locality_codes=arguments.get("locality_codes"),
    )
    logger.info(f"city_setup {result.city}: success={result.success}")
    return _text(formatters.format_city_setup(result))


async def handle_tenant_cleanup(arguments: dict, context: ProvisioningContext) -> list[TextContent]:
    """Soft-delete all records and deactivate users for one tenant."""
    deactivate_users = arguments.get("deactivate_users")
    result = await cleanup(
        context,
        arguments["tenant_id"],
        domains=arguments.get("schemas"),
        deactivate_users=True if deactivate_users is None else bool(deactivate_users),
    )
    return _text(formatters.format_cleanup(result))


async def handle_user_role_add(arguments: dict, context: ProvisioningContext) -> list[TextContent]:
    scope = arguments["tenant_id"]
    result = await add_grants(
        context,
        scope,
        arguments.get("role_codes") or context.catalog.capability_codes,
        username=arguments.get("username"),
        principal_scope=arguments.get("user_tenant_id") or context.operator_home_scope,
    )
    return _text(formatters.format_grants(result, scope))


async def handle_workflow_copy(arguments: dict, context: ProvisioningContext) -> list[TextContent]:
    source = arguments["source_tenant"]
    target = arguments["target_tenant"]
    stage = await clone_workflows(context, source, target, arguments.get("business_services"))
    payload = {"success": not stage.failed, "source": source, "target": target, **formatters.format_stage(stage)}
    return _text(payload)


async def handle_boundary_create(arguments: dict, context: ProvisioningContext) -> list[TextContent]:
    """Create the hierarchy if needed, then boundary entities and relationships."""
    scope = arguments["tenant_id"]
    nodes = [
        BoundaryNode(code=b["code"], scope=scope, type=b["type"], parent_code=b.get("parent"))
        for b in arguments["boundaries"]
    ]
    result = await build_boundaries(
        context, scope, nodes,
        levels=arguments.get("levels"),
        hierarchy=arguments.get("hierarchy_type"),
    )
    return _text(formatters.format_boundaries(result))


async def handle_mdms_create(arguments: dict, context: ProvisioningContext) -> list[TextContent]:
    scope = arguments["tenant_id"]
    schema_code = arguments["schema_code"]
    unique_id = arguments["unique_identifier"]
    item = await ensure_record(context, scope, schema_code, unique_id, arguments["data"])

    payload = {
        "success": item.action != "failed",
        "tenant_id": scope,
        "schema_code": schema_code,
        "unique_identifier": unique_id,
        "action": item.action,
    }
    if item.action == "failed":
        payload["error"] = item.message
        payload["kind"] = item.kind
        payload["hint"] = record_hint(item.kind, scope, schema_code, context.settings.state_tenant)
    logger.info(f"mdms_create {scope}/{schema_code}/{unique_id}: {item.action}")
    return _text(payload)


HANDLERS = {
    "tenant_bootstrap": handle_tenant_bootstrap,
    "city_setup": handle_city_setup,
    "tenant_cleanup": handle_tenant_cleanup,
    "user_role_add": handle_user_role_add,
    "workflow_copy": handle_workflow_copy,
    "boundary_create": handle_boundary_create,
    "mdms_create": handle_mdms_create,
}
