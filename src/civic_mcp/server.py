"""Civic provisioning MCP server - expose tenant provisioning to AI assistants."""
import sys
import asyncio
import logging
import traceback
from typing import Any, Optional

import httpx
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    Tool,
    TextContent,
    ImageContent,
    EmbeddedResource,
)

from civic_core.client import ApiClientError
from civic_core.config import get_settings
from civic_core.errors import AuthenticationError
from civic_core.session import Session, connect

from . import formatters
from . import tools
from . import handlers


# Configure logging to stderr; stdout carries the MCP stdio protocol
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stderr,
    force=True
)
logger = logging.getLogger("civic-mcp")

# Argument names never written to the log
SENSITIVE_ARGUMENTS = ("password", "secret", "token")


# MCP Server instance
app = Server("civic-mcp")

# Per-connection session (stdio mode runs one connection per process)
_session: Optional[Session] = None


def sanitize_arguments(arguments: Any) -> Any:
    """Mask credential-like values for logging."""
    if not isinstance(arguments, dict):
        return arguments
    return {
        k: "***" if any(s in k.lower() for s in SENSITIVE_ARGUMENTS) else v
        for k, v in arguments.items()
    }


async def ensure_session() -> Optional[Session]:
    """Log in from CIVIC_* environment credentials if no session exists yet."""
    global _session

    if _session is not None:
        return _session
    settings = get_settings()
    if not (settings.username and settings.password):
        return None
    _session = await connect(settings, tenant_id=settings.login_tenant)
    logger.info(f"Auto-configured session for {settings.username} on {settings.api_url}")
    return _session


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available provisioning tools."""
    return tools.get_tools()


# ============================================================================
# Tool Handlers
# ============================================================================


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent | ImageContent | EmbeddedResource]:
    """Handle MCP tool calls by delegating to handlers."""
    global _session

    arguments = arguments or {}
    logger.info(f"Tool call: {name} with arguments: {sanitize_arguments(arguments)}")

    try:
        if name == "configure":
            content, _session = await handlers.handle_configure(arguments, _session)
            return content

        handler = handlers.HANDLERS.get(name)
        if not handler:
            logger.warning(f"Unknown tool requested: {name}")
            return [TextContent(type="text", text=f"Unknown tool: {name}")]

        session = await ensure_session()
        if session is None:
            return [TextContent(type="text", text=formatters.to_json({
                "success": False,
                "error": "Not connected.",
                "hint": "Call configure(username=..., password=..., tenant_id=...) first, "
                        "or set CIVIC_USERNAME and CIVIC_PASSWORD.",
            }))]

        return await handler(arguments, session.context)

    except AuthenticationError as e:
        logger.error(f"Authentication failed during {name} call: {e}")
        return [TextContent(type="text", text=formatters.to_json({
            "success": False,
            "error": f"Authentication failed: {e}",
            "tried_login_tenants": e.tried_tenants,
            "hint": "Call configure with valid credentials.",
        }))]

    except ApiClientError as e:
        logger.error(f"API error during {name} call:")
        logger.error(f"  Status: {e.status_code}")
        logger.error(f"  Errors: {e.errors}")
        logger.error(f"  Traceback: {traceback.format_exc()}")
        return [TextContent(type="text", text=f"Error: {e}")]

    except httpx.RequestError as e:
        # Network/connection errors
        logger.error(f"Request error during {name} call:")
        logger.error(f"  Error type: {type(e).__name__}")
        logger.error(f"  Error message: {str(e)}")
        logger.error(f"  Traceback: {traceback.format_exc()}")
        return [TextContent(type="text", text=f"Error: Connection failed - {str(e)}")]

    except Exception as e:
        # Catch-all for unexpected errors
        logger.error(f"Unexpected error during {name} call:")
        logger.error(f"  Error type: {type(e).__name__}")
        logger.error(f"  Error message: {str(e)}")
        logger.error(f"  Arguments: {sanitize_arguments(arguments)}")
        logger.error(f"  Traceback:\n{traceback.format_exc()}")
        return [TextContent(type="text", text=f"Error: {type(e).__name__}: {str(e)}")]


async def main():
    """Run the MCP server."""
    global _session

    logger.info(f"MCP Server starting with CIVIC_API_URL: {get_settings().api_url}")
    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(read_stream, write_stream, app.create_initialization_options())
    finally:
        if _session is not None:
            await _session.aclose()
            _session = None


def run():
    """Console entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
