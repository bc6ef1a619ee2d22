"""Tests for the MCP tool handlers, tool definitions and server dispatch."""
import json

import pytest

from civic_core.config import get_settings
from civic_mcp import handlers, server, tools


def payload_of(content) -> dict:
    assert len(content) == 1
    return json.loads(content[0].text)


class TestTools:
    """Test tool definitions."""

    def test_every_tool_has_a_handler(self):
        """Test that every tool except configure has a handler."""
        names = {tool.name for tool in tools.get_tools()}

        assert names == set(handlers.HANDLERS) | {"configure"}

    def test_required_arguments_are_declared(self):
        """Test that required arguments are declared properties."""
        for tool in tools.get_tools():
            properties = tool.inputSchema["properties"]
            for required in tool.inputSchema.get("required", []):
                assert required in properties, f"{tool.name}.{required}"


class TestProvisioningHandlers:
    """Test handlers against the in-memory stores."""

    @pytest.mark.asyncio
    async def test_mdms_create_without_schema_points_to_bootstrap(self, ctx):
        """Test that a record create without a schema suggests bootstrapping the root."""
        content = await handlers.handle_mdms_create({
            "tenant_id": "ke.nairobi",
            "schema_code": "common-masters.Department",
            "unique_identifier": "DEPT_1",
            "data": {"code": "DEPT_1"},
        }, ctx)
        payload = payload_of(content)

        assert payload["success"] is False
        assert payload["kind"] == "dependency_missing"
        assert 'tenant_bootstrap(target_tenant="ke", source_tenant="pg")' in payload["hint"]

    @pytest.mark.asyncio
    async def test_mdms_create_then_repeat(self, ctx, stores):
        """Test that a repeated record create is skipped."""
        stores.schemas.add("ke", "common-masters.Department")
        arguments = {
            "tenant_id": "ke",
            "schema_code": "common-masters.Department",
            "unique_identifier": "DEPT_1",
            "data": {"code": "DEPT_1"},
        }

        first = payload_of(await handlers.handle_mdms_create(arguments, ctx))
        second = payload_of(await handlers.handle_mdms_create(arguments, ctx))

        assert first["action"] == "created"
        assert second["action"] == "skipped"
        assert second["success"] is True
        assert len(stores.data.find("ke", "common-masters.Department", "DEPT_1")) == 1

    @pytest.mark.asyncio
    async def test_tenant_bootstrap(self, ctx, stores):
        """Test that bootstrap returns a successful JSON summary."""
        stores.seed_source("pg")

        payload = payload_of(await handlers.handle_tenant_bootstrap({"target_tenant": "ke"}, ctx))

        assert payload["success"] is True
        assert payload["source"] == "pg"
        assert payload["summary"]["schemas_copied"] == 3
        assert payload["results"]["workflows"]["created"] == ["PGR", "PT.CREATE"]
        assert any("city_setup" in step for step in payload["next_steps"])

    @pytest.mark.asyncio
    async def test_tenant_cleanup(self, ctx, stores):
        """Test that cleanup deactivates the target and leaves the source alone."""
        stores.seed_source("pg")
        await handlers.handle_tenant_bootstrap({"target_tenant": "ke"}, ctx)

        payload = payload_of(await handlers.handle_tenant_cleanup({"tenant_id": "ke"}, ctx))

        assert payload["success"] is True
        assert payload["summary"]["records_deleted"] == 5
        assert payload["summary"]["users_deactivated"] == 1
        assert all(not r.is_active for r in stores.data.records if r.scope == "ke")
        assert all(r.is_active for r in stores.data.records if r.scope == "pg")

    @pytest.mark.asyncio
    async def test_user_role_add_keeps_other_scopes(self, ctx, stores):
        """Test that adding roles keeps grants on other scopes."""
        payload = payload_of(await handlers.handle_user_role_add(
            {"tenant_id": "ke", "role_codes": ["GRO"]}, ctx,
        ))

        held = stores.identity.principals[("pg", "ADMIN")].grant_keys()
        assert payload["success"] is True
        assert payload["roles_added"] == ["GRO"]
        assert held == {("SUPERUSER", "pg"), ("GRO", "ke")}

    @pytest.mark.asyncio
    async def test_user_role_add_unknown_user(self, ctx):
        """Test that adding roles to an unknown user fails with a hint."""
        payload = payload_of(await handlers.handle_user_role_add(
            {"tenant_id": "ke", "username": "ghost"}, ctx,
        ))

        assert payload["success"] is False
        assert payload["kind"] == "dependency_missing"
        assert "user_role_add(" in payload["hint"]

    @pytest.mark.asyncio
    async def test_workflow_copy(self, ctx, stores):
        """Test that only the requested workflows are copied."""
        stores.seed_source("pg")

        payload = payload_of(await handlers.handle_workflow_copy(
            {"source_tenant": "pg", "target_tenant": "ke", "business_services": ["PGR"]}, ctx,
        ))

        assert payload["success"] is True
        assert payload["created"] == ["PGR"]
        assert ("ke", "PT.CREATE") not in stores.workflows.definitions

    @pytest.mark.asyncio
    async def test_boundary_create(self, ctx, stores):
        """Test that boundaries are created with parents attached first."""
        payload = payload_of(await handlers.handle_boundary_create({
            "tenant_id": "pg.citya",
            "boundaries": [
                {"code": "WARD_1", "type": "Ward", "parent": "CITY_A"},
                {"code": "CITY_A", "type": "City"},
            ],
            "levels": ["City", "Ward"],
        }, ctx))

        assert payload["success"] is True
        assert payload["hierarchy_reused"] is False
        assert payload["entities"]["created"] == ["WARD_1", "CITY_A"]
        assert payload["relationships"]["created"] == ["CITY_A", "WARD_1"]
        assert stores.boundaries.relationships[("pg.citya", "WARD_1")] == "CITY_A"


class TestConfigure:
    """Test session creation from the configure tool."""

    @pytest.mark.asyncio
    async def test_missing_credentials_keeps_current_session(self, monkeypatch):
        """Test that a failed configure keeps the current session."""
        monkeypatch.delenv("CIVIC_USERNAME", raising=False)
        monkeypatch.delenv("CIVIC_PASSWORD", raising=False)
        get_settings.cache_clear()
        current = object()
        try:
            content, session = await handlers.handle_configure({}, current)
        finally:
            get_settings.cache_clear()

        payload = payload_of(content)
        assert session is current
        assert payload["success"] is False
        assert payload["tried_login_tenants"] == []
        assert "CIVIC_USERNAME" in payload["hint"]


class TestServer:
    """Test server dispatch and argument logging."""

    def test_sanitize_arguments_masks_credentials(self):
        """Test that credential arguments are masked."""
        masked = server.sanitize_arguments({"username": "ADMIN", "password": "secret", "tenant_id": "pg"})

        assert masked == {"username": "ADMIN", "password": "***", "tenant_id": "pg"}

    def test_sanitize_passes_through_non_dicts(self):
        """Test that non-dict arguments pass through unchanged."""
        assert server.sanitize_arguments(None) is None

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        """Test that an unknown tool returns a text error."""
        content = await server.call_tool("no_such_tool", {})

        assert content[0].text == "Unknown tool: no_such_tool"

    @pytest.mark.asyncio
    async def test_tool_call_without_session(self, monkeypatch):
        """Test that a tool call without a session asks for configure."""
        async def no_session():
            return None

        monkeypatch.setattr(server, "ensure_session", no_session)

        payload = payload_of(await server.call_tool("tenant_bootstrap", {"target_tenant": "ke"}))

        assert payload["success"] is False
        assert "configure(" in payload["hint"]
