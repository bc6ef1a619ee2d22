"""MCP tool definitions for tenant provisioning."""

from mcp.types import Tool


def get_tools() -> list[Tool]:
    """Get the list of all provisioning tools."""
    return [
        # ============================================================================
        # Session
        # ============================================================================
        Tool(
            name="configure",
            description="Connect to the platform by logging in. Must be called before any other tool "
                       "unless CIVIC_USERNAME/CIVIC_PASSWORD are set. Login is tried on the root of "
                       "tenant_id, then tenant_id itself, then the default root.",
            inputSchema={
                "type": "object",
                "properties": {
                    "username": {
                        "type": "string",
                        "description": "Login name (default: CIVIC_USERNAME)"
                    },
                    "password": {
                        "type": "string",
                        "description": "Password (default: CIVIC_PASSWORD)"
                    },
                    "tenant_id": {
                        "type": "string",
                        "description": "Tenant to operate in, e.g. \"pg\" or \"pg.citya\""
                    },
                    "api_url": {
                        "type": "string",
                        "description": "Override the platform base URL"
                    }
                }
            }
        ),
        # ============================================================================
        # Provisioning
        # ============================================================================
        Tool(
            name="tenant_bootstrap",
            description="Bootstrap a new tenant root by copying schema definitions, reference data, "
                       "workflow definitions and the operator's roles from an existing root. "
                       "Safe to re-run: existing items are skipped, soft-deleted records are reactivated. "
                       "Call this ONCE for a new root, then city_setup for its cities.",
            inputSchema={
                "type": "object",
                "properties": {
                    "target_tenant": {
                        "type": "string",
                        "description": "The new tenant root, e.g. \"ke\""
                    },
                    "source_tenant": {
                        "type": "string",
                        "description": "Existing root to copy from (default: \"pg\")"
                    }
                },
                "required": ["target_tenant"]
            }
        ),
        Tool(
            name="city_setup",
            description="Set up a city tenant under a bootstrapped root: registry record, operator roles "
                       "on both root and city, workflow definitions and a default boundary hierarchy.",
            inputSchema={
                "type": "object",
                "properties": {
                    "tenant_id": {
                        "type": "string",
                        "description": "City tenant id, e.g. \"pg.newcity\""
                    },
                    "city_name": {
                        "type": "string",
                        "description": "Human-readable city name"
                    },
                    "source_tenant": {
                        "type": "string",
                        "description": "Source for the workflow copy (default: the root, falling back to \"pg\")"
                    },
                    "create_boundaries": {
                        "type": "boolean",
                        "description": "Create the default boundary tree (default: true)"
                    },
                    "locality_codes": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Locality codes (default: LOC_<CITYCODE>_1)"
                    }
                },
                "required": ["tenant_id", "city_name"]
            }
        ),
        Tool(
            name="tenant_cleanup",
            description="Tear down a tenant: soft-delete (isActive=false) every reference-data record and "
                       "deactivate its users. Schema definitions are left in place. A later "
                       "tenant_bootstrap reactivates the records.",
            inputSchema={
                "type": "object",
                "properties": {
                    "tenant_id": {
                        "type": "string",
                        "description": "Tenant to clean up. Only this tenant is touched."
                    },
                    "deactivate_users": {
                        "type": "boolean",
                        "description": "Also deactivate users on this tenant (default: true)"
                    },
                    "schemas": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Only clean these schema codes (default: all)"
                    }
                },
                "required": ["tenant_id"]
            }
        ),
        Tool(
            name="user_role_add",
            description="Add roles on a tenant to an existing user. Roles the user holds on other "
                       "tenants are kept; only missing (role, tenant) pairs are added.",
            inputSchema={
                "type": "object",
                "properties": {
                    "tenant_id": {
                        "type": "string",
                        "description": "Tenant the roles are bound to"
                    },
                    "role_codes": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Role codes to add (default: the standard role set)"
                    },
                    "username": {
                        "type": "string",
                        "description": "User to update (default: the logged-in user)"
                    },
                    "user_tenant_id": {
                        "type": "string",
                        "description": "Tenant the user is registered in (default: the logged-in user's tenant)"
                    }
                },
                "required": ["tenant_id"]
            }
        ),
        Tool(
            name="workflow_copy",
            description="Copy workflow (business service) definitions between roots. Services already "
                       "present on the target are skipped.",
            inputSchema={
                "type": "object",
                "properties": {
                    "source_tenant": {
                        "type": "string",
                        "description": "Root to copy from"
                    },
                    "target_tenant": {
                        "type": "string",
                        "description": "Root to copy into"
                    },
                    "business_services": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Service codes to copy (default: the known catalog)"
                    }
                },
                "required": ["source_tenant", "target_tenant"]
            }
        ),
        Tool(
            name="boundary_create",
            description="Create boundary nodes for a tenant. The hierarchy is created if absent and reused "
                       "if present. Entities are created first, then relationships root-first.",
            inputSchema={
                "type": "object",
                "properties": {
                    "tenant_id": {
                        "type": "string",
                        "description": "Tenant owning the boundaries"
                    },
                    "boundaries": {
                        "type": "array",
                        "description": "Nodes to create",
                        "items": {
                            "type": "object",
                            "properties": {
                                "code": {"type": "string"},
                                "type": {"type": "string", "description": "Level name"},
                                "parent": {"type": "string", "description": "Parent node code"}
                            },
                            "required": ["code", "type"]
                        }
                    },
                    "levels": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Root-first level names used if the hierarchy is absent"
                    },
                    "hierarchy_type": {
                        "type": "string",
                        "description": "Hierarchy name (default: \"ADMIN\")"
                    }
                },
                "required": ["tenant_id", "boundaries"]
            }
        ),
        Tool(
            name="mdms_create",
            description="Create one reference-data record. If the record exists and is inactive it is "
                       "reactivated; if it is active nothing is changed.",
            inputSchema={
                "type": "object",
                "properties": {
                    "tenant_id": {
                        "type": "string",
                        "description": "Tenant to create in"
                    },
                    "schema_code": {
                        "type": "string",
                        "description": "Schema code, e.g. \"common-masters.Department\""
                    },
                    "unique_identifier": {
                        "type": "string",
                        "description": "Unique identifier of the record (usually its code)"
                    },
                    "data": {
                        "type": "object",
                        "description": "Record payload"
                    }
                },
                "required": ["tenant_id", "schema_code", "unique_identifier", "data"]
            }
        ),
    ]
