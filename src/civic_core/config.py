"""Runtime configuration loaded from ``CIVIC_*`` environment variables."""
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Platform endpoint paths; environments may override individual keys
ENDPOINTS: dict[str, str] = {
    "AUTH": "/user/oauth/token",
    "USER_SEARCH": "/user/_search",
    "USER_CREATE": "/user/users/_createnovalidate",
    "USER_UPDATE": "/user/users/_updatenovalidate",
    "MDMS_SCHEMA_SEARCH": "/mdms-v2/schema/v1/_search",
    "MDMS_SCHEMA_CREATE": "/mdms-v2/schema/v1/_create",
    "MDMS_SEARCH": "/mdms-v2/v2/_search",
    "MDMS_CREATE": "/mdms-v2/v2/_create",
    "MDMS_UPDATE": "/mdms-v2/v2/_update",
    "WORKFLOW_BUSINESS_SERVICE_SEARCH": "/egov-workflow-v2/egov-wf/businessservice/_search",
    "WORKFLOW_BUSINESS_SERVICE_CREATE": "/egov-workflow-v2/egov-wf/businessservice/_create",
    "BOUNDARY_CREATE": "/boundary-service/boundary/_create",
    "BOUNDARY_HIERARCHY_SEARCH": "/boundary-service/boundary-hierarchy-definition/_search",
    "BOUNDARY_HIERARCHY_CREATE": "/boundary-service/boundary-hierarchy-definition/_create",
    "BOUNDARY_RELATIONSHIP_CREATE": "/boundary-service/boundary-relationships/_create",
}


class Settings(BaseSettings):
    """Connection, credential and pipeline tuning settings."""

    model_config = SettingsConfigDict(env_prefix="CIVIC_", env_file=".env", extra="ignore")

    api_url: str = "https://api.egov.theflywheel.in"
    environment_name: str = "Chakshu Dev"
    username: Optional[str] = None
    password: Optional[str] = None
    login_tenant: Optional[str] = None
    state_tenant: str = "pg"

    oauth_client_id: str = "egov-user-client"
    oauth_client_secret: str = ""

    # Password given to principals the pipeline creates
    default_password: str = "eGov@123"
    default_contact: str = "9999999999"

    request_timeout: float = 30.0
    page_size: int = Field(500, gt=0)
    hierarchy_type: str = "ADMIN"
    catalog_path: Optional[str] = None
    endpoint_overrides: dict[str, str] = Field(default_factory=dict)
    log_level: str = "INFO"

    @field_validator("endpoint_overrides")
    @classmethod
    def check_override_keys(cls, value: dict[str, str]) -> dict[str, str]:
        unknown = [k for k in value if k not in ENDPOINTS]
        if unknown:
            raise ValueError(
                f"Invalid endpoint override key(s) {', '.join(unknown)}. "
                f"Valid keys: {', '.join(ENDPOINTS)}"
            )
        return value

    def endpoint(self, key: str) -> str:
        """Resolve an endpoint path, honouring overrides."""
        return self.endpoint_overrides.get(key) or ENDPOINTS[key]

    @property
    def effective_login_tenant(self) -> str:
        return self.login_tenant or self.state_tenant


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
