"""Tests for settings and the packaged catalog."""
import pydantic
import pytest

from civic_core.catalog import TENANT_SCHEMA, default_catalog, load_catalog
from civic_core.config import ENDPOINTS, Settings


class TestSettings:
    """Test environment-driven settings."""

    def test_endpoint_override(self):
        """Test that an override replaces one endpoint and leaves the rest."""
        settings = Settings(_env_file=None, endpoint_overrides={"MDMS_SEARCH": "/mdms/v3/_search"})

        assert settings.endpoint("MDMS_SEARCH") == "/mdms/v3/_search"
        assert settings.endpoint("MDMS_CREATE") == ENDPOINTS["MDMS_CREATE"]

    def test_unknown_override_key_is_rejected(self):
        """Test that a misspelled override key fails validation."""
        with pytest.raises(pydantic.ValidationError) as exc:
            Settings(_env_file=None, endpoint_overrides={"MDMS_SERCH": "/x"})

        assert "MDMS_SERCH" in str(exc.value)

    def test_login_tenant_defaults_to_state_root(self):
        """Test that login falls back to the state root."""
        assert Settings(_env_file=None, login_tenant=None).effective_login_tenant == "pg"
        assert Settings(_env_file=None, login_tenant="ke").effective_login_tenant == "ke"

    def test_environment_prefix(self, monkeypatch):
        """Test that CIVIC_ variables populate the settings."""
        monkeypatch.setenv("CIVIC_STATE_TENANT", "ke")
        monkeypatch.setenv("CIVIC_PAGE_SIZE", "50")

        settings = Settings(_env_file=None)

        assert settings.state_tenant == "ke"
        assert settings.page_size == 50


class TestCatalog:
    """Test catalog loading."""

    def test_packaged_catalog(self):
        """Test that the packaged catalog loads with its domains in order."""
        catalog = default_catalog()

        assert len(catalog.reference_data) == 16
        assert catalog.reference_data[0] == "ACCESSCONTROL-ROLES.roles"
        assert TENANT_SCHEMA not in catalog.reference_data
        assert "PGR" in catalog.workflow_services
        assert "SUPERUSER" in catalog.capability_codes
        assert catalog.boundary_levels[0] == "Country"

    def test_load_custom_catalog(self, tmp_path):
        """Test that a custom catalog file is loaded with defaults for missing keys."""
        path = tmp_path / "catalog.yaml"
        path.write_text(
            "reference_data: [a.b]\n"
            "standard_capabilities:\n"
            "  - {code: GRO, name: Grievance Routing Officer}\n"
        )

        catalog = load_catalog(path)

        assert catalog.reference_data == ["a.b"]
        assert catalog.capability_name("GRO") == "Grievance Routing Officer"
        assert catalog.capability_name("OTHER") == "OTHER"
        assert catalog.workflow_services == []
