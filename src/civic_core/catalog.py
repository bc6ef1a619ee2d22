"""Loader for the fixed provisioning catalogs (``catalog.yaml``)."""
import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger("civic-core.catalog")

DEFAULT_CATALOG_PATH = Path(__file__).with_name("catalog.yaml")

# Schema holding the scope registry; its records are managed separately
TENANT_SCHEMA = "tenant.tenants"


class Capability(BaseModel):
    code: str
    name: str


class Catalog(BaseModel):
    """Reference-data domains, workflow service codes, standard grants and levels."""

    reference_data: list[str] = Field(default_factory=list)
    workflow_services: list[str] = Field(default_factory=list)
    standard_capabilities: list[Capability] = Field(default_factory=list)
    boundary_levels: list[str] = Field(default_factory=list)

    @property
    def capability_codes(self) -> list[str]:
        return [c.code for c in self.standard_capabilities]

    def capability_name(self, code: str) -> str:
        for cap in self.standard_capabilities:
            if cap.code == code:
                return cap.name
        return code


def load_catalog(path: Optional[str | Path] = None) -> Catalog:
    """Parse a catalog file.

    Args:
        path: YAML file to read; defaults to the packaged catalog

    Returns:
        Validated Catalog
    """
    catalog_path = Path(path) if path else DEFAULT_CATALOG_PATH
    with catalog_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    catalog = Catalog.model_validate(raw)
    logger.debug(
        f"Loaded catalog from {catalog_path}: {len(catalog.reference_data)} domains, "
        f"{len(catalog.workflow_services)} workflow services"
    )
    return catalog


@lru_cache()
def default_catalog() -> Catalog:
    return load_catalog()
