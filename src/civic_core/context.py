"""Explicit session context handed to every reconciler."""
import logging
from dataclasses import dataclass, field
from typing import Optional

from .catalog import Catalog, default_catalog, load_catalog
from .client import DigitClient
from .config import Settings, get_settings
from .schemas import Principal
from .stores import (
    BoundaryStore,
    DataStore,
    HttpBoundaryStore,
    HttpDataStore,
    HttpIdentityStore,
    HttpSchemaStore,
    HttpWorkflowStore,
    IdentityStore,
    SchemaStore,
    WorkflowStore,
)

logger = logging.getLogger("civic-core.context")


@dataclass
class ProvisioningContext:
    """The stores, operator identity and tuning for one provisioning session.

    Holding this as a value (instead of a process-wide client) lets several
    sessions against different scopes coexist.
    """

    schemas: SchemaStore
    data: DataStore
    workflows: WorkflowStore
    identity: IdentityStore
    boundaries: BoundaryStore
    operator: Optional[Principal] = None
    settings: Settings = field(default_factory=get_settings)
    catalog: Catalog = field(default_factory=default_catalog)

    @property
    def page_size(self) -> int:
        return self.settings.page_size

    @property
    def operator_username(self) -> str:
        if self.operator is not None:
            return self.operator.username
        return self.settings.username or "ADMIN"

    @property
    def operator_home_scope(self) -> Optional[str]:
        return self.operator.scope if self.operator is not None else None

    @classmethod
    def from_client(cls, client: DigitClient, settings: Optional[Settings] = None) -> "ProvisioningContext":
        """Wire HTTP stores to an authenticated client."""
        settings = settings or client.settings
        catalog = load_catalog(settings.catalog_path) if settings.catalog_path else default_catalog()
        return cls(
            schemas=HttpSchemaStore(client),
            data=HttpDataStore(client),
            workflows=HttpWorkflowStore(client),
            identity=HttpIdentityStore(client),
            boundaries=HttpBoundaryStore(client),
            operator=client.user,
            settings=settings,
            catalog=catalog,
        )
