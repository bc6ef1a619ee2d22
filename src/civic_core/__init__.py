"""Tenant provisioning pipeline for a multi-tenant civic-services platform.

Modules:
- pipeline: bootstrap stage graph and city setup
- schema_reconciler, data_reconciler, identity, workflow_cloner,
  boundary_builder, teardown: one module per provisioning domain
- stores: store interfaces and HTTP adapters
- client, session: transport and login
- config, catalog: settings and fixed catalogs
"""

__version__ = "0.1.0"
