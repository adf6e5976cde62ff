"""Stratus - synchronous, per-user authorized REST API over an asynchronous store.

Stratus exposes application-platform entities (organizations, spaces, apps,
builds, routes, service bindings) whose state lives in an eventually
consistent, declarative resource store reconciled by external controllers.

Architecture Overview:
- **API Layer**: FastAPI routers, authentication and request middleware
- **Core Layer**: Configuration, context, exceptions, logging, tracing
- **Authorization Layer**: Credential parsing, identity resolution and caching,
  partition permission resolution
- **Repositories**: Authorized CRUD that waits on store-side reconciliation
- **Webhooks**: Admission checks enforcing per-partition name uniqueness
- **Infrastructure Layer**: Resource store clients (HTTP and in-memory)
"""
