"""Authorized, consistency-aware CRUD over store resources.

- **conditions**: Bounded waits on reconciler-reported status conditions
- **base**: Caller-bound store access, namespace lookup, shared record fields
- **orgs**, **spaces**, **apps**, **builds**, **routes**, **service_bindings**:
  One repository per entity
"""
