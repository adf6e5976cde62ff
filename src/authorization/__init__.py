"""Caller authentication and partition-level authorization.

- **credentials**: Authorization header parsing into bearer tokens or client
  certificates
- **identity**: Credential to identity resolution, with a TTL cache
- **permissions**: Organization and space namespaces visible to a caller
"""
