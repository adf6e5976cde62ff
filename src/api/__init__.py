"""HTTP API layer built on FastAPI.

- **main**: Application factory and lifespan
- **container**: Wiring of resolvers, awaiter and repositories
- **dependencies**: Caller credential and repository injection
- **middleware**: Request context, request logging, authentication, error handling
- **routers**: v3 resource endpoints, whoami and the admission webhook
- **schemas**: Request payloads, resource representations, error responses
"""
