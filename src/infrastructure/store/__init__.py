"""Resource store access.

- **resources**: Resource kinds, labels and status condition helpers
- **client**: Store protocols, watch events and error translation
- **admission**: Admission requests and the denial wire format
- **http**: Kubernetes REST backend over httpx
- **memory**: In-process backend with role-binding access control
- **factory**: Backend selection and process-wide lifecycle
"""
