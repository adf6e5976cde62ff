"""Middleware for cross-cutting request concerns.

Execution order for an incoming request:
1. RequestContextMiddleware: correlation ID, context cleanup
2. RequestLoggingMiddleware: start/completion logs with timing
3. AuthenticationMiddleware: credential parsing and identity resolution

Exception handlers in ``error_handler`` turn every failure into an
``ErrorResponse``.
"""
