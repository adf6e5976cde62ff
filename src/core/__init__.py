"""Core infrastructure package for shared application functionality.

- **config**: Centralized configuration management with environment support
- **context**: Request context, correlation ID and caller identity storage
- **exceptions**: Structured exception hierarchy with error codes
- **error_context**: Sensitive data sanitization for safe logging
- **logging**: Structured logging with cloud provider integrations
- **observability**: Distributed tracing with OpenTelemetry
- **types**: Type aliases for better code clarity
"""
