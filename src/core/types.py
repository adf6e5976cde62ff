"""Type aliases for dynamic data structures throughout the application.

Store resources are schemaless JSON documents, so most of the data flowing
between the store clients and the repositories is typed with the aliases
below rather than with concrete classes.
"""

from typing import Any

# JSON-compatible type that represents any valid JSON value
type JsonValue = (
    dict[str, "JsonValue"] | list["JsonValue"] | str | int | float | bool | None
)

# A resource document as exchanged with the store (apiVersion, kind, metadata, ...)
type Resource = dict[str, Any]

# Context dictionary for logging additional information
type LogContext = dict[str, Any]

# Context dictionary for error details and debugging information
type ErrorContext = dict[str, Any]

# ASGI scope type for middleware implementations
type AsgiScope = dict[str, Any]
