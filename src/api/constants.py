"""API-related constants."""

# HTTP Status Codes
HTTP_500_INTERNAL_SERVER_ERROR = 500

# HTTP Headers
CORRELATION_ID_HEADER = "X-Correlation-ID"
AUTHORIZATION_HEADER = "Authorization"
WARNINGS_HEADER = "X-Cf-Warnings"

# Paths served without caller credentials. Entries ending in "/" match by prefix.
UNAUTHENTICATED_PATHS = (
    "/",
    "/health",
    "/info",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/admission/",
)

SENSITIVE_HEADERS = {
    "authorization",
    "cookie",
    "set-cookie",
    "proxy-authorization",
}
