"""Pydantic models for the HTTP surface.

- **payloads**: Request bodies, rejecting unknown fields
- **resources**: Resource representations and list pagination
- **errors**: The error response body
"""
