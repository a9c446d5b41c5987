"""
Request validation package.

``validator`` runs pydantic models against the body, path parameters and
query string of a request and aggregates every violation; ``schemas`` holds
the models used by the gateway routes.
"""

from .validator import FieldError, SchemaValidator, ValidatedFacets, ValidationSchemas

__all__ = [
    "FieldError",
    "SchemaValidator",
    "ValidatedFacets",
    "ValidationSchemas",
]
