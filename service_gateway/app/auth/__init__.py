"""
Authentication and authorization helpers for the Access Gateway.
"""

from .tokens import ClaimSet, TokenVerifier, extract_bearer_token
from .roles import Role, RoleGate, parse_roles

__all__ = [
    "ClaimSet",
    "Role",
    "RoleGate",
    "TokenVerifier",
    "extract_bearer_token",
    "parse_roles",
]
