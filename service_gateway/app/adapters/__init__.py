"""
Adapters package for the Gateway Service.

Contains HTTP client wrappers for remote dependencies (the identity/data
store). These adapters encapsulate:

- Base URLs and request shapes
- Retry policies via the shared retrying client
- Error handling that maps to shared errors

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .identity_store import IdentityStoreClient

__all__ = [
    "IdentityStoreClient",
]
