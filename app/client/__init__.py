"""
Python client for the portal API.

- PortalClient: envelope-aware HTTP client
- SessionStore: admin bearer token and profile
- DraftStore: multi-step claim form draft
"""

from app.client.portal_client import PortalClient
from app.client.stores import DraftStore, SessionStore

__all__ = ["PortalClient", "SessionStore", "DraftStore"]
