"""Auth package — GitHub device flow + per-tier token management."""

from claudebox.auth.storage import StoredCredential, TokenStore
from claudebox.auth.tier import TrustTier
from claudebox.auth.token import TokenManager

__all__ = ["StoredCredential", "TokenManager", "TokenStore", "TrustTier"]
