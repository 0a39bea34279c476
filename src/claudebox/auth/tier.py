"""Trust tiers — standard vs. elevated GitHub credentials."""

from __future__ import annotations

from enum import Enum

from claudebox.config import (
    ELEVATED_TOKEN_FILENAME,
    GITHUB_CLIENT_ID,
    GITHUB_ELEVATED_CLIENT_ID,
    TOKEN_FILENAME,
)


class TrustTier(str, Enum):
    """Selects the OAuth client identity and the on-disk token file."""

    STANDARD = "standard"
    ELEVATED = "elevated"

    @classmethod
    def from_flag(cls, dangerous: bool) -> "TrustTier":
        return cls.ELEVATED if dangerous else cls.STANDARD

    @property
    def client_id(self) -> str:
        return GITHUB_ELEVATED_CLIENT_ID if self is TrustTier.ELEVATED else GITHUB_CLIENT_ID

    @property
    def filename(self) -> str:
        return ELEVATED_TOKEN_FILENAME if self is TrustTier.ELEVATED else TOKEN_FILENAME
