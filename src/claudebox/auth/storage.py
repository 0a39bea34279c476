"""Credential persistence — one JSON token file per trust tier.

Files are written by a single in-process caller. Nothing here guards
against another process writing the same directory concurrently.
"""

from __future__ import annotations

import json
import logging
import os
import stat
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from claudebox.auth.tier import TrustTier

logger = logging.getLogger(__name__)


@dataclass
class StoredCredential:
    """Stored credential pair."""

    access_token: str = ""
    refresh_token: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.access_token


class TokenStore:
    """Manages per-tier credential files under *directory*."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def path_for(self, tier: TrustTier) -> Path:
        return self.directory / tier.filename

    # ── public ──────────────────────────────────────────────────────

    def load(self, tier: TrustTier) -> StoredCredential:
        """Load the credential for *tier*.  Missing or corrupt → empty."""
        return self._read(tier) or StoredCredential()

    def save(self, tier: TrustTier, credential: StoredCredential) -> None:
        """Replace the credential for *tier*, leaving the other tier's file alone.

        Both tiers are read into a snapshot, only *tier*'s entry is replaced,
        and only *tier*'s file is written back.
        """
        snapshot: dict[TrustTier, StoredCredential] = {}
        for each in TrustTier:
            existing = self._read(each)
            if existing is not None:
                snapshot[each] = existing
        snapshot[tier] = credential

        self._ensure_dir()
        path = self.path_for(tier)
        path.write_text(json.dumps(asdict(snapshot[tier])) + "\n", encoding="utf-8")
        # chmod 600: owner read/write only (skip on Windows)
        if os.name != "nt":
            path.chmod(stat.S_IRUSR | stat.S_IWUSR)

    def delete(self, tier: TrustTier) -> bool:
        """Remove the credential file for *tier*.  Returns True if it existed."""
        path = self.path_for(tier)
        if path.exists():
            path.unlink()
            return True
        return False

    # ── private ─────────────────────────────────────────────────────

    def _read(self, tier: TrustTier) -> StoredCredential | None:
        path = self.path_for(tier)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable token file %s: %s", path, e)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring token file %s: not a JSON object", path)
            return None

        access = data.get("access_token", "")
        refresh = data.get("refresh_token")
        if not isinstance(access, str) or not (refresh is None or isinstance(refresh, str)):
            logger.warning("Ignoring token file %s: unexpected field types", path)
            return None
        return StoredCredential(access_token=access, refresh_token=refresh)

    def _ensure_dir(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
