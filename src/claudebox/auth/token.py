"""GitHub token lifecycle — validate, refresh, or re-authenticate.

Every stage degrades instead of aborting: a session without GitHub access
is still a usable session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from rich.console import Console

from claudebox.auth.oauth import AccessToken, Success, authenticate
from claudebox.auth.storage import StoredCredential, TokenStore
from claudebox.auth.tier import TrustTier
from claudebox.auth.watcher import CancellableInputWatcher
from claudebox.config import (
    GITHUB_ACCESS_TOKEN_URL,
    GITHUB_API_HEADERS,
    GITHUB_API_URL,
    GITHUB_USER_URL,
    REQUEST_TIMEOUT,
    SANDBOX_REPO_NAME,
)

logger = logging.getLogger(__name__)
console = Console()


@dataclass
class GitHubUser:
    login: str = ""
    name: str = ""
    email: str = ""


@dataclass
class SandboxRepo:
    clone_url: str
    ssh_url: str
    username: str


class TokenManager:
    """Composes the token store and the device flow into "get a usable token"."""

    def __init__(self, store: TokenStore) -> None:
        self.store = store

    # ── public ──────────────────────────────────────────────────────

    async def acquire(
        self,
        tier: TrustTier,
        watcher: CancellableInputWatcher | None = None,
    ) -> AccessToken | None:
        """Return a working token for *tier*, or None to continue without one."""
        stored = self.store.load(tier)

        if not stored.is_empty:
            if await validate_token(stored.access_token):
                console.print("[green]✓ Using existing valid GitHub token[/]")
                return AccessToken(
                    access_token=stored.access_token,
                    refresh_token=stored.refresh_token,
                )

            if stored.refresh_token:
                console.print("[yellow]Access token expired, attempting to refresh...[/]")
                refreshed = await refresh_access_token(stored.refresh_token, tier)
                if refreshed is not None:
                    self._persist(tier, refreshed)
                    console.print("[green]✓ GitHub token refreshed successfully[/]")
                    console.print(f"[cyan]   Token location: {self.store.path_for(tier)}[/]")
                    return refreshed
                console.print(
                    "[yellow]Failed to refresh token, requesting new authentication...[/]"
                )
            else:
                console.print(
                    "[yellow]Existing GitHub token is invalid, requesting new authentication...[/]"
                )

        outcome = await authenticate(tier, watcher=watcher)
        if not isinstance(outcome, Success):
            return None

        token = outcome.token
        if not await validate_token(token.access_token):
            console.print("[bold red]Failed to authenticate with GitHub[/]")
            return None

        self._persist(tier, token)
        console.print("[green]✓ GitHub authenticated and token saved[/]")
        console.print("[yellow]⚠️  Warning: Your GitHub token has been persisted to disk.[/]")
        console.print(f"   Token location: {self.store.path_for(tier)}")
        console.print("   Use [bold]claudebox reset --all[/] to remove the stored token.")
        return token

    def logout(self, tier: TrustTier) -> bool:
        """Clear stored credentials for *tier*."""
        return self.store.delete(tier)

    def get_status(self, tier: TrustTier) -> dict:
        """Return a status dict for CLI display (no network)."""
        stored = self.store.load(tier)
        return {
            "tier": tier.value,
            "authenticated": not stored.is_empty,
            "refreshable": bool(stored.refresh_token),
            "path": str(self.store.path_for(tier)),
        }

    # ── private ─────────────────────────────────────────────────────

    def _persist(self, tier: TrustTier, token: AccessToken) -> None:
        self.store.save(
            tier,
            StoredCredential(access_token=token.access_token, refresh_token=token.refresh_token),
        )


# ── helpers ─────────────────────────────────────────────────────────


def _auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}", **GITHUB_API_HEADERS}


async def validate_token(token: str) -> bool:
    """True iff ``GET /user`` answers 200 with *token*.  Never raises."""
    try:
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            resp = await client.get(GITHUB_USER_URL, headers=_auth_headers(token))
    except httpx.HTTPError as e:
        logger.debug("Token validation failed: %s", e)
        return False
    return resp.status_code == 200


async def refresh_access_token(refresh_token: str, tier: TrustTier) -> AccessToken | None:
    """Exchange *refresh_token* for a new pair.  None on any failure."""
    try:
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            resp = await client.post(
                GITHUB_ACCESS_TOKEN_URL,
                data={
                    "client_id": tier.client_id,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
                headers={"Accept": "application/json"},
            )
        if resp.status_code != 200:
            logger.info("Token refresh rejected: HTTP %s", resp.status_code)
            return None
        data = resp.json()
        if not isinstance(data, dict) or "access_token" not in data:
            logger.info("Token refresh failed: %s", data.get("error") if isinstance(data, dict) else data)
            return None
        # GitHub may return the same refresh token or rotate it.
        return AccessToken.from_payload(data, refresh_token=refresh_token)
    except (httpx.HTTPError, ValueError) as e:
        logger.info("Token refresh failed: %s", e)
        return None


async def get_user_info(token: str) -> GitHubUser:
    """Look up the authenticated user.  Empty fields on any failure."""
    try:
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            resp = await client.get(GITHUB_USER_URL, headers=_auth_headers(token))
        if resp.status_code == 200:
            data = resp.json()
            return GitHubUser(
                login=data.get("login") or "",
                name=data.get("name") or "",
                email=data.get("email") or "",
            )
    except (httpx.HTTPError, ValueError, AttributeError) as e:
        logger.debug("User lookup failed: %s", e)
    return GitHubUser()


async def check_sandbox_repo(token: str) -> Optional[SandboxRepo]:
    """Find the user's personal ``.claude_sandbox`` repository, if any."""
    try:
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            user_resp = await client.get(GITHUB_USER_URL, headers=_auth_headers(token))
            if user_resp.status_code != 200:
                return None
            username = user_resp.json()["login"]

            repo_resp = await client.get(
                f"{GITHUB_API_URL}/repos/{username}/{SANDBOX_REPO_NAME}",
                headers=_auth_headers(token),
            )
            if repo_resp.status_code != 200:
                return None
            repo = repo_resp.json()
            return SandboxRepo(
                clone_url=repo["clone_url"],
                ssh_url=repo["ssh_url"],
                username=username,
            )
    except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
        logger.debug("Sandbox repository lookup failed: %s", e)
        return None
