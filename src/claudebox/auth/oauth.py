"""GitHub OAuth Device Flow — get a GitHub access token interactively."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

import httpx
from rich.console import Console

from claudebox.auth.tier import TrustTier
from claudebox.auth.watcher import CancellableInputWatcher
from claudebox.config import (
    DEVICE_CODE_POLL_INTERVAL,
    DEVICE_GRANT_TYPE,
    GITHUB_ACCESS_TOKEN_URL,
    GITHUB_DEVICE_CODE_URL,
    GITHUB_SCOPE,
    REQUEST_TIMEOUT,
    SLOW_DOWN_PENALTY,
)

logger = logging.getLogger(__name__)
console = Console()


@dataclass
class DeviceCodeResponse:
    device_code: str
    user_code: str
    verification_uri: str
    expires_in: int
    interval: int


@dataclass
class AccessToken:
    access_token: str
    token_type: str = "bearer"
    scope: str = ""
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    refresh_token_expires_in: Optional[int] = None

    @classmethod
    def from_payload(
        cls, data: dict[str, Any], refresh_token: Optional[str] = None
    ) -> "AccessToken":
        """Build from a token endpoint body.  *refresh_token* is the fallback
        when the provider does not rotate it."""
        return cls(
            access_token=data["access_token"],
            token_type=data.get("token_type", "bearer"),
            scope=data.get("scope", ""),
            refresh_token=data.get("refresh_token") or refresh_token,
            expires_in=data.get("expires_in"),
            refresh_token_expires_in=data.get("refresh_token_expires_in"),
        )


# ── outcomes ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Success:
    token: AccessToken


@dataclass(frozen=True)
class Cancelled:
    pass


@dataclass(frozen=True)
class Failed:
    reason: str


PollOutcome = Union[Success, Cancelled, Failed]


class OAuthError(Exception):
    """Raised when the device-code request fails."""


class NetworkError(OAuthError):
    """Transport failure or non-success HTTP status."""


class ProtocolError(OAuthError):
    """Provider response was not JSON or lacked required fields."""


# ── protocol ────────────────────────────────────────────────────────


async def request_device_code(client: httpx.AsyncClient, client_id: str) -> DeviceCodeResponse:
    """Step 1: Request a device code from GitHub."""
    try:
        resp = await client.post(
            GITHUB_DEVICE_CODE_URL,
            data={"client_id": client_id, "scope": GITHUB_SCOPE},
            headers={"Accept": "application/json"},
        )
        resp.raise_for_status()
    except httpx.HTTPError as e:
        raise NetworkError(f"Failed to request device code: {e}") from e

    try:
        data = resp.json()
        return DeviceCodeResponse(
            device_code=data["device_code"],
            user_code=data["user_code"],
            verification_uri=data["verification_uri"],
            expires_in=int(data["expires_in"]),
            interval=int(data.get("interval", DEVICE_CODE_POLL_INTERVAL)),
        )
    except (ValueError, TypeError, KeyError) as e:
        raise ProtocolError(f"Malformed device code response: {e!r}") from e


async def _pause(seconds: float, cancel: asyncio.Event) -> bool:
    """Sleep for *seconds*.  Returns True (early) if *cancel* is signalled."""
    try:
        await asyncio.wait_for(cancel.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return False
    return True


async def poll_for_token(
    client: httpx.AsyncClient,
    device_code: str,
    interval: int,
    client_id: str,
    cancel: asyncio.Event,
) -> PollOutcome:
    """Step 2-3: Poll GitHub until the user authorizes, denies, or cancels.

    Requests are strictly sequential. A ``slow_down`` adds
    ``SLOW_DOWN_PENALTY`` seconds to the next sleep only.

    There is no local deadline derived from ``expires_in``: the loop ends on
    a provider error (``expired_token`` included) or on cancellation.
    """
    while True:
        if cancel.is_set():
            return Cancelled()

        try:
            resp = await client.post(
                GITHUB_ACCESS_TOKEN_URL,
                data={
                    "client_id": client_id,
                    "device_code": device_code,
                    "grant_type": DEVICE_GRANT_TYPE,
                },
                headers={"Accept": "application/json"},
            )
            data = resp.json()
        except httpx.HTTPError as e:
            logger.warning("Token poll failed: %s", e)
            return Failed(f"network error: {e}")
        except ValueError:
            return Failed(f"malformed token response (HTTP {resp.status_code})")

        if cancel.is_set():
            return Cancelled()
        if not isinstance(data, dict):
            return Failed("malformed token response")

        if "access_token" in data:
            try:
                return Success(AccessToken.from_payload(data))
            except (KeyError, TypeError):
                return Failed("malformed token response")

        error = data.get("error", "")
        if error == "authorization_pending":
            delay = interval
        elif error == "slow_down":
            delay = interval + SLOW_DOWN_PENALTY
        elif error:
            return Failed(error)
        else:
            return Failed("token response carried neither a token nor an error")

        if await _pause(delay, cancel):
            return Cancelled()


async def authenticate(
    tier: TrustTier,
    watcher: CancellableInputWatcher | None = None,
) -> PollOutcome:
    """Run the full OAuth Device Flow for *tier*.  Ctrl+C skips it."""
    async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
        try:
            dc = await request_device_code(client, tier.client_id)
        except OAuthError as e:
            console.print(f"[bold red]❌ GitHub authentication unavailable:[/] {e}")
            return Failed(str(e))

        console.print()
        console.print(f"  1. Open: [bold link={dc.verification_uri}]{dc.verification_uri}[/]")
        console.print(f"  2. Enter code: [bold yellow]{dc.user_code}[/]")
        if tier is TrustTier.ELEVATED:
            console.print()
            console.print("[bold yellow]⚠️  Using DANGEROUS mode with broader permissions![/]")
        console.print()
        console.print("[dim]Waiting for authorization (press Ctrl+C to skip)...[/]")

        cancel = asyncio.Event()
        poll = asyncio.create_task(
            poll_for_token(client, dc.device_code, dc.interval, tier.client_id, cancel)
        )
        await (watcher or CancellableInputWatcher()).watch(poll, cancel)
        outcome = await poll

    if isinstance(outcome, Success):
        console.print("[bold green]✅ GitHub authorization successful![/]")
    elif isinstance(outcome, Cancelled):
        console.print(
            "[yellow]GitHub authentication skipped. Proceeding without GitHub access.[/]"
        )
    else:
        console.print(f"[bold red]❌ GitHub authorization failed:[/] {outcome.reason}")
    return outcome
