"""Tests for the GitHub device flow.

Verifies:
  1. Device code request encoding and error mapping
  2. Poll sequencing, slow_down backoff and terminal errors
  3. Cooperative cancellation
  4. authenticate() outcomes end-to-end
"""

import asyncio
import os
import time
from urllib.parse import parse_qs

import httpx
import pytest
import respx

from claudebox.auth import oauth
from claudebox.auth.oauth import (
    AccessToken,
    Cancelled,
    Failed,
    NetworkError,
    ProtocolError,
    Success,
    authenticate,
    poll_for_token,
    request_device_code,
)
from claudebox.auth.tier import TrustTier
from claudebox.auth.watcher import CancellableInputWatcher
from claudebox.config import (
    GITHUB_ACCESS_TOKEN_URL,
    GITHUB_CLIENT_ID,
    GITHUB_DEVICE_CODE_URL,
    GITHUB_ELEVATED_CLIENT_ID,
)

DEVICE_CODE_BODY = {
    "device_code": "dev-123",
    "user_code": "ABCD-1234",
    "verification_uri": "https://github.com/login/device",
    "expires_in": 900,
    "interval": 5,
}
TOKEN_BODY = {
    "access_token": "gho_new",
    "token_type": "bearer",
    "scope": "repo",
    "refresh_token": "ghr_new",
    "expires_in": 28800,
    "refresh_token_expires_in": 15897600,
}
PENDING = {"error": "authorization_pending"}
SLOW_DOWN = {"error": "slow_down"}


def _form(request: httpx.Request) -> dict:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


async def _poll(interval=1, cancel=None):
    async with httpx.AsyncClient() as client:
        return await poll_for_token(
            client, "dev-123", interval, GITHUB_CLIENT_ID, cancel or asyncio.Event()
        )


@pytest.fixture
def pauses(monkeypatch):
    """Record requested sleeps instead of sleeping."""
    recorded = []

    async def fake_pause(seconds, cancel):
        recorded.append(seconds)
        return cancel.is_set()

    monkeypatch.setattr(oauth, "_pause", fake_pause)
    return recorded


# ═══════════════════════════════════════════════════════════════════
#  1. Device code request
# ═══════════════════════════════════════════════════════════════════


@respx.mock
def test_request_device_code_is_form_encoded():
    route = respx.post(GITHUB_DEVICE_CODE_URL).mock(
        return_value=httpx.Response(200, json=DEVICE_CODE_BODY)
    )

    async def run():
        async with httpx.AsyncClient() as client:
            return await request_device_code(client, "client-xyz")

    dc = asyncio.run(run())

    assert dc.device_code == "dev-123"
    assert dc.user_code == "ABCD-1234"
    assert dc.interval == 5
    request = route.calls.last.request
    assert _form(request) == {"client_id": "client-xyz", "scope": "repo"}
    assert request.headers["Accept"] == "application/json"


@respx.mock
def test_request_device_code_http_error_is_network_error():
    respx.post(GITHUB_DEVICE_CODE_URL).mock(return_value=httpx.Response(500))

    async def run():
        async with httpx.AsyncClient() as client:
            await request_device_code(client, "client-xyz")

    with pytest.raises(NetworkError):
        asyncio.run(run())


@respx.mock
def test_request_device_code_transport_error_is_network_error():
    respx.post(GITHUB_DEVICE_CODE_URL).mock(side_effect=httpx.ConnectError("boom"))

    async def run():
        async with httpx.AsyncClient() as client:
            await request_device_code(client, "client-xyz")

    with pytest.raises(NetworkError):
        asyncio.run(run())


@respx.mock
def test_request_device_code_malformed_body_is_protocol_error():
    respx.post(GITHUB_DEVICE_CODE_URL).mock(
        side_effect=[
            httpx.Response(200, text="<html>not json</html>"),
            httpx.Response(200, json={"device_code": "only-this"}),
        ]
    )

    async def run():
        async with httpx.AsyncClient() as client:
            await request_device_code(client, "client-xyz")

    for _ in range(2):
        with pytest.raises(ProtocolError):
            asyncio.run(run())


# ═══════════════════════════════════════════════════════════════════
#  2. Polling
# ═══════════════════════════════════════════════════════════════════


@respx.mock
def test_poll_pending_twice_then_success_with_real_spacing():
    stamps = []
    bodies = iter([PENDING, PENDING, TOKEN_BODY])

    def respond(request):
        stamps.append(time.monotonic())
        return httpx.Response(200, json=next(bodies))

    route = respx.post(GITHUB_ACCESS_TOKEN_URL).mock(side_effect=respond)

    outcome = asyncio.run(_poll(interval=1))

    assert outcome == Success(AccessToken.from_payload(TOKEN_BODY))
    assert route.call_count == 3
    assert stamps[1] - stamps[0] >= 1.0
    assert stamps[2] - stamps[1] >= 1.0
    form = _form(route.calls.last.request)
    assert form["grant_type"] == "urn:ietf:params:oauth:grant-type:device_code"
    assert form["device_code"] == "dev-123"
    assert form["client_id"] == GITHUB_CLIENT_ID


@respx.mock
def test_poll_slow_down_adds_five_seconds_once(pauses):
    respx.post(GITHUB_ACCESS_TOKEN_URL).mock(
        side_effect=[
            httpx.Response(200, json=PENDING),
            httpx.Response(200, json=SLOW_DOWN),
            httpx.Response(200, json=PENDING),
            httpx.Response(200, json=TOKEN_BODY),
        ]
    )

    outcome = asyncio.run(_poll(interval=5))

    assert isinstance(outcome, Success)
    assert pauses == [5, 10, 5]


@respx.mock
def test_poll_terminal_error_is_failed(pauses):
    route = respx.post(GITHUB_ACCESS_TOKEN_URL).mock(
        side_effect=[
            httpx.Response(200, json=PENDING),
            httpx.Response(200, json={"error": "access_denied"}),
        ]
    )

    outcome = asyncio.run(_poll())

    assert outcome == Failed("access_denied")
    assert route.call_count == 2


@respx.mock
def test_poll_expired_token_is_failed(pauses):
    respx.post(GITHUB_ACCESS_TOKEN_URL).mock(
        return_value=httpx.Response(200, json={"error": "expired_token"})
    )

    assert asyncio.run(_poll()) == Failed("expired_token")
    assert pauses == []


@respx.mock
def test_poll_transport_error_is_failed(pauses):
    respx.post(GITHUB_ACCESS_TOKEN_URL).mock(side_effect=httpx.ConnectError("down"))

    outcome = asyncio.run(_poll())

    assert isinstance(outcome, Failed)
    assert "network" in outcome.reason


@respx.mock
def test_poll_malformed_body_is_failed(pauses):
    respx.post(GITHUB_ACCESS_TOKEN_URL).mock(return_value=httpx.Response(200, text="nope"))

    assert isinstance(asyncio.run(_poll()), Failed)


def test_access_token_optional_fields_default_to_none():
    token = AccessToken.from_payload({"access_token": "gho_x", "token_type": "bearer", "scope": ""})

    assert token.refresh_token is None
    assert token.expires_in is None
    assert token.refresh_token_expires_in is None


# ═══════════════════════════════════════════════════════════════════
#  3. Cancellation
# ═══════════════════════════════════════════════════════════════════


@respx.mock
def test_poll_cancelled_before_first_request_issues_nothing():
    route = respx.post(GITHUB_ACCESS_TOKEN_URL).mock(
        return_value=httpx.Response(200, json=TOKEN_BODY)
    )
    cancel = asyncio.Event()
    cancel.set()

    assert asyncio.run(_poll(cancel=cancel)) == Cancelled()
    assert route.call_count == 0


@respx.mock
def test_poll_cancel_during_in_flight_request_stops_after_it():
    cancel = asyncio.Event()

    def respond(request):
        cancel.set()
        return httpx.Response(200, json=PENDING)

    route = respx.post(GITHUB_ACCESS_TOKEN_URL).mock(side_effect=respond)

    assert asyncio.run(_poll(cancel=cancel)) == Cancelled()
    assert route.call_count == 1


@respx.mock
def test_poll_cancel_interrupts_sleep():
    route = respx.post(GITHUB_ACCESS_TOKEN_URL).mock(
        return_value=httpx.Response(200, json=PENDING)
    )

    async def run():
        cancel = asyncio.Event()
        task = asyncio.create_task(_poll(interval=30, cancel=cancel))
        await asyncio.sleep(0.2)
        cancel.set()
        return await asyncio.wait_for(task, timeout=2)

    assert asyncio.run(run()) == Cancelled()
    assert route.call_count == 1


# ═══════════════════════════════════════════════════════════════════
#  4. authenticate()
# ═══════════════════════════════════════════════════════════════════


@respx.mock
def test_authenticate_uses_tier_client_id(pauses):
    device = respx.post(GITHUB_DEVICE_CODE_URL).mock(
        return_value=httpx.Response(200, json=DEVICE_CODE_BODY)
    )
    respx.post(GITHUB_ACCESS_TOKEN_URL).mock(
        side_effect=[httpx.Response(200, json=PENDING), httpx.Response(200, json=TOKEN_BODY)]
    )

    outcome = asyncio.run(authenticate(TrustTier.ELEVATED, watcher=CancellableInputWatcher(fd=None)))

    assert isinstance(outcome, Success)
    assert outcome.token.access_token == "gho_new"
    assert _form(device.calls.last.request)["client_id"] == GITHUB_ELEVATED_CLIENT_ID


@respx.mock
def test_authenticate_device_code_failure_is_failed():
    device = respx.post(GITHUB_DEVICE_CODE_URL).mock(return_value=httpx.Response(503))
    poll = respx.post(GITHUB_ACCESS_TOKEN_URL)

    outcome = asyncio.run(
        authenticate(TrustTier.STANDARD, watcher=CancellableInputWatcher(fd=None))
    )

    assert device.call_count == 1
    assert isinstance(outcome, Failed)
    assert poll.call_count == 0


@respx.mock
def test_authenticate_ctrl_c_from_input_cancels():
    respx.post(GITHUB_DEVICE_CODE_URL).mock(
        return_value=httpx.Response(200, json={**DEVICE_CODE_BODY, "interval": 30})
    )
    poll = respx.post(GITHUB_ACCESS_TOKEN_URL).mock(
        return_value=httpx.Response(200, json=PENDING)
    )
    read_fd, write_fd = os.pipe()

    async def run():
        watcher = CancellableInputWatcher(fd=read_fd)
        task = asyncio.create_task(authenticate(TrustTier.STANDARD, watcher=watcher))
        await asyncio.sleep(0.2)
        os.write(write_fd, b"\x03")
        return await asyncio.wait_for(task, timeout=5)

    try:
        outcome = asyncio.run(run())
    finally:
        os.close(read_fd)
        os.close(write_fd)

    assert outcome == Cancelled()
    assert poll.call_count == 1
