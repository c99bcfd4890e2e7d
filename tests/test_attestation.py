import asyncio

import httpx
import pytest

from conftest import SleepRecorder
from hub_bridge.bridge.attestation import AttestationPoller
from hub_bridge.bridge.errors import AttestationTimeout
from hub_bridge.config import AttestationConfig

BURN = "0x" + "ab" * 32


def _poller(handler, attempts=60):
    sleep = SleepRecorder()
    http = httpx.AsyncClient(base_url="https://iris.test", transport=httpx.MockTransport(handler))
    config = AttestationConfig(base_url="https://iris.test", poll_interval_seconds=15.0, max_attempts=attempts)
    return AttestationPoller(config, http, sleep=sleep), sleep


def test_returns_first_complete_message():
    seen = []
    responses = [
        httpx.Response(404, json={"error": "not found"}),
        httpx.Response(200, json={"messages": []}),
        httpx.Response(200, json={"messages": [{"status": "pending_confirmations", "message": "0x", "attestation": "PENDING"}]}),
        httpx.Response(200, json={"messages": [{"status": "complete", "message": "0xmsg", "attestation": "0xatt"}]}),
    ]

    def handler(request):
        seen.append(request)
        return responses[len(seen) - 1]

    poller, sleep = _poller(handler)
    attestation = asyncio.run(poller.await_attestation(BURN, 26))

    assert attestation.message == "0xmsg"
    assert attestation.attestation == "0xatt"
    assert attestation.is_complete
    assert len(seen) == 4
    assert sleep.delays == [15.0, 15.0, 15.0]
    assert seen[0].url.path == "/v2/messages/26"
    assert seen[0].url.params["transactionHash"] == BURN


def test_timeout_after_exactly_the_budget():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404)

    poller, sleep = _poller(handler, attempts=60)
    with pytest.raises(AttestationTimeout) as exc:
        asyncio.run(poller.await_attestation(BURN, 0))

    assert len(calls) == 60
    assert len(sleep.delays) == 59
    assert exc.value.attempts == 60
    assert exc.value.in_flight


def test_network_and_server_errors_mean_not_yet():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("boom", request=request)
        if len(calls) == 2:
            return httpx.Response(503, text="unavailable")
        if len(calls) == 3:
            return httpx.Response(200, text="not json")
        return httpx.Response(200, json={"messages": [{"status": "complete", "message": "0xm", "attestation": "0xa"}]})

    poller, _ = _poller(handler)
    attestation = asyncio.run(poller.await_attestation(BURN, 6))
    assert attestation.message == "0xm"
    assert len(calls) == 4


def test_complete_without_attestation_bytes_keeps_polling():
    def handler(request):
        return httpx.Response(200, json={"messages": [{"status": "complete", "message": "0xm", "attestation": None}]})

    poller, _ = _poller(handler, attempts=3)

    async def run():
        assert await poller.fetch_attestation(BURN, 6) is None
        with pytest.raises(AttestationTimeout):
            await poller.await_attestation(BURN, 6)

    asyncio.run(run())


def test_malformed_bodies_mean_not_yet():
    bodies = [
        httpx.Response(200, json=[]),
        httpx.Response(200, json={"messages": "pending"}),
        httpx.Response(200, json={"messages": ["complete", 7, None]}),
        httpx.Response(200, json="complete"),
    ]
    calls = []

    def handler(request):
        calls.append(request)
        return bodies[len(calls) - 1]

    poller, sleep = _poller(handler, attempts=4)
    with pytest.raises(AttestationTimeout):
        asyncio.run(poller.await_attestation(BURN, 6))
    assert len(calls) == 4
    assert len(sleep.delays) == 3
