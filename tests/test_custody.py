import asyncio
import base64
import json

import httpx
import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from hub_bridge.config import CustodyConfig
from hub_bridge.wallet.custody import CustodyClient, CustodyError

ENTITY_SECRET = "ab" * 32


@pytest.fixture(scope="module")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def _client(handler, **overrides):
    config = CustodyConfig(
        base_url="https://custody.test",
        api_key=overrides.get("api_key", "TEST_KEY"),
        entity_secret=overrides.get("entity_secret", ENTITY_SECRET),
    )
    http = httpx.AsyncClient(base_url="https://custody.test", transport=httpx.MockTransport(handler))
    return CustodyClient(config, http)


def _public_pem(key) -> str:
    return key.public_key().public_bytes(
        serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode()


def test_create_wallets_sends_encrypted_secret_and_key(rsa_key):
    requests = []

    def handler(request):
        requests.append(request)
        if request.url.path == "/config/entity/publicKey":
            return httpx.Response(200, json={"data": {"publicKey": _public_pem(rsa_key)}})
        return httpx.Response(201, json={"data": {"wallets": [{"id": "w-1", "address": "0x1"}]}})

    client = _client(handler)
    wallets = asyncio.run(client.create_wallets(
        "ws-1", ["ARC-TESTNET", "BASE-SEPOLIA"], "SCA", {"name": "n", "refId": "alice"}, "key-1"
    ))

    assert wallets == [{"id": "w-1", "address": "0x1"}]
    post = requests[-1]
    assert post.url.path == "/developer/wallets"
    assert post.headers["Authorization"] == "Bearer TEST_KEY"
    body = json.loads(post.content)
    assert body["idempotencyKey"] == "key-1"
    assert body["blockchains"] == ["ARC-TESTNET", "BASE-SEPOLIA"]
    assert body["metadata"] == [{"name": "n", "refId": "alice"}]
    assert body["count"] == 1

    plaintext = rsa_key.decrypt(
        base64.b64decode(body["entitySecretCiphertext"]),
        padding.OAEP(mgf=padding.MGF1(algorithm=hashes.SHA256()), algorithm=hashes.SHA256(), label=None),
    )
    assert plaintext == bytes.fromhex(ENTITY_SECRET)


def test_public_key_is_fetched_once(rsa_key):
    paths = []

    def handler(request):
        paths.append(request.url.path)
        if request.url.path == "/config/entity/publicKey":
            return httpx.Response(200, json={"data": {"publicKey": _public_pem(rsa_key)}})
        return httpx.Response(200, json={"data": {"id": "job-1", "state": "INITIATED"}})

    client = _client(handler)

    async def run():
        await client.create_contract_execution("w-1", "0xc", "approve(address,uint256)", ["0xs", "1"], "k1")
        await client.create_transfer("w-1", "BASE-SEPOLIA", "0xr", "0.1", "0xt", "k2")

    asyncio.run(run())
    assert paths.count("/config/entity/publicKey") == 1


def test_list_wallets_filters_by_ref_id():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"data": {"wallets": []}})

    assert asyncio.run(_client(handler).list_wallets("ws-1", "alice")) == []
    assert seen[0].url.params["refId"] == "alice"
    assert seen[0].url.params["walletSetId"] == "ws-1"


@pytest.mark.parametrize("status,retryable", [(400, False), (404, False), (429, True), (500, True), (503, True)])
def test_http_errors_raise_custody_error(status, retryable):
    def handler(request):
        return httpx.Response(status, json={"code": 1, "message": "nope"})

    with pytest.raises(CustodyError) as exc:
        asyncio.run(_client(handler).get_transaction("tx-1"))
    assert exc.value.status_code == status
    assert exc.value.retryable is retryable


def test_transport_error_is_retryable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(CustodyError) as exc:
        asyncio.run(_client(handler).list_wallet_sets())
    assert exc.value.retryable


def test_missing_api_key_is_not_retryable():
    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(CustodyError) as exc:
        asyncio.run(_client(handler, api_key="${CIRCLE_API_KEY}").list_wallet_sets())
    assert exc.value.retryable is False


def test_get_transaction_unwraps_data():
    def handler(request):
        return httpx.Response(200, json={"data": {"transaction": {"id": "tx-1", "txHash": "0xabc", "state": "CONFIRMED"}}})

    tx = asyncio.run(_client(handler).get_transaction("tx-1"))
    assert tx["txHash"] == "0xabc"


def test_non_json_success_body_is_retryable():
    client = _client(lambda request: httpx.Response(200, text="<html>gateway</html>"))
    with pytest.raises(CustodyError) as exc:
        asyncio.run(client.get_transaction("job-1"))
    assert exc.value.retryable


def test_non_hex_entity_secret_is_not_retryable(rsa_key):
    def handler(request):
        return httpx.Response(200, json={"data": {"publicKey": _public_pem(rsa_key)}})

    client = _client(handler, entity_secret="not-hex-at-all")
    with pytest.raises(CustodyError) as exc:
        asyncio.run(client.create_wallet_set("ArcHub", "key-1"))
    assert not exc.value.retryable


def test_garbled_public_key_is_not_retryable():
    client = _client(lambda request: httpx.Response(200, json={"data": {"publicKey": "nope"}}))
    with pytest.raises(CustodyError) as exc:
        asyncio.run(client.create_wallet_set("ArcHub", "key-1"))
    assert not exc.value.retryable
