import asyncio
import json

import pytest

from hub_bridge.tools import bridge_tools
from hub_bridge.tools.registry import ToolRegistry

RECIPIENT = "0x" + "42" * 20


class StubRuntime:
    def __init__(self, orchestrator):
        self.orchestrator = orchestrator
        self.wallets = type("W", (), {"chains": ["arcTestnet", "baseSepolia"]})()

    async def get_balance(self, user_id, chain):
        if chain == "baseSepolia":
            raise bridge_tools.BridgeError("rpc down")
        return "12.5"

    async def get_address(self, user_id):
        return "0x" + "aa" * 20


@pytest.fixture
def runtime(make_orchestrator):
    rt = StubRuntime(make_orchestrator())
    bridge_tools.set_runtime(rt)
    yield rt
    bridge_tools.set_runtime(None)


def test_tools_are_registered():
    names = ToolRegistry.get().list_names()
    for name in ("execute_bridge", "resume_bridge", "get_balance", "get_wallet_address", "list_chains"):
        assert name in names


def test_execute_bridge_maps_aliases(runtime, custody):
    result = asyncio.run(bridge_tools.execute_bridge(
        user_id="alice", wait=True, amount="1.5", toChain="Base", to=RECIPIENT
    ))
    assert result["success"]
    assert result["data"]["outcome"] == "delivered"
    assert result["data"]["destination_chain"] == "baseSepolia"
    assert custody.calls_named("transfer")[0][4] == "1.5"


def test_execute_bridge_reports_missing_fields(runtime, custody):
    result = asyncio.run(bridge_tools.execute_bridge(user_id="alice", amount="1"))
    assert not result["success"]
    assert "destinationChain" in result["message"]
    assert custody.calls == []


def test_resume_unknown_hash_is_reported(runtime):
    result = asyncio.run(bridge_tools.resume_bridge(user_id="alice", burnTxHash="0x" + "12" * 32))
    assert not result["success"]
    assert "No record" in result["message"]


def test_get_balance_reports_partial_errors(runtime):
    result = asyncio.run(bridge_tools.get_balance(user_id="alice"))
    assert result["success"]
    assert result["data"]["balances"] == {"arcTestnet": "12.5"}
    assert "baseSepolia" in result["data"]["errors"]


def test_wallet_address_and_chains(runtime):
    result = asyncio.run(bridge_tools.get_wallet_address(user_id="alice"))
    assert result["data"]["address"] == "0x" + "aa" * 20

    listed = asyncio.run(ToolRegistry.get().dispatch("list_chains", "alice", {}))
    assert any(c["hub"] for c in listed["data"]["chains"])
    json.dumps(listed)


def test_dispatch_injects_the_caller(runtime, custody):
    result = asyncio.run(ToolRegistry.get().dispatch(
        "execute_bridge",
        "alice",
        {"user_id": "mallory", "amount": "1", "to_chain": "base", "wait": True},
    ))
    assert result["success"]
    assert result["data"]["user_id"] == "alice"


def test_dispatch_unknown_tool():
    result = asyncio.run(ToolRegistry.get().dispatch("teleport", "alice", {}))
    assert not result["success"]
    assert "execute_bridge" in result["message"]


def test_schemas_expose_required_fields():
    schemas = {s["name"]: s for s in ToolRegistry.get().schemas()}
    assert schemas["execute_bridge"]["parameters"]["required"] == ["amount", "destinationChain"]
    assert schemas["resume_bridge"]["parameters"]["required"] == ["burnTxHash"]


def test_tools_need_a_runtime():
    bridge_tools.set_runtime(None)
    with pytest.raises(RuntimeError):
        asyncio.run(bridge_tools.get_wallet_address(user_id="alice"))
